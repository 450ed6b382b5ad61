"""Uploaded documents: registration after upload, verification, removal."""
import logging
from enum import Enum
from typing import Optional, Union

from errors import DocumentNotFoundError, InvalidTransitionError, ValidationError
from schemas import (
    DocumentCategory,
    DocumentFile,
    DocumentStatus,
    DocumentType,
    RaporPage,
    Student,
    new_id,
    now_iso,
    today_iso,
)

logger = logging.getLogger(__name__)


class DocumentAction(str, Enum):
    APPROVE = "APPROVE"
    REVISION = "REVISION"


def _format_size(size_bytes: int) -> str:
    return f"{size_bytes / 1024:.0f} KB"


def attach_document(
    student: Student,
    name: str,
    url: str,
    category: str,
    size_bytes: int = 0,
    mime_type: str = "",
    semester: Optional[int] = None,
    page: Optional[int] = None,
) -> DocumentFile:
    """Register an uploaded file on ``student`` as a PENDING document.

    A new upload replaces earlier documents of the same category. RAPOR scans
    only replace the scan of the same semester and page, and LAINNYA uploads
    are all kept.
    """
    is_rapor = category == DocumentCategory.RAPOR
    if is_rapor and (semester is None or page is None):
        raise ValidationError("Rapor wajib menyertakan semester dan halaman.", field="subType")

    doc = DocumentFile(
        id=new_id(),
        name=name,
        type=DocumentType.PDF if "pdf" in (mime_type or "").lower() else DocumentType.IMAGE,
        url=url,
        category=category,
        upload_date=today_iso(),
        size=_format_size(size_bytes),
        status=DocumentStatus.PENDING,
        sub_type=RaporPage(semester=semester, page=page) if is_rapor else None,
    )

    if is_rapor:
        documents = [
            d for d in student.documents
            if not (
                d.category == DocumentCategory.RAPOR
                and d.sub_type is not None
                and (d.sub_type.semester, d.sub_type.page) == (semester, page)
            )
        ]
    elif category == DocumentCategory.LAINNYA:
        documents = list(student.documents)
    else:
        documents = [d for d in student.documents if d.category != category]
    documents.append(doc)
    student.documents = documents

    logger.info("Document %s (%s) attached to student %s", doc.id, category, student.id)
    return doc


def find_document(student: Student, doc_id: str) -> DocumentFile:
    for doc in student.documents:
        if doc.id == doc_id:
            return doc
    raise DocumentNotFoundError(doc_id)


def resolve_document(
    student: Student,
    doc_id: str,
    action: Union[DocumentAction, str],
    admin_note: str = "",
    verifier_name: str = "Admin",
) -> Student:
    """Approve a document or send it back for revision. Returns a modified copy."""
    action = DocumentAction(action)
    original = find_document(student, doc_id)
    if original.status != DocumentStatus.PENDING:
        raise InvalidTransitionError(doc_id, original.status.value)

    note = (admin_note or "").strip()
    if action == DocumentAction.REVISION and not note:
        raise ValidationError("Mohon isi catatan revisi.", field="adminNote")

    updated = student.model_copy(deep=True)
    doc = find_document(updated, doc_id)
    doc.status = DocumentStatus.APPROVED if action == DocumentAction.APPROVE else DocumentStatus.REVISION
    doc.admin_note = note
    doc.verifier_name = verifier_name
    doc.verification_date = now_iso()

    logger.info("Document %s of student %s marked %s by %s", doc_id, student.id, doc.status.value, verifier_name)
    return updated


def remove_document(student: Student, doc_id: str) -> Student:
    find_document(student, doc_id)
    updated = student.model_copy(deep=True)
    updated.documents = [d for d in updated.documents if d.id != doc_id]
    logger.info("Document %s removed from student %s", doc_id, student.id)
    return updated
