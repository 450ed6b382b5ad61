"""
Verification worklists derived from the live student list.

Queues are rebuilt on every call and hold references to the students and
items they came from, never copies. An item leaves its queue as soon as its
status stops being PENDING.

Routing by field key / document category:

* bio:    requests outside ``grade-*``, ``class-*`` and ``className``;
          documents other than RAPOR
* grade:  ``grade-*``, ``class-*`` and ``className`` requests; RAPOR documents
* ijazah: requests on nis, nisn, birthPlace, birthDate, diplomaNumber
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from schemas import (
    CorrectionRequest,
    CorrectionStatus,
    DocumentCategory,
    DocumentFile,
    DocumentStatus,
    Role,
    Student,
)

IJAZAH_FIELD_KEYS = frozenset({"nis", "nisn", "birthPlace", "birthDate", "diplomaNumber"})


class QueueKind(str, Enum):
    BIO = "bio"
    GRADE = "grade"
    IJAZAH = "ijazah"


@dataclass
class QueueItem:
    student: Student
    item: Union[DocumentFile, CorrectionRequest]

    @property
    def kind(self) -> str:
        return "DOC" if isinstance(self.item, DocumentFile) else "REQ"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "studentId": self.student.id,
            "studentName": self.student.full_name,
            "className": self.student.class_name,
            "item": self.item.dump(),
        }


def is_academic_key(field_key: str) -> bool:
    return field_key.startswith(("grade-", "class-")) or field_key == "className"


def _pending_requests(student: Student) -> List[CorrectionRequest]:
    return [r for r in student.correction_requests if r.status == CorrectionStatus.PENDING]


def _pending_documents(student: Student) -> List[DocumentFile]:
    return [d for d in student.documents if d.status == DocumentStatus.PENDING]


def bio_queue(students: Sequence[Student]) -> List[QueueItem]:
    items = []
    for s in students:
        items.extend(QueueItem(s, r) for r in _pending_requests(s) if not is_academic_key(r.field_key))
        items.extend(QueueItem(s, d) for d in _pending_documents(s) if d.category != DocumentCategory.RAPOR)
    return items


def grade_queue(students: Sequence[Student]) -> List[QueueItem]:
    items = []
    for s in students:
        items.extend(QueueItem(s, r) for r in _pending_requests(s) if is_academic_key(r.field_key))
        items.extend(QueueItem(s, d) for d in _pending_documents(s) if d.category == DocumentCategory.RAPOR)
    return items


def ijazah_queue(students: Sequence[Student]) -> List[QueueItem]:
    items = []
    for s in students:
        items.extend(QueueItem(s, r) for r in _pending_requests(s) if r.field_key in IJAZAH_FIELD_KEYS)
    return items


_BUILDERS = {
    QueueKind.BIO: bio_queue,
    QueueKind.GRADE: grade_queue,
    QueueKind.IJAZAH: ijazah_queue,
}


def build_queue(kind: Union[QueueKind, str], students: Sequence[Student]) -> List[QueueItem]:
    return _BUILDERS[QueueKind(kind)](students)


def queue_counts(students: Sequence[Student]) -> Dict[str, int]:
    return {kind.value: len(builder(students)) for kind, builder in _BUILDERS.items()}


# ============================================
# Notifications
# ============================================

@dataclass
class Notification:
    id: str
    type: str
    title: str
    description: str
    date: str
    priority: str
    student_id: str
    verifier_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "date": self.date,
            "priority": self.priority,
            "data": self.student_id,
            "verifierName": self.verifier_name,
        }


def parse_date(value: Optional[str]) -> datetime:
    """Parse an ISO date/datetime; unparseable values sort last."""
    if not value:
        return datetime.min
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _staff_notifications(s: Student) -> List[Notification]:
    out = []
    for doc in _pending_documents(s):
        if doc.category == DocumentCategory.RAPOR:
            semester = doc.sub_type.semester if doc.sub_type else "-"
            out.append(Notification(
                f"doc-{doc.id}", "ADMIN_GRADE_VERIFY", "Upload Rapor Baru",
                f"{s.full_name} mengupload Rapor Semester {semester}",
                doc.upload_date, "MEDIUM", s.id,
            ))
        elif doc.category in (DocumentCategory.IJAZAH, DocumentCategory.SKL):
            out.append(Notification(
                f"doc-{doc.id}", "ADMIN_IJAZAH_VERIFY", "Upload Dokumen Ijazah",
                f"{s.full_name} mengupload file {doc.category}",
                doc.upload_date, "HIGH", s.id,
            ))
        else:
            out.append(Notification(
                f"doc-{doc.id}", "ADMIN_DOC_VERIFY", "Dokumen Buku Induk",
                f"{s.full_name} mengupload {doc.name} ({doc.category})",
                doc.upload_date, "MEDIUM", s.id,
            ))

    for req in _pending_requests(s):
        if is_academic_key(req.field_key):
            kind, title = "ADMIN_GRADE_VERIFY", "Koreksi Nilai/Kelas"
        elif req.field_key.startswith("ijazah-") or req.field_key == "diplomaNumber":
            kind, title = "ADMIN_IJAZAH_VERIFY", "Koreksi Data Ijazah"
        else:
            kind, title = "ADMIN_BIO_VERIFY", "Koreksi Data Buku Induk"
        out.append(Notification(
            f"req-{req.id}", kind, title,
            f"{s.full_name} mengajukan perubahan pada {req.field_name}",
            req.request_date[:10], "HIGH", s.id,
        ))
    return out


def _student_notifications(s: Student) -> List[Notification]:
    out = []
    for doc in s.documents:
        if doc.status != DocumentStatus.REVISION:
            continue
        if doc.category == DocumentCategory.RAPOR:
            title = "Revisi Rapor"
        elif doc.category in (DocumentCategory.IJAZAH, DocumentCategory.SKL):
            title = "Revisi Ijazah/SKL"
        else:
            title = "Revisi Dokumen"
        out.append(Notification(
            f"doc-rev-{doc.id}", "STUDENT_REVISION", title,
            f"Dokumen {doc.category} perlu diperbaiki. Catatan: {doc.admin_note or '-'}",
            doc.verification_date or doc.upload_date, "HIGH", s.id, doc.verifier_name,
        ))

    for req in s.correction_requests:
        if req.status == CorrectionStatus.PENDING:
            continue
        approved = req.status == CorrectionStatus.APPROVED
        if req.field_key.startswith("grade-"):
            title = "Pengajuan Nilai"
        elif req.field_key.startswith("ijazah-"):
            title = "Pengajuan Ijazah"
        else:
            title = "Pengajuan Buku Induk"
        title += " Disetujui" if approved else " Ditolak"
        out.append(Notification(
            f"req-stat-{req.id}",
            "STUDENT_APPROVED" if approved else "STUDENT_REVISION",
            title,
            f"Pengajuan perubahan {req.field_name} telah {'disetujui' if approved else 'ditolak'}.",
            req.processed_date or req.request_date, "MEDIUM", s.id, req.verifier_name,
        ))
    return out


def notifications(
    students: Sequence[Student],
    role: Union[Role, str],
    student_id: Optional[str] = None,
) -> List[Notification]:
    """Dashboard feed, newest first (dates compared chronologically)."""
    role = Role(role)
    items: List[Notification] = []
    for s in students:
        if role in (Role.ADMIN, Role.GURU):
            items.extend(_staff_notifications(s))
        elif role == Role.STUDENT and s.id == student_id:
            items.extend(_student_notifications(s))
    items.sort(key=lambda n: parse_date(n.date), reverse=True)
    return items


# ============================================
# History
# ============================================

@dataclass
class HistoryEntry:
    student: Student
    item: Union[DocumentFile, CorrectionRequest]

    @property
    def kind(self) -> str:
        return "DOC" if isinstance(self.item, DocumentFile) else "REQ"

    @property
    def date(self) -> str:
        if isinstance(self.item, DocumentFile):
            return self.item.verification_date or ""
        return self.item.processed_date or ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "date": self.date,
            "studentId": self.student.id,
            "studentName": self.student.full_name,
            "item": self.item.dump(),
        }


def history(students: Sequence[Student]) -> List[HistoryEntry]:
    """Resolved documents and requests, newest first by plain string comparison."""
    entries: List[HistoryEntry] = []
    for s in students:
        entries.extend(HistoryEntry(s, d) for d in s.documents if d.status != DocumentStatus.PENDING)
        entries.extend(HistoryEntry(s, r) for r in s.correction_requests if r.status != CorrectionStatus.PENDING)
    entries.sort(key=lambda e: e.date, reverse=True)
    return entries
