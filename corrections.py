"""
Correction requests: a student proposes a new value for one field, an admin
approves or rejects it.

A request's ``fieldKey`` addresses its target in one of three ways:

* a dot-path into the student record (``birthPlace``, ``dapodik.nik``,
  ``father.name``), restricted to the fields in ``CORRECTABLE_FIELDS``;
* ``class-{semester}`` for the class name printed on a semester report;
* ``grade-{semester}-{subject}`` for one subject score. The subject name may
  itself contain ``-``, so only the first two dashes separate the parts.

Keys are parsed into a ``FieldLocator`` before anything is written, and
unknown dot-paths are refused when the request is submitted.

Lifecycle: PENDING -> APPROVED | REJECTED, once. Rejection never touches the
student data.
"""
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from errors import CorrectionNotFoundError, InvalidTransitionError, UnknownFieldError, ValidationError
from grading import competency_description, default_academic_record
from schemas import (
    AcademicRecord,
    Attachment,
    CorrectionRequest,
    CorrectionStatus,
    DapodikData,
    ParentData,
    Student,
    SubjectGrade,
    new_id,
    now_iso,
)

logger = logging.getLogger(__name__)

DEFAULT_APPROVE_NOTE = "Disetujui."
BULK_APPROVE_NOTE = "Disetujui Masal."

GRADE_PREFIX = "grade-"
CLASS_PREFIX = "class-"


class CorrectionAction(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class ApplyOutcome(str, Enum):
    APPLIED = "APPLIED"
    # Approved, but the proposed value could not be written to the record
    NOT_APPLIED = "NOT_APPLIED"
    REJECTED = "REJECTED"


# ============================================
# Field locators
# ============================================

@dataclass(frozen=True)
class BioField:
    path: str
    attrs: Tuple[str, ...]


@dataclass(frozen=True)
class ClassCorrection:
    semester: int


@dataclass(frozen=True)
class GradeCorrection:
    semester: int
    subject: str


FieldLocator = Union[BioField, ClassCorrection, GradeCorrection]

_NESTED = {
    "father": ParentData,
    "mother": ParentData,
    "guardian": ParentData,
    "dapodik": DapodikData,
}

_NOT_CORRECTABLE = {
    "id", "average_score", "achievements", "documents",
    "correction_requests", "academic_records", "admin_messages",
}


def _alias(name: str, info) -> str:
    return info.alias or to_camel(name)


def _build_registry() -> Dict[str, Tuple[str, ...]]:
    registry: Dict[str, Tuple[str, ...]] = {}
    for name, info in Student.model_fields.items():
        if name in _NOT_CORRECTABLE:
            continue
        alias = _alias(name, info)
        nested = _NESTED.get(name)
        if nested is None:
            registry[alias] = (name,)
            continue
        for sub_name, sub_info in nested.model_fields.items():
            registry[f"{alias}.{_alias(sub_name, sub_info)}"] = (name, sub_name)
    return registry


# wire path -> attribute path
CORRECTABLE_FIELDS: Dict[str, Tuple[str, ...]] = _build_registry()

FIELD_LABELS: Dict[str, str] = {
    "fullName": "Nama Lengkap",
    "nis": "NIS",
    "nisn": "NISN",
    "gender": "Jenis Kelamin",
    "religion": "Agama",
    "birthPlace": "Tempat Lahir",
    "birthDate": "Tanggal Lahir",
    "className": "Kelas Saat Ini",
    "entryYear": "Tahun Masuk",
    "nationality": "Kewarganegaraan",
    "previousSchool": "Sekolah Asal",
    "address": "Alamat Jalan",
    "postalCode": "Kode Pos",
    "subDistrict": "Kecamatan",
    "district": "Kabupaten",
    "height": "Tinggi (cm)",
    "weight": "Berat (kg)",
    "bloodType": "Golongan Darah",
    "siblingCount": "Jml Saudara",
    "childOrder": "Anak Ke-",
    "diplomaNumber": "No. Ijazah",
    "dapodik.nik": "NIK (Siswa)",
    "dapodik.noKK": "No. Kartu Keluarga",
    "dapodik.rt": "RT",
    "dapodik.rw": "RW",
    "father.name": "Nama Ayah",
    "mother.name": "Nama Ibu",
}


def grade_key(semester: int, subject: str) -> str:
    return f"{GRADE_PREFIX}{semester}-{subject}"


def class_key(semester: int) -> str:
    return f"{CLASS_PREFIX}{semester}"


def _parse_semester(raw: str, field_key: str) -> int:
    try:
        semester = int(raw)
    except ValueError:
        raise UnknownFieldError(field_key)
    if not 1 <= semester <= 6:
        raise UnknownFieldError(field_key)
    return semester


def parse_field_key(field_key: str) -> FieldLocator:
    """Turn a stored ``fieldKey`` into a locator, or raise ``UnknownFieldError``."""
    if field_key.startswith(GRADE_PREFIX):
        parts = field_key.split("-", 2)
        if len(parts) != 3 or not parts[2]:
            raise UnknownFieldError(field_key)
        return GradeCorrection(_parse_semester(parts[1], field_key), parts[2])

    if field_key.startswith(CLASS_PREFIX):
        return ClassCorrection(_parse_semester(field_key[len(CLASS_PREFIX):], field_key))

    attrs = CORRECTABLE_FIELDS.get(field_key)
    if attrs is None:
        raise UnknownFieldError(field_key)
    return BioField(field_key, attrs)


def field_label(field_key: str) -> str:
    locator = parse_field_key(field_key)
    if isinstance(locator, GradeCorrection):
        return f"Nilai {locator.subject} (Semester {locator.semester})"
    if isinstance(locator, ClassCorrection):
        return f"Kelas Semester {locator.semester}"
    return FIELD_LABELS.get(field_key, field_key)


def current_value(student: Student, locator: FieldLocator) -> str:
    if isinstance(locator, BioField):
        target = student
        for attr in locator.attrs:
            if target is None:
                return ""
            target = getattr(target, attr)
        return "" if target is None else str(target)

    record = student.record(locator.semester)
    if isinstance(locator, ClassCorrection):
        return record.class_name if record else ""
    if record is None:
        return ""
    for entry in record.subjects:
        if entry.subject == locator.subject:
            return _format_number(entry.score)
    return ""


def pending_value(student: Student, field_key: str) -> Optional[str]:
    """Value to display while a correction for ``field_key`` awaits review."""
    for req in student.correction_requests:
        if req.field_key == field_key and req.status == CorrectionStatus.PENDING:
            return req.proposed_value
    return None


# ============================================
# Numbers
# ============================================

def parse_number(text: str) -> Union[int, float]:
    text = str(text).strip()
    if not text:
        return 0
    value = float(text)
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"not a finite number: {text!r}")
    return int(value) if value.is_integer() else value


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ============================================
# Submission
# ============================================

def submit_correction(
    student: Student,
    field_key: str,
    field_name: str,
    original_value: str,
    proposed_value: str,
    reason: str,
    attachment: Optional[Attachment] = None,
) -> CorrectionRequest:
    """Append a PENDING request to ``student`` and return it.

    Any earlier PENDING request for the same ``field_key`` is dropped, so a
    field never has more than one open request. Mutates ``student`` in place.
    """
    if not (reason or "").strip():
        raise ValidationError("Mohon isi alasan perubahan data.", field="studentReason")

    locator = parse_field_key(field_key)
    if isinstance(locator, GradeCorrection):
        try:
            parse_number(proposed_value)
        except ValueError:
            raise ValidationError("Nilai harus berupa angka.", field="proposedValue")

    request = CorrectionRequest(
        id=new_id(),
        field_key=field_key,
        field_name=field_name or field_label(field_key),
        original_value=original_value,
        proposed_value=proposed_value,
        student_reason=reason,
        status=CorrectionStatus.PENDING,
        request_date=now_iso(),
        attachment=attachment,
    )

    kept = [
        r for r in student.correction_requests
        if not (r.field_key == field_key and r.status == CorrectionStatus.PENDING)
    ]
    if len(kept) != len(student.correction_requests):
        logger.info("Replacing pending correction for %s on student %s", field_key, student.id)
    kept.append(request)
    student.correction_requests = kept

    logger.info("Correction %s submitted for student %s (%s)", request.id, student.id, field_key)
    return request


# ============================================
# Resolution
# ============================================

@dataclass
class Resolution:
    student: Student
    request: CorrectionRequest
    outcome: ApplyOutcome

    @property
    def applied(self) -> bool:
        return self.outcome == ApplyOutcome.APPLIED


@dataclass
class BulkResolution:
    student: Student
    outcomes: Dict[str, ApplyOutcome] = field(default_factory=dict)


def _find_request(student: Student, request_id: str) -> CorrectionRequest:
    for req in student.correction_requests:
        if req.id == request_id:
            return req
    raise CorrectionNotFoundError(request_id)


def _ensure_record(student: Student, semester: int, active_year: Optional[str]) -> AcademicRecord:
    record = student.record(semester)
    if record is None:
        record = default_academic_record(student, semester, active_year)
        student.academic_records[semester] = record
        logger.info("Created semester %s record for student %s", semester, student.id)
    return record


def _apply_bio(student: Student, locator: BioField, value: str) -> ApplyOutcome:
    target = student
    for attr in locator.attrs[:-1]:
        if getattr(target, attr) is None:
            setattr(target, attr, _NESTED[attr]())
        target = getattr(target, attr)

    leaf = locator.attrs[-1]
    new_value: Union[str, int, float] = value
    if _is_number(getattr(target, leaf)):
        try:
            new_value = parse_number(value)
        except ValueError:
            logger.warning("Cannot write %r to numeric field %s of student %s", value, locator.path, student.id)
            return ApplyOutcome.NOT_APPLIED

    try:
        setattr(target, leaf, new_value)
    except PydanticValidationError as exc:
        logger.warning("Rejected value for %s of student %s: %s", locator.path, student.id, exc)
        return ApplyOutcome.NOT_APPLIED
    return ApplyOutcome.APPLIED


def _apply_grade(student: Student, locator: GradeCorrection, value: str, active_year: Optional[str]) -> ApplyOutcome:
    try:
        score = parse_number(value)
    except ValueError:
        logger.warning("Grade correction for student %s is not a number: %r", student.id, value)
        return ApplyOutcome.NOT_APPLIED

    record = _ensure_record(student, locator.semester, active_year)
    for entry in record.subjects:
        if entry.subject == locator.subject:
            entry.score = score
            return ApplyOutcome.APPLIED

    record.subjects.append(SubjectGrade(
        no=len(record.subjects) + 1,
        subject=locator.subject,
        score=score,
        competency=competency_description(score, locator.subject),
    ))
    logger.info(
        "Subject %r added to semester %s of student %s by correction",
        locator.subject, locator.semester, student.id,
    )
    return ApplyOutcome.APPLIED


def apply_correction(student: Student, request: CorrectionRequest, active_year: Optional[str] = None) -> ApplyOutcome:
    """Write ``request.proposed_value`` into ``student`` (in place)."""
    try:
        locator = parse_field_key(request.field_key)
    except UnknownFieldError:
        logger.warning("Approved correction %s has unknown field key %r", request.id, request.field_key)
        return ApplyOutcome.NOT_APPLIED

    if isinstance(locator, BioField):
        return _apply_bio(student, locator, request.proposed_value)
    if isinstance(locator, ClassCorrection):
        _ensure_record(student, locator.semester, active_year).class_name = request.proposed_value
        return ApplyOutcome.APPLIED
    return _apply_grade(student, locator, request.proposed_value, active_year)


def _mark(request: CorrectionRequest, status: CorrectionStatus, note: str, verifier_name: str) -> None:
    request.status = status
    request.admin_note = note
    request.verifier_name = verifier_name
    request.processed_date = now_iso()


def resolve_correction(
    student: Student,
    request_id: str,
    action: Union[CorrectionAction, str],
    admin_note: str = "",
    verifier_name: str = "Admin",
    active_year: Optional[str] = None,
) -> Resolution:
    """Approve or reject one request. Returns a modified copy of ``student``.

    Rejecting needs a note; approving falls back to "Disetujui.". An approval
    whose value cannot be written still ends APPROVED, with outcome
    ``NOT_APPLIED``.
    """
    action = CorrectionAction(action)
    original = _find_request(student, request_id)
    if original.status != CorrectionStatus.PENDING:
        raise InvalidTransitionError(request_id, original.status.value)

    note = (admin_note or "").strip()
    if action == CorrectionAction.REJECT and not note:
        raise ValidationError("Mohon isi alasan penolakan.", field="adminNote")

    updated = student.model_copy(deep=True)
    request = _find_request(updated, request_id)

    if action == CorrectionAction.REJECT:
        _mark(request, CorrectionStatus.REJECTED, note, verifier_name)
        outcome = ApplyOutcome.REJECTED
    else:
        _mark(request, CorrectionStatus.APPROVED, note or DEFAULT_APPROVE_NOTE, verifier_name)
        outcome = apply_correction(updated, request, active_year)

    logger.info(
        "Correction %s on student %s %s by %s (%s)",
        request_id, student.id, request.status.value, verifier_name, outcome.value,
    )
    return Resolution(updated, request, outcome)


def approve_all(
    student: Student,
    request_ids: Sequence[str],
    verifier_name: str = "Admin",
    active_year: Optional[str] = None,
) -> BulkResolution:
    """Approve several PENDING requests in one copy of ``student``.

    Requests that are no longer pending are skipped.
    """
    updated = student.model_copy(deep=True)
    result = BulkResolution(updated)
    for request_id in request_ids:
        request = _find_request(updated, request_id)
        if request.status != CorrectionStatus.PENDING:
            continue
        _mark(request, CorrectionStatus.APPROVED, BULK_APPROVE_NOTE, verifier_name)
        result.outcomes[request_id] = apply_correction(updated, request, active_year)

    logger.info("Bulk-approved %d corrections for student %s", len(result.outcomes), student.id)
    return result


def pending_requests(student: Student) -> List[CorrectionRequest]:
    return [r for r in student.correction_requests if r.status == CorrectionStatus.PENDING]
