"""
Grade aggregation: subject lookup, multi-semester averages, certificate scores
and cohort completeness.

Nothing here is cached. Every value is recomputed from ``academic_records``
on each call, so a freshly approved correction shows up immediately.
"""
import math
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from pydantic.alias_generators import to_camel

import config
from schemas import AcademicRecord, DocumentCategory, DocumentStatus, Student, StudentStatus


class SubjectInfo(NamedTuple):
    key: str
    label: str
    full: str


SUBJECT_MAP: List[SubjectInfo] = [
    SubjectInfo("PAI", "PAI", "Pendidikan Agama dan Budi Pekerti"),
    SubjectInfo("Pendidikan Pancasila", "PPKn", "Pendidikan Pancasila"),
    SubjectInfo("Bahasa Indonesia", "BIN", "Bahasa Indonesia"),
    SubjectInfo("Matematika", "MTK", "Matematika"),
    SubjectInfo("IPA", "IPA", "Ilmu Pengetahuan Alam"),
    SubjectInfo("IPS", "IPS", "Ilmu Pengetahuan Sosial"),
    SubjectInfo("Bahasa Inggris", "BIG", "Bahasa Inggris"),
    SubjectInfo("PJOK", "PJOK", "Pendidikan Jasmani, Olahraga, dan Kesehatan"),
    SubjectInfo("Informatika", "INF", "Informatika"),
    SubjectInfo("Seni dan Prakarya", "SENI", "Seni dan Prakarya"),
    SubjectInfo("Bahasa Jawa", "B.JAWA", "Bahasa Jawa"),
]

SUBJECT_KEYS: List[str] = [s.key for s in SUBJECT_MAP]
_SUBJECTS_BY_KEY: Dict[str, SubjectInfo] = {s.key: s for s in SUBJECT_MAP}

DEFAULT_RECAP_SUBJECTS = [
    "PAI", "Pendidikan Pancasila", "Bahasa Indonesia", "Matematika", "IPA", "IPS", "Bahasa Inggris",
]

# Substring aliases per subject key. Each screen of the portal historically
# matched subjects with its own alias set; the profiles below keep those sets
# side by side so every caller resolves subjects exactly as before.
Aliases = Dict[str, Tuple[str, ...]]

REPORT_ALIASES: Aliases = {
    "PAI": ("Agama",),
}

IJAZAH_ALIASES: Aliases = {
    "PAI": ("Agama", "PAI"),
    "IPA": ("Alam", "IPA"),
    "IPS": ("Sosial", "IPS"),
}

SKL_ALIASES: Aliases = {
    "PAI": ("Agama",),
    "IPA": ("Alam",),
    "IPS": ("Sosial",),
    "Seni dan Prakarya": ("Seni", "Prakarya"),
}

# A profile is either an alias table or a matcher taking (subject_name, subject_key).
Matcher = Callable[[str, str], bool]
Profile = Union[Aliases, Matcher]

SEMESTERS = (1, 2, 3, 4, 5, 6)

BIO_REQUIRED_DOCS = (DocumentCategory.KK, DocumentCategory.AKTA, DocumentCategory.IJAZAH)
DEFAULT_ACTIVE_DOCS = ["IJAZAH", "AKTA", "KK", "KTP_AYAH", "KTP_IBU", "FOTO"]


# ============================================
# Rounding
# ============================================

def to_fixed(value: float, digits: int) -> float:
    """Round half-up on the exact binary value, like ``Number.toFixed``."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def round_percent(value: float) -> int:
    # Math.round: halves go up
    return int(math.floor(value + 0.5))


# ============================================
# Subject resolution
# ============================================

def recap_subject_matches(subject_name: str, subject_key: str) -> bool:
    """Lenient lookup used by the 5-semester recap.

    Case-insensitive and trimmed. Accepts the key, the short label (``BIN``,
    ``MTK``) or the full name, a name that embeds the full name, or a name of
    more than three characters that is part of the full name.
    """
    info = _SUBJECTS_BY_KEY.get(subject_key) or SubjectInfo(subject_key, subject_key, subject_key)
    name = (subject_name or "").lower().strip()
    key = info.key.lower().strip()
    label = info.label.lower().strip()
    full = info.full.lower().strip()

    if name in (full, key, label):
        return True
    if full in name:
        return True
    if len(name) > 3 and name in full:
        return True

    if key == "pai" and "agama" in name:
        return True
    if key == "pjok" and ("jasmani" in name or "olahraga" in name):
        return True
    if ("pancasila" in key or label == "ppkn") and ("pancasila" in name or "ppkn" in name):
        return True
    if ("seni" in key or label == "seni") and any(w in name for w in ("seni", "budaya", "prakarya")):
        return True
    return False


RECAP_MATCH: Matcher = recap_subject_matches


def subject_matches(subject_name: str, subject_key: str, aliases: Profile = REPORT_ALIASES) -> bool:
    if callable(aliases):
        return aliases(subject_name, subject_key)
    info = _SUBJECTS_BY_KEY.get(subject_key)
    if info is not None and subject_name == info.full:
        return True
    if subject_name == subject_key or subject_name.startswith(subject_key):
        return True
    return any(alias in subject_name for alias in aliases.get(subject_key, ()))


def get_score(
    student: Student,
    subject_key: str,
    semester: int,
    aliases: Profile = REPORT_ALIASES,
) -> float:
    """Score of ``subject_key`` in ``semester``, 0 when the semester or subject is absent.

    The first entry in the semester's subject list that matches wins.
    """
    record = student.record(semester)
    if record is None:
        return 0
    for entry in record.subjects:
        if subject_matches(entry.subject, subject_key, aliases):
            return entry.score or 0
    return 0


# ============================================
# Averages
# ============================================

def calculate_n_sem_avg(
    student: Student,
    subject_key: str,
    n: int,
    aliases: Profile = REPORT_ALIASES,
) -> float:
    """Sum of semesters 1..n divided by ``n``.

    Always divides by ``n``, even when fewer semesters are filled in. A student
    with only semester 1 at 80 averages 16.0 over five semesters.
    """
    if n < 1:
        raise ValueError("n must be at least 1")
    total = sum(get_score(student, subject_key, sem, aliases) for sem in range(1, n + 1))
    return to_fixed(total / n, 1)


def calculate_recap_avg(student: Student, subject_key: str) -> float:
    return calculate_n_sem_avg(student, subject_key, 5, RECAP_MATCH)


def calculate_ijazah_avg(student: Student, subject_key: str) -> float:
    return calculate_n_sem_avg(student, subject_key, 6, IJAZAH_ALIASES)


def _mean_of_positive(values: Iterable[float]) -> Optional[float]:
    positive = [v for v in values if v > 0]
    if not positive:
        return None
    return sum(positive) / len(positive)


def calculate_semester_avg(
    student: Student,
    semester: int,
    subject_keys: Optional[Sequence[str]] = None,
    aliases: Profile = IJAZAH_ALIASES,
    digits: int = 1,
) -> float:
    """Row average for one semester over the subjects that have a score."""
    keys = SUBJECT_KEYS if subject_keys is None else subject_keys
    mean = _mean_of_positive(get_score(student, key, semester, aliases) for key in keys)
    return to_fixed(mean, digits) if mean is not None else 0


def calculate_recap_total(student: Student, subject_keys: Optional[Sequence[str]] = None) -> float:
    keys = DEFAULT_RECAP_SUBJECTS if subject_keys is None else subject_keys
    mean = _mean_of_positive(calculate_recap_avg(student, key) for key in keys)
    return to_fixed(mean, 1) if mean is not None else 0


def calculate_final_grade(student: Student, aliases: Profile = IJAZAH_ALIASES) -> float:
    """Certificate (ijazah/SKL) score: mean of the per-subject 6-semester averages.

    Unlike the 6-semester average itself, only subjects whose average is above
    zero are counted here.
    """
    mean = _mean_of_positive(calculate_n_sem_avg(student, key, 6, aliases) for key in SUBJECT_KEYS)
    return to_fixed(mean, 2) if mean is not None else 0


def subject_averages(student: Student, n: int = 6, aliases: Profile = IJAZAH_ALIASES) -> Dict[str, float]:
    return {info.key: calculate_n_sem_avg(student, info.key, n, aliases) for info in SUBJECT_MAP}


# ============================================
# Completeness (dashboard)
# ============================================

def is_bio_complete(student: Student) -> bool:
    return all([
        student.nisn,
        student.dapodik.nik,
        student.full_name,
        student.birth_place,
        student.address,
        student.father.name,
        student.mother.name,
    ])


def is_grades_complete(student: Student) -> bool:
    # Semester 1 only, whatever the student's grade level
    record = student.record(1)
    return record is not None and len(record.subjects) > 0


def is_docs_complete(student: Student) -> bool:
    categories = {doc.category for doc in student.documents}
    return all(required.value in categories for required in BIO_REQUIRED_DOCS)


def is_rapor_complete(student: Student) -> bool:
    return any(
        doc.category == DocumentCategory.RAPOR and doc.sub_type is not None and doc.sub_type.semester == 1
        for doc in student.documents
    )


def filter_by_class(students: Sequence[Student], class_name: Optional[str] = None) -> List[Student]:
    if not class_name or class_name == "ALL":
        return list(students)
    return [s for s in students if s.class_name == class_name]


def completeness_percentage(
    students: Sequence[Student],
    predicate: Callable[[Student], bool],
    class_name: Optional[str] = None,
) -> int:
    cohort = filter_by_class(students, class_name)
    total = len(cohort) or 1
    complete = sum(1 for s in cohort if predicate(s))
    return round_percent(complete / total * 100)


def dashboard_stats(students: Sequence[Student], class_name: Optional[str] = None) -> Dict[str, int]:
    cohort = filter_by_class(students, class_name)
    return {
        "bioPercentage": completeness_percentage(cohort, is_bio_complete),
        "gradesPercentage": completeness_percentage(cohort, is_grades_complete),
        "docsPercentage": completeness_percentage(cohort, is_docs_complete),
        "raporPercentage": completeness_percentage(cohort, is_rapor_complete),
        "totalStudents": len(cohort),
        "activeStudents": sum(1 for s in cohort if s.status == StudentStatus.AKTIF),
    }


# ============================================
# Per-student monitoring
# ============================================

@dataclass
class StudentCompleteness:
    student_id: str
    bio_percent: int
    grade_percent: int
    doc_percent: int
    rapor_percent: int
    missing_bio_fields: List[str] = field(default_factory=list)
    missing_grade_semesters: List[int] = field(default_factory=list)
    missing_docs: List[str] = field(default_factory=list)
    missing_rapor_pages: int = 0

    @property
    def total_percent(self) -> int:
        return round_percent(
            (self.bio_percent + self.grade_percent + self.doc_percent + self.rapor_percent) / 4
        )

    def to_dict(self) -> Dict:
        data = {to_camel(key): value for key, value in asdict(self).items()}
        data["totalPercent"] = self.total_percent
        return data


def analyze_student(
    student: Student,
    active_docs: Optional[Sequence[str]] = None,
    rapor_page_count: int = 3,
) -> StudentCompleteness:
    active_docs = DEFAULT_ACTIVE_DOCS if active_docs is None else list(active_docs)

    missing_bio = []
    if not student.nisn:
        missing_bio.append("NISN")
    if not student.dapodik.nik:
        missing_bio.append("NIK")
    if not student.address or student.address == "-":
        missing_bio.append("Alamat")
    if not student.father.name or student.father.name == "Nama Ayah":
        missing_bio.append("Nama Ayah")
    if not student.mother.name or student.mother.name == "Nama Ibu":
        missing_bio.append("Nama Ibu")
    bio_percent = round_percent((5 - len(missing_bio)) / 5 * 100)

    missing_semesters = [
        sem for sem in SEMESTERS
        if student.record(sem) is None or not student.record(sem).subjects
    ]
    grade_percent = round_percent((len(SEMESTERS) - len(missing_semesters)) / len(SEMESTERS) * 100)

    # A document sent back for revision does not count as present
    missing_docs = [
        cat for cat in active_docs
        if not any(d.category == cat and d.status != DocumentStatus.REVISION for d in student.documents)
    ]
    if active_docs:
        doc_percent = round_percent((len(active_docs) - len(missing_docs)) / len(active_docs) * 100)
    else:
        doc_percent = 100

    expected_pages = len(SEMESTERS) * rapor_page_count
    uploaded_pages = sum(
        1 for d in student.documents
        if d.category == DocumentCategory.RAPOR and d.sub_type is not None and d.sub_type.semester in SEMESTERS
    )
    if expected_pages > 0:
        rapor_percent = min(100, round_percent(uploaded_pages / expected_pages * 100))
    else:
        rapor_percent = 100

    return StudentCompleteness(
        student_id=student.id,
        bio_percent=bio_percent,
        grade_percent=grade_percent,
        doc_percent=doc_percent,
        rapor_percent=rapor_percent,
        missing_bio_fields=missing_bio,
        missing_grade_semesters=missing_semesters,
        missing_docs=missing_docs,
        missing_rapor_pages=max(0, expected_pages - uploaded_pages),
    )


# ============================================
# Report helpers
# ============================================

def competency_description(score: float, subject_name: str) -> str:
    if not score:
        return "-"
    if score >= 91:
        predikat = "Sangat baik"
    elif score >= 81:
        predikat = "Baik"
    elif score >= 75:
        predikat = "Cukup"
    else:
        predikat = "Perlu bimbingan"
    return f"{predikat} dalam memahami materi {subject_name}."


def grade_level(class_name: str) -> str:
    """``"IX A"`` -> ``"IX"``; anything unrecognised counts as VII."""
    if not class_name or not class_name.strip():
        return "VII"
    level = class_name.strip().split(" ")[0].upper()
    return level if level in ("VII", "VIII", "IX") else "VII"


def class_level_for_semester(semester: int) -> str:
    if semester <= 2:
        return "VII"
    if semester <= 4:
        return "VIII"
    return "IX"


def _level_number(class_name: str) -> int:
    upper = (class_name or "").upper()
    if "IX" in upper:
        return 9
    if "VIII" in upper:
        return 8
    return 7


def historical_academic_year(current_class: str, semester: int, active_year: Optional[str] = None) -> str:
    """Academic year the student sat ``semester``, counted back from the active year."""
    active_year = active_year or config.DEFAULT_ACADEMIC_YEAR
    try:
        start = int(active_year.split("/")[0])
    except ValueError:
        return active_year
    if not start:
        return active_year
    target = {"VII": 7, "VIII": 8, "IX": 9}[class_level_for_semester(semester)]
    hist_start = start - (_level_number(current_class) - target)
    return f"{hist_start}/{hist_start + 1}"


def guess_historical_class_name(current_class: str, semester: int) -> str:
    level = class_level_for_semester(semester)
    parts = (current_class or "").split(" ")
    suffix = " ".join(parts[1:]) if len(parts) > 1 else ""
    return f"{level} {suffix}" if suffix else f"{level} A"


def default_academic_record(student: Student, semester: int, active_year: Optional[str] = None) -> AcademicRecord:
    return AcademicRecord(
        semester=semester,
        class_level=class_level_for_semester(semester),
        class_name=guess_historical_class_name(student.class_name, semester),
        year=historical_academic_year(student.class_name, semester, active_year),
    )
