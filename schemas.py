"""
Data Schemas for the Student Records Portal

Each Pydantic model mirrors a JSON record held by the backing store. Attributes
are snake_case in Python and camelCase on the wire (``fullName``,
``academicRecords``...), so records exported by the spreadsheet store load as-is
and ``dump()`` writes them back in the same shape.
"""
import random
import string
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def _blank_to_zero(v: Any) -> Any:
    # Spreadsheet cells come back as "" when empty
    if v is None or (isinstance(v, str) and not v.strip()):
        return 0
    return v


def _none_to_str(v: Any) -> Any:
    if v is None:
        return ""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


# ============================================
# Enums
# ============================================

class Role(str, Enum):
    ADMIN = "ADMIN"
    GURU = "GURU"
    STUDENT = "STUDENT"


class Gender(str, Enum):
    L = "L"
    P = "P"


class StudentStatus(str, Enum):
    AKTIF = "AKTIF"
    PINDAH = "PINDAH"
    LULUS = "LULUS"


class DocumentType(str, Enum):
    PDF = "PDF"
    IMAGE = "IMAGE"


class DocumentCategory(str, Enum):
    IJAZAH = "IJAZAH"
    AKTA = "AKTA"
    KK = "KK"
    KTP_AYAH = "KTP_AYAH"
    KTP_IBU = "KTP_IBU"
    KIP = "KIP"
    SKL = "SKL"
    FOTO = "FOTO"
    KARTU_PELAJAR = "KARTU_PELAJAR"
    RAPOR = "RAPOR"
    NISN = "NISN"
    PROFILE_PHOTO = "PROFILE_PHOTO"
    LAINNYA = "LAINNYA"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REVISION = "REVISION"


class CorrectionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# ============================================
# Student sub-records
# ============================================

class ParentData(CamelModel):
    name: str = Field("", description="Nama orang tua/wali")
    nik: str = Field("", description="NIK")
    birth_place_date: str = Field("", description="Tahun/tempat lahir")
    education: str = ""
    job: str = ""
    income: str = ""
    phone: str = ""

    coerce_str = field_validator("*", mode="before")(_none_to_str)


class DapodikData(CamelModel):
    """Dapodik field bag. Carried through untouched; unknown columns are kept."""

    model_config = ConfigDict(extra="allow")

    nik: str = Field("", description="NIK siswa")
    no_kk: str = Field("", alias="noKK", description="Nomor Kartu Keluarga")
    rt: str = ""
    rw: str = ""
    dusun: str = ""
    kelurahan: str = ""
    kecamatan: str = ""
    kode_pos: str = ""
    living_status: str = ""
    transportation: str = ""
    email: str = ""
    skhun: str = ""
    kps_receiver: str = ""
    kps_number: str = ""
    kip_receiver: str = ""
    kip_number: str = ""
    kip_name: str = ""
    kks_number: str = ""
    birth_reg_number: str = ""
    bank: str = ""
    bank_account: str = ""
    bank_account_name: str = ""
    pip_eligible: str = ""
    pip_reason: str = ""
    special_needs: str = ""
    latitude: str = ""
    longitude: str = ""
    head_circumference: float = 0
    distance_to_school: Union[float, str] = 0
    un_exam_number: str = ""
    travel_time_hours: Optional[float] = None
    travel_time_minutes: Optional[float] = None
    nickname: Optional[str] = None

    coerce_number = field_validator("head_circumference", mode="before")(_blank_to_zero)


class SubjectGrade(CamelModel):
    no: int = 0
    subject: str = Field(..., description="Nama mata pelajaran")
    score: float = Field(0, description="Nilai 0-100")
    competency: str = "-"

    coerce_score = field_validator("score", "no", mode="before")(_blank_to_zero)


class P5Project(CamelModel):
    no: int = 0
    theme: str = ""
    description: str = ""


class Extracurricular(CamelModel):
    name: str = ""
    score: str = ""


class Attendance(CamelModel):
    sick: int = 0
    permitted: int = 0
    no_reason: int = 0

    coerce_days = field_validator("*", mode="before")(_blank_to_zero)


class AcademicRecord(CamelModel):
    semester: int = Field(..., ge=1, le=6, description="Semester 1-6")
    class_level: str = Field("VII", description="Tingkat: VII, VIII, IX")
    class_name: str = ""
    phase: str = "D"
    year: str = ""
    subjects: List[SubjectGrade] = Field(default_factory=list)
    p5_projects: List[P5Project] = Field(default_factory=list)
    extracurriculars: List[Extracurricular] = Field(default_factory=list)
    teacher_note: str = ""
    promotion_status: str = Field("", description="NAIK/TINGGAL/LULUS (semester 2/4/6)")
    attendance: Attendance = Field(default_factory=Attendance)

    @field_validator("subjects", "p5_projects", "extracurriculars", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    coerce_year = field_validator("year", "class_name", mode="before")(_none_to_str)


class RaporPage(CamelModel):
    semester: int
    page: int


class DocumentFile(CamelModel):
    id: str
    name: str
    type: DocumentType = DocumentType.PDF
    url: str = ""
    category: str = Field(..., description="IJAZAH, AKTA, KK, ... RAPOR")
    upload_date: str = ""
    size: str = ""
    status: DocumentStatus = DocumentStatus.PENDING
    admin_note: Optional[str] = None
    verifier_name: Optional[str] = None
    verification_date: Optional[str] = None
    sub_type: Optional[RaporPage] = None


class Attachment(CamelModel):
    url: str
    type: DocumentType = DocumentType.IMAGE
    name: str = ""


class CorrectionRequest(CamelModel):
    id: str
    field_key: str = Field(..., description="Dot-path atau kunci sintetis (class-N, grade-N-Mapel)")
    field_name: str = Field("", description="Label field untuk ditampilkan")
    original_value: str = ""
    proposed_value: str = ""
    student_reason: str = ""
    status: CorrectionStatus = CorrectionStatus.PENDING
    request_date: str = ""
    admin_note: Optional[str] = None
    verifier_name: Optional[str] = None
    processed_date: Optional[str] = None
    attachment: Optional[Attachment] = None

    coerce_values = field_validator("original_value", "proposed_value", mode="before")(_none_to_str)


class AdminMessage(CamelModel):
    id: str
    content: str
    date: str = ""
    is_read: bool = False


# ============================================
# Aggregate root
# ============================================

class Student(CamelModel):
    id: str = Field(..., description="ID siswa")
    nis: str = Field("", description="Nomor Induk Siswa (password default)")
    nisn: str = Field("", description="NISN (username)")
    full_name: str = Field("", description="Nama lengkap siswa")
    gender: str = Field("L", description="L/P")
    birth_place: str = ""
    birth_date: str = ""
    religion: str = ""
    nationality: str = "WNI"
    address: str = ""
    sub_district: str = ""
    district: str = ""
    postal_code: str = ""
    child_order: int = 0
    sibling_count: int = 0
    height: float = 0
    weight: float = 0
    blood_type: str = ""
    class_name: str = Field("", description="Kelas, misal: VII A, IX B")
    entry_year: int = 0
    status: str = Field(StudentStatus.AKTIF.value, description="AKTIF/PINDAH/LULUS")
    father: ParentData = Field(default_factory=ParentData)
    mother: ParentData = Field(default_factory=ParentData)
    guardian: Optional[ParentData] = None
    previous_school: str = ""
    graduation_year: int = 0
    diploma_number: str = ""
    average_score: float = 0
    achievements: List[str] = Field(default_factory=list)
    dapodik: DapodikData = Field(default_factory=DapodikData)
    documents: List[DocumentFile] = Field(default_factory=list)
    correction_requests: List[CorrectionRequest] = Field(default_factory=list)
    academic_records: Dict[int, AcademicRecord] = Field(default_factory=dict)
    admin_messages: List[AdminMessage] = Field(default_factory=list)

    coerce_numbers = field_validator(
        "child_order", "sibling_count", "height", "weight",
        "entry_year", "graduation_year", "average_score",
        mode="before",
    )(_blank_to_zero)

    coerce_strings = field_validator(
        "nis", "nisn", "postal_code", "diploma_number", "birth_date",
        mode="before",
    )(_none_to_str)

    @field_validator("documents", "correction_requests", "achievements", "admin_messages", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @field_validator("academic_records", mode="before")
    @classmethod
    def none_to_dict(cls, v):
        return {} if v is None else v

    def record(self, semester: int) -> Optional[AcademicRecord]:
        return self.academic_records.get(int(semester))


# ============================================
# Users & settings
# ============================================

class User(CamelModel):
    id: str
    name: str
    username: str
    password: str = ""
    role: Role = Role.GURU


class AppSettings(CamelModel):
    model_config = ConfigDict(extra="allow")

    admin_name: str = "Administrator"
    school_data: Dict[str, Any] = Field(default_factory=dict)
    academic_data: Dict[str, Any] = Field(default_factory=dict)
    doc_config: Dict[str, Any] = Field(default_factory=dict)
    recap_subjects: List[str] = Field(default_factory=list)
    class_config: Dict[str, Any] = Field(default_factory=dict)
    class_list: List[str] = Field(default_factory=list)
    rapor_page_count: int = 3


# ============================================
# Helpers
# ============================================

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_id() -> str:
    return "".join(random.choices(_ID_ALPHABET, k=9))


def now_iso() -> str:
    return datetime.utcnow().isoformat(timespec="milliseconds") + "Z"


def today_iso() -> str:
    return datetime.utcnow().date().isoformat()
