"""
Bundled sample cohort.

Served when the backing store cannot be read or returns no students, so the
portal stays usable offline. Scores come from a seeded generator: every call
returns the same cohort as fresh objects.
"""
import random
from typing import List

import config
from grading import class_level_for_semester, competency_description, guess_historical_class_name
from schemas import (
    AcademicRecord,
    Attendance,
    DapodikData,
    Extracurricular,
    P5Project,
    ParentData,
    Role,
    Student,
    SubjectGrade,
    User,
)

SEED = 3

CLASSES = ["VII A", "VII B", "VIII A", "IX A"]

NAMES = [
    "ABEL AULIYA PASA RAMADANI", "ABHEL ECHA TRIOCTAVIA", "ACHMAD FAUZI",
    "ADINDA PUTRI", "AGUS SETIAWAN", "AHMAD DANI", "AISYAH RAANI",
    "ALDO PRATAMA", "ALVIN KURNIAWAN", "AMELIA SARI", "ANDI SAPUTRA",
    "ANGGA WIJAYA", "ANISA RAHMA", "ARIEF HIDAYAT", "AYU LESTARI",
]

# (subject name as written on the rapor, lowest score, highest score)
SUBJECT_RANGES = [
    ("Pendidikan Agama dan Budi Pekerti", 78, 95),
    ("Pendidikan Pancasila", 75, 90),
    ("Bahasa Indonesia", 75, 92),
    ("Matematika", 70, 88),
    ("IPA", 72, 90),
    ("IPS", 75, 90),
    ("Bahasa Inggris", 75, 95),
    ("Seni dan Prakarya", 80, 90),
    ("PJOK", 80, 92),
    ("Informatika", 75, 95),
    ("Bahasa Jawa", 75, 90),
]


def _record(rng: random.Random, semester: int, class_name: str) -> AcademicRecord:
    subjects = []
    for no, (name, low, high) in enumerate(SUBJECT_RANGES, start=1):
        score = rng.randrange(low, high)
        subjects.append(SubjectGrade(no=no, subject=name, score=score, competency=competency_description(score, name)))

    return AcademicRecord(
        semester=semester,
        class_level=class_level_for_semester(semester),
        class_name=guess_historical_class_name(class_name, semester),
        phase="D",
        year=config.DEFAULT_ACADEMIC_YEAR if semester <= 2 else "2023/2024",
        subjects=subjects,
        p5_projects=[P5Project(no=1, theme="Gaya Hidup Berkelanjutan", description="Pengolahan sampah plastik.")],
        extracurriculars=[Extracurricular(name="Pramuka", score="A")],
        teacher_note="Tingkatkan terus prestasimu.",
        attendance=Attendance(sick=rng.randrange(0, 3), permitted=rng.randrange(0, 2), no_reason=0),
    )


def fallback_students() -> List[Student]:
    rng = random.Random(SEED)
    students = []
    for index, name in enumerate(NAMES):
        class_name = CLASSES[index % len(CLASSES)]
        first_name = name.split(" ")[0]
        student = Student(
            id=str(1000 + index),
            full_name=name,
            nis=str(2000 + index),
            nisn=f"00{34567890 + index}",
            gender="L" if index % 2 == 0 else "P",
            birth_place="MOJOKERTO",
            birth_date="2010-01-01",
            religion="Islam",
            address="Dusun Pacet",
            sub_district="Pacet",
            district="Mojokerto",
            postal_code="61374",
            class_name=class_name,
            height=150 + index % 10,
            weight=40 + index % 10,
            blood_type="-",
            sibling_count=1,
            child_order=1,
            father=ParentData(
                name=f"Ayah {first_name}", nik="3516000000000001", birth_place_date="1980",
                education="SMA", job="Wiraswasta", income="2000000", phone="08123456789",
            ),
            mother=ParentData(
                name=f"Ibu {first_name}", nik="3516000000000002", birth_place_date="1985",
                education="SMA", job="Ibu Rumah Tangga", income="0",
            ),
            guardian=ParentData(),
            entry_year=2024,
            previous_school="SDN Pacet 1",
            diploma_number=f"DN-01/D-000{index}",
            dapodik=DapodikData(
                nik=f"351603000000000{index}",
                no_kk="3516030000000000",
                rt="01", rw="02",
                dusun="Pacet", kelurahan="Pacet", kecamatan="Pacet", kode_pos="61374",
                living_status="Bersama Orang Tua", transportation="Jalan Kaki",
                email=f"student{index}@smpn3pacet.sch.id",
                kps_receiver="Tidak", kip_receiver="Tidak", pip_eligible="Tidak",
                special_needs="Tidak ada",
                latitude="-7.6", longitude="112.5",
                head_circumference=50, distance_to_school="1",
                travel_time_minutes=10,
            ),
        )
        for semester in range(1, 7):
            student.academic_records[semester] = _record(rng, semester, class_name)
        students.append(student)
    return students


def fallback_users() -> List[User]:
    return [
        User(
            id="admin",
            name=config.DEFAULT_ADMIN_NAME,
            username="admin@smpn3pacet.sch.id",
            password="password",
            role=Role.ADMIN,
        ),
    ]
