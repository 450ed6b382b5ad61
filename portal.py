"""
Portal service: the workflow core wired to a backing store.

Every mutating call works on a copy of the cached student, swaps the copy into
the cache and then writes the whole record with ``update_student``. A failed
write raises ``StoreError`` and leaves the cache as it is, so the local view
can run ahead of the store until the next successful write or reload. There is
one writer at a time; concurrent writers overwrite each other.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import corrections
import documents
import grading
import queues
from app_settings import SettingsService
from errors import AuthenticationError, StoreError, StudentNotFoundError
from fallback_data import fallback_students, fallback_users
from schemas import Attachment, CorrectionRequest, DocumentFile, Role, Student, User
from store import StudentStore

logger = logging.getLogger(__name__)


@dataclass
class Session:
    role: Role
    name: str
    user_id: Optional[str] = None
    student_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "name": self.name,
            "userId": self.user_id,
            "studentId": self.student_id,
        }


class Portal:
    def __init__(self, store: StudentStore, settings: Optional[SettingsService] = None):
        self.store = store
        self.settings = settings or SettingsService(store)
        self._students: Optional[List[Student]] = None
        self.using_fallback = False

    # ============================================
    # Students
    # ============================================

    def load_students(self, refresh: bool = False) -> List[Student]:
        if self._students is not None and not refresh:
            return self._students

        students = self.store.get_students()
        if students:
            self.using_fallback = False
        else:
            logger.warning("No students from %s store, using bundled sample data", self.store.name)
            students = fallback_students()
            self.using_fallback = True
        self._students = students
        logger.info("Loaded %d students", len(students))
        return students

    @property
    def students(self) -> List[Student]:
        return self.load_students()

    def get_student(self, student_id: str) -> Student:
        for student in self.students:
            if student.id == student_id:
                return student
        raise StudentNotFoundError(student_id)

    def _replace(self, updated: Student) -> None:
        students = self.students
        for index, student in enumerate(students):
            if student.id == updated.id:
                students[index] = updated
                return
        students.append(updated)

    def _persist(self, updated: Student, operation: str) -> None:
        self._replace(updated)
        if not self.store.update_student(updated):
            logger.error(
                "%s: student %s changed locally but was not saved to the %s store",
                operation, updated.id, self.store.name,
            )
            raise StoreError(f"Gagal menyimpan data siswa {updated.id}", operation=operation)

    def sync_all(self) -> bool:
        """Push the whole cached cohort to the store in one request."""
        ok = self.store.update_students_bulk(self.students)
        if not ok:
            raise StoreError("Sinkronisasi data gagal", operation="syncData")
        logger.info("Synced %d students", len(self.students))
        return ok

    # ============================================
    # Corrections
    # ============================================

    def submit_correction(
        self,
        student_id: str,
        field_key: str,
        proposed_value: str,
        reason: str,
        field_name: str = "",
        original_value: Optional[str] = None,
        attachment: Optional[Attachment] = None,
    ) -> CorrectionRequest:
        student = self.get_student(student_id)
        if original_value is None:
            original_value = corrections.current_value(student, corrections.parse_field_key(field_key))

        updated = student.model_copy(deep=True)
        request = corrections.submit_correction(
            updated, field_key, field_name, original_value, proposed_value, reason, attachment,
        )
        self._persist(updated, "submitCorrection")
        return request

    def resolve_correction(
        self,
        student_id: str,
        request_id: str,
        action: Union[corrections.CorrectionAction, str],
        admin_note: str = "",
        verifier_name: Optional[str] = None,
    ) -> corrections.Resolution:
        resolution = corrections.resolve_correction(
            self.get_student(student_id),
            request_id,
            action,
            admin_note=admin_note,
            verifier_name=verifier_name or self.settings.admin_name(),
            active_year=self.settings.active_academic_year(),
        )
        self._persist(resolution.student, "resolveCorrection")
        return resolution

    def approve_all(
        self,
        student_id: str,
        request_ids: Optional[Sequence[str]] = None,
        verifier_name: Optional[str] = None,
    ) -> corrections.BulkResolution:
        student = self.get_student(student_id)
        if request_ids is None:
            request_ids = [r.id for r in corrections.pending_requests(student)]
        result = corrections.approve_all(
            student,
            request_ids,
            verifier_name=verifier_name or self.settings.admin_name(),
            active_year=self.settings.active_academic_year(),
        )
        self._persist(result.student, "approveAll")
        return result

    # ============================================
    # Documents
    # ============================================

    def resolve_document(
        self,
        student_id: str,
        doc_id: str,
        action: Union[documents.DocumentAction, str],
        admin_note: str = "",
        verifier_name: Optional[str] = None,
    ) -> Student:
        updated = documents.resolve_document(
            self.get_student(student_id),
            doc_id,
            action,
            admin_note=admin_note,
            verifier_name=verifier_name or self.settings.admin_name(),
        )
        self._persist(updated, "resolveDocument")
        return updated

    def upload_document(
        self,
        student_id: str,
        content: bytes,
        file_name: str,
        mime_type: str,
        category: str,
        semester: Optional[int] = None,
        page: Optional[int] = None,
    ) -> DocumentFile:
        student = self.get_student(student_id)
        url = self.store.upload_file(content, file_name, mime_type, student_id, category)
        if not url:
            raise StoreError(f"Upload {file_name} gagal", operation="uploadFile")

        updated = student.model_copy(deep=True)
        doc = documents.attach_document(
            updated, file_name, url, category,
            size_bytes=len(content), mime_type=mime_type, semester=semester, page=page,
        )
        self._persist(updated, "uploadDocument")
        return doc

    def delete_document(self, student_id: str, doc_id: str) -> Student:
        updated = documents.remove_document(self.get_student(student_id), doc_id)
        self._persist(updated, "deleteDocument")
        return updated

    # ============================================
    # Users & login
    # ============================================

    def users(self) -> List[User]:
        return self.store.get_users() or fallback_users()

    def update_users(self, users: Sequence[User]) -> bool:
        ok = self.store.update_users(users)
        if not ok:
            raise StoreError("Gagal menyimpan data pengguna", operation="updateUsers")
        return ok

    def login(self, username: str, password: str) -> Session:
        """Staff log in with their user record; students with NISN and NIS.

        Passwords are compared as stored (plain text).
        """
        username = (username or "").strip()
        if not username or not password:
            raise AuthenticationError("Username dan password wajib diisi")

        for user in self.users():
            if user.username == username and user.password == password:
                logger.info("User %s logged in as %s", user.username, user.role.value)
                return Session(role=user.role, name=user.name, user_id=user.id)

        for student in self.students:
            if student.nisn and student.nisn == username and student.nis == password:
                logger.info("Student %s logged in", student.id)
                return Session(role=Role.STUDENT, name=student.full_name, student_id=student.id)

        logger.warning("Failed login for %s", username)
        raise AuthenticationError()

    # ============================================
    # Derived views
    # ============================================

    def grade_report(self, student_id: str) -> Dict[str, Any]:
        student = self.get_student(student_id)
        subjects = {}
        for info in grading.SUBJECT_MAP:
            subjects[info.key] = {
                "label": info.label,
                "scores": {
                    sem: grading.get_score(student, info.key, sem, grading.IJAZAH_ALIASES)
                    for sem in grading.SEMESTERS
                },
                "recapAverage": grading.calculate_recap_avg(student, info.key),
                "ijazahAverage": grading.calculate_ijazah_avg(student, info.key),
            }
        return {
            "studentId": student.id,
            "subjects": subjects,
            "semesterAverages": {
                sem: grading.calculate_semester_avg(student, sem) for sem in grading.SEMESTERS
            },
            "recapTotal": grading.calculate_recap_total(student, self.settings.recap_subjects()),
            "finalGrade": grading.calculate_final_grade(student),
        }

    def dashboard(self, class_name: Optional[str] = None) -> Dict[str, int]:
        return grading.dashboard_stats(self.students, class_name)

    def monitoring(self, class_name: Optional[str] = None) -> List[grading.StudentCompleteness]:
        active_docs = self.settings.active_docs()
        page_count = self.settings.rapor_page_count()
        return [
            grading.analyze_student(s, active_docs, page_count)
            for s in grading.filter_by_class(self.students, class_name)
        ]

    def queue(self, kind: Union[queues.QueueKind, str]) -> List[queues.QueueItem]:
        return queues.build_queue(kind, self.students)

    def notifications(self, role: Union[Role, str], student_id: Optional[str] = None) -> List[queues.Notification]:
        return queues.notifications(self.students, role, student_id)

    def history(self) -> List[queues.HistoryEntry]:
        return queues.history(self.students)
