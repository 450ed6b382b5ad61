"""
Persistence collaborators.

The portal core never talks to storage directly; it goes through a
``StudentStore``. Three backends share the contract:

* ``RemoteStore``: the school's spreadsheet web app (``?action=...`` JSON API)
* ``MongoStore``: MongoDB through the ``database`` helpers
* ``MemoryStore``: in-process, seeded with the bundled sample cohort

Contract: reads never raise, they log and return ``[]`` / ``None``. Writes
return ``True``/``False``; only ``update_student`` on the remote backend is
retried. Records are whole-document replaced, last write wins, there is no
version check.
"""
import base64
import copy
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

import config
from schemas import Student, User, new_id

logger = logging.getLogger(__name__)


def _parse_students(rows: Sequence[Dict[str, Any]]) -> List[Student]:
    students = []
    for row in rows or []:
        try:
            students.append(Student.model_validate(row))
        except PydanticValidationError as exc:
            logger.warning("Skipping malformed student record %s: %s", (row or {}).get("id"), exc)
    return students


def _parse_users(rows: Sequence[Dict[str, Any]]) -> List[User]:
    users = []
    for row in rows or []:
        try:
            users.append(User.model_validate(row))
        except PydanticValidationError as exc:
            logger.warning("Skipping malformed user record %s: %s", (row or {}).get("id"), exc)
    return users


class StudentStore:
    """Interface of a backing store."""

    name = "base"

    def get_students(self) -> List[Student]:
        raise NotImplementedError

    def get_users(self) -> List[User]:
        raise NotImplementedError

    def update_users(self, users: Sequence[User]) -> bool:
        raise NotImplementedError

    def get_app_settings(self) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def save_app_settings(self, settings: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def update_student(self, student: Student) -> bool:
        raise NotImplementedError

    def update_students_bulk(self, students: Sequence[Student]) -> bool:
        raise NotImplementedError

    def upload_file(
        self,
        content: bytes,
        file_name: str,
        mime_type: str,
        student_id: str,
        category: str,
    ) -> Optional[str]:
        raise NotImplementedError

    def get_file(self, file_id: str) -> Optional[Dict[str, Any]]:
        """Stored upload as ``{"fileName", "mimeType", "content"}``; backends with external URLs return None."""
        return None

    def health(self) -> Dict[str, Any]:
        return {"backend": self.name}


# ============================================
# Remote spreadsheet web app
# ============================================

class RemoteStore(StudentStore):
    name = "remote"

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        bulk_timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        sleep=time.sleep,
    ):
        self.url = config.REMOTE_STORE_URL if url is None else url
        self.timeout = config.REMOTE_TIMEOUT if timeout is None else timeout
        self.bulk_timeout = config.REMOTE_BULK_TIMEOUT if bulk_timeout is None else bulk_timeout
        self.max_retries = config.REMOTE_MAX_RETRIES if max_retries is None else max_retries
        self.retry_backoff = config.REMOTE_RETRY_BACKOFF if retry_backoff is None else retry_backoff
        # Apps Script answers with a redirect to the rendered JSON
        self.client = client or httpx.Client(follow_redirects=True)
        self._sleep = sleep

    @property
    def configured(self) -> bool:
        return config.remote_configured(self.url)

    def close(self) -> None:
        self.client.close()

    # -- transport ---------------------------------------------------

    @staticmethod
    def _envelope(response: httpx.Response) -> Dict[str, Any]:
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict) or body.get("status") != "success":
            message = body.get("message") if isinstance(body, dict) else None
            raise ValueError(message or "Unexpected response from store")
        return body

    def _get(self, action: str) -> Dict[str, Any]:
        response = self.client.get(self.url, params={"action": action}, timeout=self.timeout)
        return self._envelope(response)

    def _post(self, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        response = self.client.post(self.url, json=payload, timeout=timeout or self.timeout)
        return self._envelope(response)

    def _read(self, action: str) -> Optional[Dict[str, Any]]:
        if not self.configured:
            logger.warning("Remote store URL not configured, %s skipped", action)
            return None
        try:
            return self._get(action)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Remote %s failed: %s", action, exc)
            return None

    def _write(self, payload: Dict[str, Any], timeout: Optional[float] = None) -> bool:
        if not self.configured:
            logger.warning("Remote store URL not configured, %s not persisted", payload.get("action"))
            return False
        try:
            self._post(payload, timeout)
            return True
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Remote %s failed: %s", payload.get("action"), exc)
            return False

    # -- reads -------------------------------------------------------

    def get_students(self) -> List[Student]:
        body = self._read("getStudents")
        if body is None:
            return []
        return _parse_students(body.get("data") or [])

    def get_users(self) -> List[User]:
        body = self._read("getUsers")
        if body is None:
            return []
        return _parse_users(body.get("data") or [])

    def get_app_settings(self) -> Optional[Dict[str, Any]]:
        body = self._read("getSettings")
        if body is None:
            return None
        data = body.get("data")
        return data if isinstance(data, dict) and data else None

    # -- writes ------------------------------------------------------

    def update_student(self, student: Student) -> bool:
        if not self.configured:
            logger.warning("Remote store URL not configured, student %s not persisted", student.id)
            return False

        payload = {"action": "updateStudent", "student": student.dump()}
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                self._post(payload)
                return True
            except (httpx.HTTPError, ValueError) as exc:
                if attempt == attempts:
                    logger.error(
                        "updateStudent %s failed after %d attempts: %s", student.id, attempts, exc,
                    )
                    return False
                delay = self.retry_backoff * attempt
                logger.warning(
                    "updateStudent %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    student.id, attempt, attempts, delay, exc,
                )
                self._sleep(delay)
        return False

    def update_students_bulk(self, students: Sequence[Student]) -> bool:
        payload = {"action": "syncData", "students": [s.dump() for s in students]}
        return self._write(payload, timeout=self.bulk_timeout)

    def update_users(self, users: Sequence[User]) -> bool:
        return self._write({"action": "updateUsers", "users": [u.dump() for u in users]})

    def save_app_settings(self, settings: Dict[str, Any]) -> bool:
        return self._write({"action": "saveSettings", "settings": settings})

    def upload_file(
        self,
        content: bytes,
        file_name: str,
        mime_type: str,
        student_id: str,
        category: str,
    ) -> Optional[str]:
        if not self.configured:
            logger.warning("Remote store URL not configured, upload of %s skipped", file_name)
            return None
        payload = {
            "action": "uploadFile",
            "fileBase64": base64.b64encode(content).decode("ascii"),
            "fileName": file_name,
            "mimeType": mime_type,
            "size": f"{len(content) / 1024 / 1024:.2f} MB",
            "studentId": student_id,
            "docId": new_id(),
            "category": category,
        }
        try:
            body = self._post(payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Upload of %s for student %s failed: %s", file_name, student_id, exc)
            return None
        return body.get("url")

    def health(self) -> Dict[str, Any]:
        return {"backend": self.name, "url": "✅ Set" if self.configured else "❌ Not Set"}


# ============================================
# MongoDB
# ============================================

STUDENT_COLLECTION = "student"
USER_COLLECTION = "user"
SETTINGS_COLLECTION = "settings"
FILE_COLLECTION = "file"
SETTINGS_ID = "app"


class MongoStore(StudentStore):
    name = "mongo"

    def __init__(self, database=None):
        import database as mongo

        self._mongo = mongo
        self.db = mongo.db if database is None else database

    def _safe_read(self, label: str, fn, default):
        try:
            return fn()
        except Exception as exc:
            logger.error("Mongo %s failed: %s", label, exc)
            return default

    def _safe_write(self, label: str, fn) -> bool:
        try:
            fn()
            return True
        except Exception as exc:
            logger.error("Mongo %s failed: %s", label, exc)
            return False

    def get_students(self) -> List[Student]:
        rows = self._safe_read(
            "getStudents", lambda: self._mongo.get_documents(STUDENT_COLLECTION, database=self.db), [],
        )
        return _parse_students(rows)

    def get_users(self) -> List[User]:
        rows = self._safe_read(
            "getUsers", lambda: self._mongo.get_documents(USER_COLLECTION, database=self.db), [],
        )
        return _parse_users(rows)

    def get_app_settings(self) -> Optional[Dict[str, Any]]:
        doc = self._safe_read(
            "getSettings",
            lambda: self._mongo.get_document_by_id(SETTINGS_COLLECTION, SETTINGS_ID, database=self.db),
            None,
        )
        if not doc:
            return None
        doc.pop("id", None)
        return doc

    def update_student(self, student: Student) -> bool:
        return self._safe_write(
            "updateStudent",
            lambda: self._mongo.upsert_document(STUDENT_COLLECTION, student.id, student.dump(), database=self.db),
        )

    def update_students_bulk(self, students: Sequence[Student]) -> bool:
        return self._safe_write(
            "syncData",
            lambda: self._mongo.replace_collection(STUDENT_COLLECTION, [s.dump() for s in students], database=self.db),
        )

    def update_users(self, users: Sequence[User]) -> bool:
        return self._safe_write(
            "updateUsers",
            lambda: self._mongo.replace_collection(USER_COLLECTION, [u.dump() for u in users], database=self.db),
        )

    def save_app_settings(self, settings: Dict[str, Any]) -> bool:
        return self._safe_write(
            "saveSettings",
            lambda: self._mongo.upsert_document(SETTINGS_COLLECTION, SETTINGS_ID, settings, database=self.db),
        )

    def upload_file(
        self,
        content: bytes,
        file_name: str,
        mime_type: str,
        student_id: str,
        category: str,
    ) -> Optional[str]:
        file_id = self._mongo.new_object_id()
        data = {
            "fileName": file_name,
            "mimeType": mime_type,
            "studentId": student_id,
            "category": category,
            "fileBase64": base64.b64encode(content).decode("ascii"),
        }
        ok = self._safe_write(
            "uploadFile",
            lambda: self._mongo.upsert_document(FILE_COLLECTION, file_id, data, database=self.db),
        )
        return f"/files/{file_id}" if ok else None

    def get_file(self, file_id: str) -> Optional[Dict[str, Any]]:
        doc = self._safe_read(
            "getFile", lambda: self._mongo.get_document_by_id(FILE_COLLECTION, file_id, database=self.db), None,
        )
        if not doc:
            return None
        return {
            "fileName": doc.get("fileName", ""),
            "mimeType": doc.get("mimeType") or "application/octet-stream",
            "content": base64.b64decode(doc.get("fileBase64", "")),
        }

    def health(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {"backend": self.name, "database": "❌ Not Connected", "collections": []}
        try:
            if self.db is not None:
                info["collections"] = self.db.list_collection_names()
                info["database"] = "✅ Connected"
        except Exception as exc:
            info["error"] = str(exc)
        return info


# ============================================
# In-process
# ============================================

class MemoryStore(StudentStore):
    """Keeps dumped records in dictionaries, as the other backends would on the wire."""

    name = "memory"

    def __init__(
        self,
        students: Optional[Sequence[Student]] = None,
        users: Optional[Sequence[User]] = None,
        settings: Optional[Dict[str, Any]] = None,
    ):
        if students is None or users is None:
            from fallback_data import fallback_students, fallback_users

            students = fallback_students() if students is None else students
            users = fallback_users() if users is None else users
        self._students: Dict[str, Dict[str, Any]] = {s.id: s.dump() for s in students}
        self._users: List[Dict[str, Any]] = [u.dump() for u in users]
        self._settings: Optional[Dict[str, Any]] = copy.deepcopy(settings)
        self._files: Dict[str, Dict[str, Any]] = {}

    def get_students(self) -> List[Student]:
        return _parse_students(list(self._students.values()))

    def get_users(self) -> List[User]:
        return _parse_users(self._users)

    def update_users(self, users: Sequence[User]) -> bool:
        self._users = [u.dump() for u in users]
        return True

    def get_app_settings(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._settings)

    def save_app_settings(self, settings: Dict[str, Any]) -> bool:
        self._settings = copy.deepcopy(settings)
        return True

    def update_student(self, student: Student) -> bool:
        self._students[student.id] = student.dump()
        return True

    def update_students_bulk(self, students: Sequence[Student]) -> bool:
        self._students = {s.id: s.dump() for s in students}
        return True

    def upload_file(
        self,
        content: bytes,
        file_name: str,
        mime_type: str,
        student_id: str,
        category: str,
    ) -> Optional[str]:
        file_id = new_id()
        self._files[file_id] = {
            "fileName": file_name,
            "mimeType": mime_type or "application/octet-stream",
            "content": bytes(content),
        }
        return f"/files/{file_id}"

    def get_file(self, file_id: str) -> Optional[Dict[str, Any]]:
        return self._files.get(file_id)

    def health(self) -> Dict[str, Any]:
        return {"backend": self.name, "students": len(self._students), "users": len(self._users)}


def build_store(backend: Optional[str] = None) -> StudentStore:
    backend = (backend or config.STORE_BACKEND).lower()
    if backend == "remote":
        return RemoteStore()
    if backend == "mongo":
        return MongoStore()
    if backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown store backend: {backend}")
