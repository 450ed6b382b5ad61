import base64
import binascii
import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field

import config
from corrections import CorrectionAction
from documents import DocumentAction
from errors import NotFoundError, PortalError, ValidationError
from logging_setup import setup_logging
from portal import Portal
from queues import QueueKind
from schemas import Attachment, CamelModel, Role, User
from store import build_store

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Sistem Data Siswa API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_portal: Optional[Portal] = None


def get_portal() -> Portal:
    global _portal
    if _portal is None:
        _portal = Portal(build_store())
    return _portal


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


class CorrectionIn(CamelModel):
    field_key: str
    proposed_value: str
    student_reason: str = ""
    field_name: str = ""
    original_value: Optional[str] = None
    attachment: Optional[Attachment] = None


class ResolveCorrectionIn(CamelModel):
    action: CorrectionAction
    admin_note: str = ""
    verifier_name: Optional[str] = None


class ApproveAllIn(CamelModel):
    request_ids: Optional[List[str]] = None
    verifier_name: Optional[str] = None


class DocumentIn(CamelModel):
    file_name: str
    mime_type: str = ""
    category: str
    file_base64: str = Field(..., description="Isi file dalam base64")
    semester: Optional[int] = Field(None, ge=1, le=6)
    page: Optional[int] = Field(None, ge=1)


class ResolveDocumentIn(CamelModel):
    action: DocumentAction
    admin_note: str = ""
    verifier_name: Optional[str] = None


class LoginIn(CamelModel):
    username: str
    password: str


@app.get("/")
def root():
    return {"message": "Sistem Data Siswa API"}


@app.get("/test")
def test_store(portal: Portal = Depends(get_portal)):
    resp = {
        "backend": "✅ Running",
        "store": portal.store.health(),
        "config": config.describe(),
    }
    try:
        resp["students"] = len(portal.students)
        resp["fallback"] = portal.using_fallback
    except Exception as e:
        resp["error"] = str(e)
    return resp


# Students
@app.get("/students")
def list_students(
    q: Optional[str] = None,
    class_name: Optional[str] = Query(None, alias="className"),
    portal: Portal = Depends(get_portal),
) -> List[Dict[str, Any]]:
    students = portal.students
    if class_name:
        students = [s for s in students if s.class_name == class_name]
    if q:
        needle = q.lower()
        students = [
            s for s in students
            if needle in s.full_name.lower() or needle in s.nisn or needle in s.nis
        ]
    return [s.dump() for s in students]


@app.post("/students/reload")
def reload_students(portal: Portal = Depends(get_portal)):
    students = portal.load_students(refresh=True)
    return {"count": len(students), "fallback": portal.using_fallback}


@app.post("/students/sync")
def sync_students(portal: Portal = Depends(get_portal)):
    portal.sync_all()
    return {"count": len(portal.students)}


@app.get("/students/{student_id}")
def get_student(student_id: str, portal: Portal = Depends(get_portal)):
    return portal.get_student(student_id).dump()


@app.get("/students/{student_id}/grades")
def get_grades(student_id: str, portal: Portal = Depends(get_portal)):
    return portal.grade_report(student_id)


# Corrections
@app.post("/students/{student_id}/corrections", status_code=201)
def submit_correction(student_id: str, payload: CorrectionIn, portal: Portal = Depends(get_portal)):
    request = portal.submit_correction(
        student_id,
        payload.field_key,
        payload.proposed_value,
        payload.student_reason,
        field_name=payload.field_name,
        original_value=payload.original_value,
        attachment=payload.attachment,
    )
    return request.dump()


@app.post("/students/{student_id}/corrections/approve-all")
def approve_all(student_id: str, payload: ApproveAllIn, portal: Portal = Depends(get_portal)):
    result = portal.approve_all(student_id, payload.request_ids, payload.verifier_name)
    return {
        "student": result.student.dump(),
        "outcomes": {rid: outcome.value for rid, outcome in result.outcomes.items()},
    }


@app.post("/students/{student_id}/corrections/{request_id}/resolve")
def resolve_correction(
    student_id: str,
    request_id: str,
    payload: ResolveCorrectionIn,
    portal: Portal = Depends(get_portal),
):
    resolution = portal.resolve_correction(
        student_id, request_id, payload.action, payload.admin_note, payload.verifier_name,
    )
    return {
        "student": resolution.student.dump(),
        "request": resolution.request.dump(),
        "outcome": resolution.outcome.value,
    }


# Documents
@app.post("/students/{student_id}/documents", status_code=201)
def upload_document(student_id: str, payload: DocumentIn, portal: Portal = Depends(get_portal)):
    try:
        content = base64.b64decode(payload.file_base64, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("File tidak valid (base64).", field="fileBase64")
    doc = portal.upload_document(
        student_id, content, payload.file_name, payload.mime_type, payload.category,
        semester=payload.semester, page=payload.page,
    )
    return doc.dump()


@app.post("/students/{student_id}/documents/{doc_id}/resolve")
def resolve_document(
    student_id: str,
    doc_id: str,
    payload: ResolveDocumentIn,
    portal: Portal = Depends(get_portal),
):
    student = portal.resolve_document(
        student_id, doc_id, payload.action, payload.admin_note, payload.verifier_name,
    )
    return student.dump()


@app.delete("/students/{student_id}/documents/{doc_id}")
def delete_document(student_id: str, doc_id: str, portal: Portal = Depends(get_portal)):
    return portal.delete_document(student_id, doc_id).dump()


@app.get("/files/{file_id}")
def get_file(file_id: str, portal: Portal = Depends(get_portal)):
    stored = portal.store.get_file(file_id)
    if stored is None:
        raise NotFoundError("File", file_id)
    return Response(content=stored["content"], media_type=stored["mimeType"])


# Derived views
@app.get("/dashboard")
def dashboard(class_name: Optional[str] = Query(None, alias="className"), portal: Portal = Depends(get_portal)):
    return portal.dashboard(class_name)


@app.get("/monitoring")
def monitoring(class_name: Optional[str] = Query(None, alias="className"), portal: Portal = Depends(get_portal)):
    return [c.to_dict() for c in portal.monitoring(class_name)]


@app.get("/queues/{kind}")
def verification_queue(kind: QueueKind, portal: Portal = Depends(get_portal)):
    return [item.to_dict() for item in portal.queue(kind)]


@app.get("/notifications")
def notifications(
    role: Role,
    student_id: Optional[str] = Query(None, alias="studentId"),
    portal: Portal = Depends(get_portal),
):
    return [n.to_dict() for n in portal.notifications(role, student_id)]


@app.get("/history")
def history(portal: Portal = Depends(get_portal)):
    return [entry.to_dict() for entry in portal.history()]


# Settings & users
@app.get("/settings")
def get_settings(portal: Portal = Depends(get_portal)):
    settings = portal.settings.load()
    return {**settings.dump(), "source": portal.settings.source}


@app.put("/settings")
def save_settings(payload: Dict[str, Any], portal: Portal = Depends(get_portal)):
    remote = portal.settings.save(payload)
    return {"remote": remote, "settings": portal.settings.load().dump()}


@app.get("/users")
def list_users(portal: Portal = Depends(get_portal)):
    return [u.dump() for u in portal.users()]


@app.put("/users")
def update_users(payload: List[User], portal: Portal = Depends(get_portal)):
    portal.update_users(payload)
    return {"count": len(payload)}


@app.post("/login")
def login(payload: LoginIn, portal: Portal = Depends(get_portal)):
    return portal.login(payload.username, payload.password).to_dict()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
