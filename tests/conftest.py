"""
Student Records Portal - Test Configuration and Fixtures
"""
import os

import pytest

# Keep tests off any real backend configured in a local .env
os.environ["STORE_BACKEND"] = "memory"
os.environ["REMOTE_STORE_URL"] = ""

from fastapi.testclient import TestClient

from app_settings import SettingsService
from portal import Portal
from schemas import Role, Student, User
from store import MemoryStore
from tests.factories import build_student, semester_record


@pytest.fixture
def student() -> Student:
    """A student with semester 1 filled in and nothing pending"""
    s = build_student()
    s.academic_records[1] = semester_record(1, {"Matematika": 80, "Bahasa Indonesia": 90})
    return s


@pytest.fixture
def staff_user() -> User:
    return User(id="u1", name="Bu Guru", username="guru", password="rahasia", role=Role.GURU)


@pytest.fixture
def memory_store(student, staff_user) -> MemoryStore:
    other = build_student("s2", nisn="0099999999", nis="9999", full_name="SITI AMINAH", class_name="VII B")
    return MemoryStore(students=[student, other], users=[staff_user])


@pytest.fixture
def settings_service(memory_store, tmp_path) -> SettingsService:
    return SettingsService(memory_store, local_path=str(tmp_path / "settings.json"))


@pytest.fixture
def portal(memory_store, settings_service) -> Portal:
    return Portal(memory_store, settings_service)


@pytest.fixture
def client(portal):
    """API client bound to the in-memory portal"""
    from main import app, get_portal

    app.dependency_overrides[get_portal] = lambda: portal
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
