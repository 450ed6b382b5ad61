"""
Unit Tests for the Settings Service
Tests for: load order, caching, save/invalidate, accessors
"""
import json

from app_settings import SettingsService
from grading import DEFAULT_ACTIVE_DOCS, DEFAULT_RECAP_SUBJECTS
from store import MemoryStore


class FailingSettingsStore(MemoryStore):
    def __init__(self):
        super().__init__(students=[], users=[])
        self.reads = 0

    def get_app_settings(self):
        self.reads += 1
        return None

    def save_app_settings(self, settings):
        return False


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")


class TestLoadOrder:
    def test_defaults_when_nothing_stored(self, tmp_path):
        service = SettingsService(FailingSettingsStore(), local_path=str(tmp_path / "s.json"))

        assert service.admin_name() == "Administrator"
        assert service.rapor_page_count() == 3
        assert service.recap_subjects() == DEFAULT_RECAP_SUBJECTS
        assert service.active_docs() == DEFAULT_ACTIVE_DOCS
        assert service.source == "default"

    def test_local_file_used_when_remote_missing(self, tmp_path):
        path = tmp_path / "s.json"
        _write(path, {"adminName": "Bu Lokal", "schoolData": {"name": "SMP Lokal"}})

        service = SettingsService(FailingSettingsStore(), local_path=str(path))

        assert service.admin_name() == "Bu Lokal"
        assert service.school_name() == "SMP Lokal"
        assert service.source == "local"

    def test_remote_preferred_over_local(self, tmp_path):
        path = tmp_path / "s.json"
        _write(path, {"adminName": "Bu Lokal", "schoolData": {"name": "SMP Lokal"}})
        store = MemoryStore(students=[], users=[], settings={
            "adminName": "Pak Remote",
            "schoolData": {"name": "SMPN 3 Pacet"},
            "academicData": {"activeYear": "2025/2026"},
            "docConfig": {"raporPageCount": 4},
        })

        service = SettingsService(store, local_path=str(path))

        assert service.admin_name() == "Pak Remote"
        assert service.active_academic_year() == "2025/2026"
        assert service.rapor_page_count() == 4
        assert service.source == "remote"

    def test_remote_without_school_data_is_ignored(self, tmp_path):
        store = MemoryStore(students=[], users=[], settings={"adminName": "Setengah"})
        service = SettingsService(store, local_path=str(tmp_path / "s.json"))
        assert service.admin_name() == "Administrator"

    def test_corrupt_local_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text("{not json", encoding="utf-8")
        service = SettingsService(FailingSettingsStore(), local_path=str(path))
        assert service.source is None
        assert service.admin_name() == "Administrator"
        assert service.source == "default"

    def test_unknown_keys_are_kept(self, tmp_path):
        path = tmp_path / "s.json"
        _write(path, {"schoolData": {"name": "X"}, "activeDocs": ["KK"], "p5DataMap": {"a": []}})
        service = SettingsService(FailingSettingsStore(), local_path=str(path))

        assert service.active_docs() == ["KK"]
        assert service.load().dump()["p5DataMap"] == {"a": []}


class TestCacheAndSave:
    def test_load_is_cached(self, tmp_path):
        store = FailingSettingsStore()
        service = SettingsService(store, local_path=str(tmp_path / "s.json"))
        service.load()
        service.admin_name()
        service.rapor_page_count()
        assert store.reads == 1

    def test_save_writes_both_and_invalidates(self, tmp_path):
        path = tmp_path / "s.json"
        store = MemoryStore(students=[], users=[])
        service = SettingsService(store, local_path=str(path))
        assert service.admin_name() == "Administrator"

        remote_ok = service.save({"adminName": "Pak Baru", "schoolData": {"name": "SMPN 3 Pacet"}})

        assert remote_ok is True
        assert service.admin_name() == "Pak Baru"
        assert json.loads(path.read_text(encoding="utf-8"))["adminName"] == "Pak Baru"
        assert store.get_app_settings()["adminName"] == "Pak Baru"
        assert store.get_app_settings()["raporPageCount"] == 3

    def test_save_falls_back_to_local(self, tmp_path):
        path = tmp_path / "s.json"
        service = SettingsService(FailingSettingsStore(), local_path=str(path))

        remote_ok = service.save({"adminName": "Offline", "schoolData": {"name": "X"}})

        assert remote_ok is False
        assert service.admin_name() == "Offline"
        assert service.source == "local"
