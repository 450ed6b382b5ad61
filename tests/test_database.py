"""
Tests for the Mongo helpers and MongoStore
A small in-memory stand-in replaces the pymongo database handle.
"""
from types import SimpleNamespace

import pytest

import database
from schemas import Role, User
from store import MongoStore
from tests.factories import build_student


class FakeCursor(list):
    def limit(self, n):
        return FakeCursor(self[:n] if n else self)


class FakeCollection:
    def __init__(self, database=None, name=""):
        self.database = database
        self.name = name
        self.docs = []

    def _match(self, doc, flt):
        return all(doc.get(k) == v for k, v in flt.items())

    def find(self, flt):
        return FakeCursor(dict(d) for d in self.docs if self._match(d, flt))

    def find_one(self, flt):
        for d in self.docs:
            if self._match(d, flt):
                return dict(d, _id="oid")
        return None

    def replace_one(self, flt, data, upsert=False):
        self.docs = [d for d in self.docs if not self._match(d, flt)]
        self.docs.append(dict(data))
        return SimpleNamespace(acknowledged=True)

    def delete_many(self, flt):
        self.docs = [d for d in self.docs if not self._match(d, flt)]

    def insert_many(self, docs):
        self.docs.extend(dict(d) for d in docs)

    def rename(self, new_name, dropTarget=False):
        if new_name in self.database and not dropTarget:
            raise RuntimeError("target exists")
        del self.database[self.name]
        self.name = new_name
        self.database[new_name] = self


class FakeDatabase(dict):
    def __missing__(self, name):
        self[name] = FakeCollection(self, name)
        return self[name]

    def list_collection_names(self):
        return list(self.keys())


@pytest.fixture
def fake_db():
    return FakeDatabase()


class TestHelpers:
    def test_upsert_and_get(self, fake_db):
        database.upsert_document("student", "a", {"fullName": "A"}, database=fake_db)
        database.upsert_document("student", "a", {"fullName": "B"}, database=fake_db)

        assert database.get_document_by_id("student", "a", database=fake_db) == {"fullName": "B", "id": "a"}
        assert len(database.get_documents("student", database=fake_db)) == 1

    def test_replace_collection(self, fake_db):
        database.replace_collection("user", [{"id": "1"}, {"id": "2"}], database=fake_db)
        database.replace_collection("user", [{"id": "3"}], database=fake_db)
        assert [d["id"] for d in database.get_documents("user", database=fake_db)] == ["3"]
        assert fake_db.list_collection_names() == ["user"]

    def test_replace_collection_with_nothing_empties_it(self, fake_db):
        database.replace_collection("user", [{"id": "1"}], database=fake_db)
        assert database.replace_collection("user", [], database=fake_db) == 0
        assert database.get_documents("user", database=fake_db) == []

    def test_failed_replace_keeps_previous_content(self, fake_db):
        database.replace_collection("student", [{"id": "a"}], database=fake_db)

        def broken_insert(docs):
            raise ConnectionError("mongo down")

        fake_db["student_staging"].insert_many = broken_insert
        with pytest.raises(ConnectionError):
            database.replace_collection("student", [{"id": "b"}], database=fake_db)

        assert [d["id"] for d in database.get_documents("student", database=fake_db)] == ["a"]

    def test_uninitialised_database(self, monkeypatch):
        monkeypatch.setattr(database, "db", None)
        with pytest.raises(RuntimeError):
            database.get_documents("student")


class TestMongoStore:
    def test_students_round_trip(self, fake_db):
        store = MongoStore(fake_db)
        student = build_student("a")

        assert store.update_student(student)
        loaded = store.get_students()

        assert [s.id for s in loaded] == ["a"]
        assert loaded[0].full_name == "BUDI SANTOSO"

    def test_bulk_and_users(self, fake_db):
        store = MongoStore(fake_db)
        assert store.update_students_bulk([build_student("a"), build_student("b")])
        assert store.update_users([User(id="u", name="Guru", username="guru", role=Role.GURU)])

        assert len(store.get_students()) == 2
        assert store.get_users()[0].username == "guru"

    def test_failed_bulk_sync_keeps_stored_students(self, fake_db):
        store = MongoStore(fake_db)
        store.update_student(build_student("a"))

        def broken_insert(docs):
            raise ConnectionError("mongo down")

        fake_db["student_staging"].insert_many = broken_insert

        assert store.update_students_bulk([build_student("b")]) is False
        assert [s.id for s in store.get_students()] == ["a"]

    def test_settings(self, fake_db):
        store = MongoStore(fake_db)
        assert store.get_app_settings() is None
        assert store.save_app_settings({"adminName": "Pak Kepala"})
        assert store.get_app_settings() == {"adminName": "Pak Kepala"}

    def test_files(self, fake_db):
        store = MongoStore(fake_db)
        url = store.upload_file(b"isi", "kk.pdf", "application/pdf", "a", "KK")

        stored = store.get_file(url.rsplit("/", 1)[-1])

        assert stored["content"] == b"isi"
        assert stored["mimeType"] == "application/pdf"

    def test_read_failure_returns_empty(self):
        class BrokenDatabase(dict):
            def __getitem__(self, name):
                raise ConnectionError("mongo down")

        store = MongoStore(BrokenDatabase())
        assert store.get_students() == []
        assert store.get_app_settings() is None
        assert store.update_student(build_student()) is False

    def test_health(self, fake_db):
        store = MongoStore(fake_db)
        store.update_student(build_student())
        assert store.health()["collections"] == ["student"]
