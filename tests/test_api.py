"""
API Tests
HTTP surface over an in-memory portal.
"""
import base64


class TestHealth:
    def test_root(self, client):
        assert client.get("/").json()["message"] == "Sistem Data Siswa API"

    def test_diagnostics(self, client):
        body = client.get("/test").json()
        assert body["store"]["backend"] == "memory"
        assert body["students"] == 2
        assert body["fallback"] is False


class TestStudents:
    def test_list_and_filter(self, client):
        assert len(client.get("/students").json()) == 2
        filtered = client.get("/students", params={"className": "VII B"}).json()
        assert [s["fullName"] for s in filtered] == ["SITI AMINAH"]
        assert [s["id"] for s in client.get("/students", params={"q": "budi"}).json()] == ["s1"]

    def test_get_student_camel_case(self, client):
        body = client.get("/students/s1").json()
        assert body["fullName"] == "BUDI SANTOSO"
        assert "academicRecords" in body

    def test_not_found(self, client):
        response = client.get("/students/nope")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_grades(self, client):
        body = client.get("/students/s1/grades").json()
        assert body["subjects"]["Matematika"]["scores"]["1"] == 80


class TestCorrections:
    def _submit(self, client, **overrides):
        payload = {"fieldKey": "address", "proposedValue": "X", "studentReason": "Pindah"}
        payload.update(overrides)
        return client.post("/students/s1/corrections", json=payload)

    def test_submit_and_approve(self, client):
        response = self._submit(client)
        assert response.status_code == 201
        request_id = response.json()["id"]

        resolved = client.post(
            f"/students/s1/corrections/{request_id}/resolve",
            json={"action": "APPROVE"},
        )

        assert resolved.status_code == 200
        body = resolved.json()
        assert body["outcome"] == "APPLIED"
        assert body["student"]["address"] == "X"
        assert body["request"]["status"] == "APPROVED"

    def test_reject_without_note(self, client):
        request_id = self._submit(client).json()["id"]
        response = client.post(
            f"/students/s1/corrections/{request_id}/resolve",
            json={"action": "REJECT", "adminNote": ""},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_missing_reason(self, client):
        response = self._submit(client, studentReason="")
        assert response.status_code == 422

    def test_unknown_field(self, client):
        response = self._submit(client, fieldKey="hobby")
        assert response.status_code == 422
        assert response.json()["code"] == "UNKNOWN_FIELD"

    def test_resolve_twice_conflicts(self, client):
        request_id = self._submit(client).json()["id"]
        url = f"/students/s1/corrections/{request_id}/resolve"
        client.post(url, json={"action": "APPROVE"})
        response = client.post(url, json={"action": "APPROVE"})
        assert response.status_code == 409

    def test_approve_all(self, client):
        self._submit(client)
        self._submit(client, fieldKey="grade-2-IPA", proposedValue="88")

        body = client.post("/students/s1/corrections/approve-all", json={}).json()

        assert sorted(body["outcomes"].values()) == ["APPLIED", "APPLIED"]


class TestDocuments:
    def _upload(self, client, **overrides):
        payload = {
            "fileName": "kk.pdf",
            "mimeType": "application/pdf",
            "category": "KK",
            "fileBase64": base64.b64encode(b"%PDF-1.4").decode(),
        }
        payload.update(overrides)
        return client.post("/students/s1/documents", json=payload)

    def test_upload_download_and_verify(self, client):
        doc = self._upload(client).json()
        assert doc["status"] == "PENDING"

        download = client.get(doc["url"])
        assert download.status_code == 200
        assert download.content == b"%PDF-1.4"

        response = client.post(
            f"/students/s1/documents/{doc['id']}/resolve",
            json={"action": "REVISION", "adminNote": "Buram"},
        )
        assert response.status_code == 200
        assert response.json()["documents"][0]["status"] == "REVISION"

    def test_invalid_base64(self, client):
        response = self._upload(client, fileBase64="***")
        assert response.status_code == 422

    def test_delete(self, client):
        doc = self._upload(client).json()
        response = client.delete(f"/students/s1/documents/{doc['id']}")
        assert response.status_code == 200
        assert response.json()["documents"] == []

    def test_missing_file(self, client):
        assert client.get("/files/nope").status_code == 404


class TestViews:
    def test_queues(self, client):
        client.post("/students/s1/corrections", json={
            "fieldKey": "class-2", "proposedValue": "VII B", "studentReason": "Salah",
        })

        grade = client.get("/queues/grade").json()
        bio = client.get("/queues/bio").json()

        assert len(grade) == 1 and grade[0]["type"] == "REQ"
        assert bio == []
        assert client.get("/queues/unknown").status_code == 422

    def test_dashboard_and_monitoring(self, client):
        assert client.get("/dashboard").json()["totalStudents"] == 2
        assert client.get("/dashboard", params={"className": "VII B"}).json()["totalStudents"] == 1
        monitoring = client.get("/monitoring").json()
        assert {m["studentId"] for m in monitoring} == {"s1", "s2"}

    def test_notifications_and_history(self, client):
        client.post("/students/s1/corrections", json={
            "fieldKey": "address", "proposedValue": "X", "studentReason": "Pindah",
        })
        staff = client.get("/notifications", params={"role": "ADMIN"}).json()
        assert [n["type"] for n in staff] == ["ADMIN_BIO_VERIFY"]
        assert client.get("/history").json() == []


class TestSettingsAndLogin:
    def test_settings_round_trip(self, client):
        assert client.get("/settings").json()["adminName"] == "Administrator"

        response = client.put("/settings", json={"adminName": "Pak Kepala", "schoolData": {"name": "SMPN 3 Pacet"}})

        assert response.json()["remote"] is True
        assert client.get("/settings").json()["adminName"] == "Pak Kepala"

    def test_users(self, client):
        users = client.get("/users").json()
        assert [u["username"] for u in users] == ["guru"]
        response = client.put("/users", json=users + [
            {"id": "u2", "name": "Admin", "username": "admin", "password": "x", "role": "ADMIN"},
        ])
        assert response.json()["count"] == 2

    def test_login(self, client):
        response = client.post("/login", json={"username": "0012345678", "password": "1234"})
        assert response.json() == {"role": "STUDENT", "name": "BUDI SANTOSO", "userId": None, "studentId": "s1"}

    def test_login_failure(self, client):
        response = client.post("/login", json={"username": "guru", "password": "salah"})
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_FAILED"
