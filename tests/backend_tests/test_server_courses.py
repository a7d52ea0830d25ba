"""
Course endpoints: CRUD, schema validation, activity logging, derived views
and the preview/confirm bulk import flow.
"""

import io

import pytest
import server
from storage import MemStorage

TEST_USER = "test-user"


@pytest.fixture()
def client(monkeypatch, tmp_path):
    monkeypatch.setattr(server, "_store", MemStorage())
    monkeypatch.setitem(server.app.config, "DEMO_USER_ID", TEST_USER)
    monkeypatch.setitem(server.app.config, "UPLOAD_DIR", str(tmp_path / "uploads"))
    server.app.config["TESTING"] = True
    with server.app.test_client() as c:
        yield c


def _course_payload(**overrides):
    payload = {
        "course_code": "MATH 1A",
        "title": "Calculus I",
        "units": 5,
        "category": "MAJOR_PREP",
    }
    payload.update(overrides)
    return payload


def _create(client, **overrides):
    resp = client.post("/api/courses", json=_course_payload(**overrides))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


class TestCreateCourse:
    def test_returns_full_record(self, client):
        course = _create(client)
        assert course["id"]
        assert course["course_code"] == "MATH 1A"
        assert course["user_id"] == TEST_USER
        assert course["is_completed"] is False
        assert course["prerequisites"] == []

    def test_ids_unique_and_stable(self, client):
        ids = [_create(client, course_code=f"MATH {i}")["id"] for i in range(5)]
        assert len(set(ids)) == 5
        listed = client.get("/api/courses").get_json()
        assert sorted(c["id"] for c in listed) == sorted(ids)

    def test_owner_comes_from_user_context(self, client):
        course = _create(client, user_id="someone-else")
        assert course["user_id"] == TEST_USER

    def test_prereq_string_is_split(self, client):
        course = _create(client, prerequisites="MATH 1A, MATH 1B")
        assert course["prerequisites"] == ["MATH 1A", "MATH 1B"]

    def test_missing_title_is_400(self, client):
        resp = client.post("/api/courses", json={"course_code": "MATH 1A", "units": 3})
        assert resp.status_code == 400
        err = resp.get_json()["error"]
        assert err["error_code"] == "INVALID_INPUT"
        assert any(d["field"] == "title" for d in err["details"])

    def test_negative_units_is_400(self, client):
        resp = client.post("/api/courses", json=_course_payload(units=-1))
        assert resp.status_code == 400

    def test_non_json_body_is_400(self, client):
        resp = client.post("/api/courses", data="nope", content_type="text/plain")
        assert resp.status_code == 400

    def test_validation_failure_writes_nothing(self, client):
        client.post("/api/courses", json={"title": "no code"})
        assert client.get("/api/courses").get_json() == []
        assert client.get("/api/activity").get_json() == []

    def test_logs_activity(self, client):
        course = _create(client)
        activity = client.get("/api/activity").get_json()
        assert activity[0]["action"] == "CREATE_COURSE"
        assert activity[0]["entity_id"] == course["id"]
        assert activity[0]["description"] == "Added course MATH 1A - Calculus I"


class TestGetCourse:
    def test_found(self, client):
        course = _create(client)
        assert client.get(f"/api/courses/{course['id']}").get_json() == course

    def test_missing_is_404(self, client):
        resp = client.get("/api/courses/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["error_code"] == "NOT_FOUND"


class TestUpdateCourse:
    def test_only_supplied_fields_change(self, client):
        course = _create(client, grade="A")
        resp = client.put(f"/api/courses/{course['id']}", json={"is_completed": True})
        assert resp.status_code == 200
        updated = resp.get_json()
        assert updated["is_completed"] is True
        assert updated["grade"] == "A"
        assert updated["title"] == "Calculus I"

    def test_explicit_false_overwrites(self, client):
        course = _create(client, is_completed=True)
        updated = client.put(f"/api/courses/{course['id']}", json={"is_completed": False}).get_json()
        assert updated["is_completed"] is False

    def test_missing_is_404_and_collection_unchanged(self, client):
        _create(client)
        before = client.get("/api/courses").get_json()
        resp = client.put("/api/courses/missing", json={"title": "X"})
        assert resp.status_code == 404
        assert client.get("/api/courses").get_json() == before

    def test_invalid_update_is_400(self, client):
        course = _create(client)
        resp = client.put(f"/api/courses/{course['id']}", json={"units": "lots"})
        assert resp.status_code == 400

    def test_null_required_fields_rejected(self, client):
        course = _create(client)
        resp = client.put(
            f"/api/courses/{course['id']}",
            json={"course_code": None, "title": None, "units": None},
        )
        assert resp.status_code == 400
        err = resp.get_json()["error"]
        assert err["error_code"] == "INVALID_INPUT"
        assert {d["field"] for d in err["details"]} == {"course_code", "title", "units"}
        assert client.get(f"/api/courses/{course['id']}").get_json() == course
        assert [a["action"] for a in client.get("/api/activity").get_json()] == ["CREATE_COURSE"]

    def test_null_allowed_on_optional_fields(self, client):
        course = _create(client, grade="A")
        updated = client.put(f"/api/courses/{course['id']}", json={"grade": None}).get_json()
        assert updated["grade"] is None
        assert updated["course_code"] == "MATH 1A"

    def test_logs_activity(self, client):
        course = _create(client)
        client.put(f"/api/courses/{course['id']}", json={"grade": "B"})
        assert client.get("/api/activity").get_json()[0]["action"] == "UPDATE_COURSE"


class TestDeleteCourse:
    def test_delete_then_404(self, client):
        course = _create(client)
        first = client.delete(f"/api/courses/{course['id']}")
        assert first.status_code == 200
        assert first.get_json() == {"success": True}
        second = client.delete(f"/api/courses/{course['id']}")
        assert second.status_code == 404

    def test_logs_activity(self, client):
        course = _create(client)
        client.delete(f"/api/courses/{course['id']}")
        entry = client.get("/api/activity").get_json()[0]
        assert entry["action"] == "DELETE_COURSE"
        assert entry["entity_id"] == course["id"]


class TestDerivedViews:
    def test_prerequisite_chain(self, client):
        _create(client, course_code="MATH 2A", title="Calculus II", prerequisites=["MATH 1A"])
        prereq = _create(client, course_code="MATH 1A", is_completed=True)
        chain = client.get("/api/courses/prerequisite-chain").get_json()
        assert chain["chains"][0]["ready"] is True
        assert chain["satisfied"] == 1

        client.delete(f"/api/courses/{prereq['id']}")
        chain = client.get("/api/courses/prerequisite-chain").get_json()
        assert chain["chains"][0]["prerequisites"] == []
        assert chain["chains"][0]["unresolved_codes"] == ["MATH 1A"]

    def test_categorized(self, client):
        _create(client, course_code="A 1", is_completed=True)
        _create(client, course_code="A 2", semester_taken="Fall 2026")
        _create(client, course_code="A 3")
        counts = client.get("/api/courses/categorized").get_json()["counts"]
        assert counts == {"completed": 1, "in_progress": 1, "planned": 1}


class TestBulkImport:
    def test_preview_parses_without_persisting(self, client):
        text = "MATH 300|College Algebra|4|MATH 120\nnot a recognized format"
        resp = client.post("/api/courses/import/preview", json={"text": text})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["count"] == 1
        assert data["courses"][0]["prerequisites"] == "MATH 120"
        assert client.get("/api/courses").get_json() == []

    def test_preview_requires_text(self, client):
        assert client.post("/api/courses/import/preview", json={"text": "  "}).status_code == 400

    def test_confirm_persists_each_draft(self, client):
        drafts = client.post(
            "/api/courses/import/preview",
            json={"text": "PHYS 360|General Physics II|4|PHYS 350, MATH 400\nENGL 101 - Composition (3 units)"},
        ).get_json()["courses"]
        resp = client.post("/api/courses/import", json={"courses": drafts})
        assert resp.status_code == 200
        summary = resp.get_json()
        assert summary["imported"] == 2
        assert summary["failed"] == 0
        stored = {c["course_code"]: c for c in client.get("/api/courses").get_json()}
        assert stored["PHYS 360"]["prerequisites"] == ["PHYS 350", "MATH 400"]

    def test_partial_failure_keeps_successes(self, client):
        drafts = [
            {"course_code": "MATH 300", "title": "College Algebra", "units": 4, "prerequisites": ""},
            {"course_code": "", "title": "Broken", "units": 4},
        ]
        summary = client.post("/api/courses/import", json={"courses": drafts}).get_json()
        assert summary["imported"] == 1
        assert summary["failed"] == 1
        assert len(client.get("/api/courses").get_json()) == 1

    def test_confirm_requires_courses(self, client):
        assert client.post("/api/courses/import", json={"courses": []}).status_code == 400

    def test_confirm_logs_each_course_and_summary(self, client):
        drafts = [{"course_code": "ART 300", "title": "Art", "units": 3, "prerequisites": ""}]
        client.post("/api/courses/import", json={"courses": drafts})
        actions = [a["action"] for a in client.get("/api/activity").get_json()]
        assert actions == ["IMPORT_COURSES", "CREATE_COURSE"]

    def test_csv_preview(self, client):
        csv_bytes = b"course_code,title,units,prerequisites\nMATH 400,Calculus I,5,MATH 310\n"
        resp = client.post(
            "/api/courses/import/csv",
            data={"file": (io.BytesIO(csv_bytes), "courses.csv", "text/csv")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.get_json()["courses"][0]["course_code"] == "MATH 400"

    def test_csv_preview_rejects_pdf(self, client):
        resp = client.post(
            "/api/courses/import/csv",
            data={"file": (io.BytesIO(b"%PDF-1.4"), "courses.pdf", "application/pdf")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_FILE_TYPE"

    def test_csv_preview_empty_file(self, client):
        resp = client.post(
            "/api/courses/import/csv",
            data={"file": (io.BytesIO(b""), "courses.csv", "text/csv")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
