"""End-to-end tests through the FastAPI app with the database and renderer overridden."""

import uuid

from sqlalchemy.exc import OperationalError

from cleantrack.auth.security import create_access_token
from cleantrack.models.models import Photo


def _definition_payload(client_id, **overrides):
    payload = {
        "client_id": str(client_id),
        "title": "Weekly clean",
        "frequency": "weekly",
        "start_date": "2024-05-21",
        "end_date": "2024-06-18",
    }
    payload.update(overrides)
    return payload


class TestAuth:
    def test_missing_token(self, api):
        assert api.get("/recurring-jobs").status_code == 401

    def test_bad_token(self, api):
        r = api.get("/recurring-jobs", headers={"Authorization": "Bearer nope"})
        assert r.status_code == 401

    def test_unknown_user(self, api):
        token = create_access_token(str(uuid.uuid4()))
        r = api.get("/recurring-jobs", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401


class TestHealth:
    def test_health(self, api):
        r = api.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


class TestRecurringApi:
    def test_create_generates_instances(self, api, auth_headers, client_row):
        r = api.post("/recurring-jobs", json=_definition_payload(client_row.id), headers=auth_headers)
        assert r.status_code == 201
        definition = r.json()
        assert definition["last_generated_date"] == "2024-06-18"
        r = api.get(f"/recurring-jobs/{definition['id']}/instances", headers=auth_headers)
        assert [j["scheduled_date"] for j in r.json()] == [
            "2024-05-21", "2024-05-28", "2024-06-04", "2024-06-11", "2024-06-18",
        ]

    def test_generate_endpoint_is_idempotent(self, api, auth_headers, client_row):
        definition = api.post("/recurring-jobs?generate=false", json=_definition_payload(client_row.id), headers=auth_headers).json()
        first = api.post(f"/recurring-jobs/{definition['id']}/generate", headers=auth_headers)
        second = api.post(f"/recurring-jobs/{definition['id']}/generate", headers=auth_headers)
        assert len(first.json()) == 5
        assert second.json() == []

    def test_invalid_range_rejected(self, api, auth_headers, client_row):
        r = api.post("/recurring-jobs", json=_definition_payload(client_row.id, end_date="2024-01-01"), headers=auth_headers)
        assert r.status_code == 422

    def test_inactive_generate_is_400(self, api, auth_headers, client_row):
        definition = api.post("/recurring-jobs", json=_definition_payload(client_row.id, is_active=False), headers=auth_headers).json()
        r = api.post(f"/recurring-jobs/{definition['id']}/generate", headers=auth_headers)
        assert r.status_code == 400

    def test_unknown_definition_is_404(self, api, auth_headers):
        r = api.post(f"/recurring-jobs/{uuid.uuid4()}/generate", headers=auth_headers)
        assert r.status_code == 404

    def test_navigate(self, api, auth_headers, client_row):
        definition = api.post("/recurring-jobs", json=_definition_payload(client_row.id), headers=auth_headers).json()
        instances = api.get(f"/recurring-jobs/{definition['id']}/instances", headers=auth_headers).json()
        base = f"/recurring-jobs/{definition['id']}/instances"
        r = api.get(f"{base}/{instances[1]['id']}/navigate", params={"direction": "prev"}, headers=auth_headers)
        assert r.json()["id"] == instances[0]["id"]
        r = api.get(f"{base}/{instances[-1]['id']}/navigate", params={"direction": "next"}, headers=auth_headers)
        assert r.status_code == 200
        assert r.json() is None

    def test_patch_then_delete_future(self, api, auth_headers, client_row):
        definition = api.post("/recurring-jobs", json=_definition_payload(client_row.id), headers=auth_headers).json()
        r = api.patch(f"/recurring-jobs/{definition['id']}", json={"title": "Deep clean"}, headers=auth_headers)
        assert r.json()["title"] == "Deep clean"
        instances = api.get(f"/recurring-jobs/{definition['id']}/instances", headers=auth_headers).json()
        r = api.delete(
            f"/recurring-jobs/{definition['id']}",
            params={"scope": "future", "instance_id": instances[3]["id"]},
            headers=auth_headers,
        )
        assert r.json()["deleted_instances"] == 2
        remaining = api.get(f"/recurring-jobs/{definition['id']}/instances", headers=auth_headers).json()
        assert [j["title"] for j in remaining] == ["Weekly clean"] * 3
        assert api.get(f"/recurring-jobs/{definition['id']}", headers=auth_headers).json()["is_active"] is False

    def test_patch_null_required_field_rejected(self, api, auth_headers, client_row):
        definition = api.post("/recurring-jobs?generate=false", json=_definition_payload(client_row.id), headers=auth_headers).json()
        for field in ("start_date", "title", "frequency", "is_active", "client_id"):
            r = api.patch(f"/recurring-jobs/{definition['id']}", json={field: None}, headers=auth_headers)
            assert r.status_code == 422, field
        r = api.get(f"/recurring-jobs/{definition['id']}", headers=auth_headers)
        assert r.json()["start_date"] == "2024-05-21"
        assert r.json()["title"] == "Weekly clean"

    def test_patch_clears_end_date(self, api, auth_headers, client_row):
        definition = api.post("/recurring-jobs?generate=false", json=_definition_payload(client_row.id), headers=auth_headers).json()
        r = api.patch(f"/recurring-jobs/{definition['id']}", json={"end_date": None}, headers=auth_headers)
        assert r.status_code == 200
        assert r.json()["end_date"] is None

    def test_storage_failure_hides_sql(self, api, auth_headers, db, client_row, monkeypatch):
        definition = api.post("/recurring-jobs?generate=false", json=_definition_payload(client_row.id), headers=auth_headers).json()

        def failing_commit():
            raise OperationalError(
                "UPDATE recurring_jobs SET title=? WHERE recurring_jobs.id = ?", {}, Exception("sqlite3 disk I/O error")
            )

        monkeypatch.setattr(db, "commit", failing_commit)
        r = api.patch(f"/recurring-jobs/{definition['id']}", json={"title": "Deep clean"}, headers=auth_headers)
        assert r.status_code == 500
        assert r.json() == {"detail": "Failed to update recurring job"}
        for fragment in ("UPDATE", "recurring_jobs SET", "sqlite", "disk I/O"):
            assert fragment not in r.text

    def test_delete_all(self, api, auth_headers, client_row):
        definition = api.post("/recurring-jobs", json=_definition_payload(client_row.id), headers=auth_headers).json()
        r = api.delete(f"/recurring-jobs/{definition['id']}", params={"scope": "all"}, headers=auth_headers)
        assert r.json()["deleted_instances"] == 5
        assert api.get(f"/recurring-jobs/{definition['id']}", headers=auth_headers).status_code == 404


class TestJobsApi:
    def test_job_lifecycle(self, api, auth_headers, client_row):
        r = api.post("/jobs", json={
            "client_id": str(client_row.id),
            "title": "One-off clean",
            "scheduled_date": "2024-06-10",
        }, headers=auth_headers)
        assert r.status_code == 201
        job_id = r.json()["id"]
        api.post(f"/jobs/{job_id}/tasks", json={"title": "Hoover"}, headers=auth_headers)
        api.post(f"/jobs/{job_id}/notes", json={"content": "Dog on site"}, headers=auth_headers)
        r = api.post(f"/jobs/{job_id}/timer/start", headers=auth_headers)
        assert r.json()["status"] == "in_progress"
        r = api.post(f"/jobs/{job_id}/timer/stop", headers=auth_headers)
        assert r.json()["status"] == "completed"
        detail = api.get(f"/jobs/{job_id}", headers=auth_headers).json()
        assert detail["client"]["name"] == "Jane Smith"
        assert [t["title"] for t in detail["tasks"]] == ["Hoover"]
        assert [n["content"] for n in detail["notes"]] == ["Dog on site"]

    def test_invalid_transition_is_400(self, api, auth_headers, job):
        r = api.post(f"/jobs/{job.id}/status", json={"status": "completed"}, headers=auth_headers)
        assert r.status_code == 400
        assert "Cannot move job" in r.json()["detail"]

    def test_patch_null_title_rejected(self, api, auth_headers, job):
        assert api.patch(f"/jobs/{job.id}", json={"title": None}, headers=auth_headers).status_code == 422
        assert api.patch(f"/jobs/{job.id}", json={"scheduled_date": None}, headers=auth_headers).status_code == 422

    def test_delete_photo_removes_file(self, api, auth_headers, job, storage):
        storage.upload("jobs/p.jpg", b"jpeg", "image/jpeg")
        photo = api.post(f"/jobs/{job.id}/photos", json={"file_path": "jobs/p.jpg", "file_name": "p.jpg"}, headers=auth_headers).json()
        r = api.delete(f"/jobs/{job.id}/photos/{photo['id']}", headers=auth_headers)
        assert r.status_code == 200
        assert not storage.exists("jobs/p.jpg")


class TestReportsApi:
    def test_configuration_roundtrip(self, api, auth_headers):
        r = api.get("/reports/configuration", headers=auth_headers)
        assert r.json()["company_name"] == "Sparkle Cleaning"
        r = api.patch("/reports/configuration", json={"primary_color": "#000000"}, headers=auth_headers)
        assert r.json()["primary_color"] == "#000000"

    def test_bad_color_rejected(self, api, auth_headers):
        r = api.patch("/reports/configuration", json={"primary_color": "blue"}, headers=auth_headers)
        assert r.status_code == 422

    def test_null_required_setting_rejected(self, api, auth_headers):
        for field in ("company_name", "primary_color", "include_photos", "max_photos_per_report", "report_template"):
            r = api.patch("/reports/configuration", json={field: None}, headers=auth_headers)
            assert r.status_code == 422, field
        assert api.get("/reports/configuration", headers=auth_headers).json()["company_name"] == "Sparkle Cleaning"

    def test_logo_and_texts_can_be_cleared(self, api, auth_headers):
        api.patch("/reports/configuration", json={"custom_footer_text": "Thank you"}, headers=auth_headers)
        r = api.patch("/reports/configuration", json={"custom_footer_text": None, "company_logo_url": None}, headers=auth_headers)
        assert r.status_code == 200
        assert r.json()["custom_footer_text"] is None

    def test_templates_listing_and_selection(self, api, auth_headers, job):
        r = api.get("/reports/templates", headers=auth_headers)
        assert r.status_code == 200
        assert {t["name"] for t in r.json()} == {"standard", "compact"}
        assert api.patch("/reports/configuration", json={"report_template": "glossy"}, headers=auth_headers).status_code == 400
        r = api.patch("/reports/configuration", json={"report_template": "compact"}, headers=auth_headers)
        assert r.json()["report_template"] == "compact"
        html = api.get(f"/reports/jobs/{job.id}/preview", headers=auth_headers).text
        assert 'class="template-compact"' in html

    def test_preview_and_selection(self, api, auth_headers, db, job):
        photo = Photo(job_id=job.id, file_path="jobs/x.jpg", file_name="x.jpg")
        db.add(photo)
        db.commit()
        html = api.get(f"/reports/jobs/{job.id}/preview", headers=auth_headers).text
        assert "x.jpg" in html
        r = api.put(f"/reports/jobs/{job.id}/photos/{photo.id}", json={"include_in_report": False}, headers=auth_headers)
        assert r.json()["include_in_report"] is False
        html = api.get(f"/reports/jobs/{job.id}/preview", headers=auth_headers).text
        assert "x.jpg" not in html

    def test_report_data(self, api, auth_headers, job):
        data = api.get(f"/reports/jobs/{job.id}/data", headers=auth_headers).json()
        assert data["job"]["title"] == "End of tenancy clean"
        assert data["configuration"]["include_photos"] is True

    def test_generate_list_send_delete(self, api, auth_headers, job, renderer):
        r = api.post(f"/reports/jobs/{job.id}/generate", headers=auth_headers)
        assert r.status_code == 201
        report = r.json()
        assert len(renderer.calls) == 1
        listed = api.get(f"/reports/jobs/{job.id}", headers=auth_headers).json()
        assert [x["id"] for x in listed] == [report["id"]]
        sent = api.post(f"/reports/{report['id']}/send", json={"recipient_email": "jane@example.com"}, headers=auth_headers).json()
        assert sent["email_sent"] is True
        assert api.delete(f"/reports/{report['id']}", headers=auth_headers).status_code == 200
        assert api.get(f"/reports/jobs/{job.id}", headers=auth_headers).json() == []
