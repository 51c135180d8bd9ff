"""Tests for cleantrack.services.report_service."""

import uuid
from datetime import datetime

import pytest

from cleantrack.errors import NotFoundError, ValidationError
from cleantrack.models.models import Note, Photo, Report, ReportConfiguration, ReportPhoto, ReportTask, Task
from cleantrack.services import job_service
from cleantrack.services.report_service import ReportService


GENERATED_AT = datetime(2024, 6, 4, 17, 0)


@pytest.fixture
def service(db, user, storage):
    return ReportService(db, user.id, storage)


@pytest.fixture
def photos(db, job):
    rows = [
        Photo(job_id=job.id, file_path=f"jobs/{job.id}/{name}", file_name=name, created_at=datetime(2024, 6, 4, 9, i))
        for i, name in enumerate(["kitchen.jpg", "bathroom.jpg", "lounge.jpg"])
    ]
    db.add_all(rows)
    db.commit()
    return rows


@pytest.fixture
def tasks(db, job):
    rows = [
        Task(job_id=job.id, title="Mop floors", order_index=1),
        Task(job_id=job.id, title="Clean oven", order_index=0, is_completed=True),
    ]
    db.add_all(rows)
    db.commit()
    return rows


class TestConfiguration:
    def test_created_on_first_read(self, db, user, service):
        config = service.get_report_configuration()
        assert config.company_name == "Sparkle Cleaning"
        assert config.primary_color == "#3B82F6"
        assert config.max_photos_per_report == 20
        assert db.query(ReportConfiguration).count() == 1

    def test_second_read_reuses_row(self, db, service):
        first = service.get_report_configuration()
        second = service.get_report_configuration()
        assert first.id == second.id
        assert db.query(ReportConfiguration).count() == 1

    def test_update(self, service):
        config = service.update_report_configuration({"accent_color": "#FF0000", "include_notes": False})
        assert config.accent_color == "#FF0000"
        assert config.include_notes is False

    @pytest.mark.parametrize("field", ["company_name", "primary_color", "include_photos", "max_photos_per_report", "report_template"])
    def test_update_rejects_null_for_required_setting(self, service, field):
        with pytest.raises(ValidationError, match=f"{field} cannot be null"):
            service.update_report_configuration({field: None})
        config = service.get_report_configuration()
        assert config.company_name == "Sparkle Cleaning"
        assert config.report_template == "standard"

    def test_update_clears_optional_texts(self, service):
        service.update_report_configuration({"custom_header_text": "Thanks!", "company_logo_url": "http://x/logo.png"})
        config = service.update_report_configuration({"custom_header_text": None, "company_logo_url": None})
        assert config.custom_header_text is None
        assert config.company_logo_url is None

    def test_update_rejects_unknown_template(self, service):
        with pytest.raises(ValidationError):
            service.update_report_configuration({"report_template": "glossy"})

    def test_selected_template_changes_output(self, job, service):
        standard = service.preview_html(job.id)
        service.update_report_configuration({"report_template": "compact"})
        compact = service.preview_html(job.id)
        assert 'class="template-standard"' in standard
        assert 'class="template-compact"' in compact
        assert standard != compact


class TestPrepareReportData:
    def test_default_photo_rows_follow_upload_order(self, db, job, photos, service):
        aggregate = service.prepare_report_data(job.id, generated_at=GENERATED_AT)
        assert [p.file_name for p in aggregate.photos] == ["kitchen.jpg", "bathroom.jpg", "lounge.jpg"]
        assert [p.display_order for p in aggregate.photos] == [0, 1, 2]
        assert all(p.include_in_report for p in aggregate.photos)
        rows = db.query(ReportPhoto).filter(ReportPhoto.job_id == job.id).all()
        assert len(rows) == 3
        assert all(r.include_in_report for r in rows)

    def test_photo_urls_come_from_storage(self, job, photos, service):
        aggregate = service.prepare_report_data(job.id, generated_at=GENERATED_AT)
        assert aggregate.photos[0].url == f"http://testserver/files/jobs/{job.id}/kitchen.jpg"
        assert aggregate.photos[0].caption == "kitchen.jpg"

    def test_tasks_follow_order_index(self, job, tasks, service):
        aggregate = service.prepare_report_data(job.id, generated_at=GENERATED_AT)
        assert [t.title for t in aggregate.tasks] == ["Clean oven", "Mop floors"]
        assert aggregate.tasks[0].is_completed is True

    def test_notes_newest_first(self, db, job, service):
        db.add_all([
            Note(job_id=job.id, content="Arrived", created_at=datetime(2024, 6, 4, 9, 0)),
            Note(job_id=job.id, content="Finished", created_at=datetime(2024, 6, 4, 12, 0)),
        ])
        db.commit()
        aggregate = service.prepare_report_data(job.id, generated_at=GENERATED_AT)
        assert [n.content for n in aggregate.notes] == ["Finished", "Arrived"]

    def test_aggregate_carries_client_and_time(self, job, service):
        aggregate = service.prepare_report_data(job.id, generated_at=GENERATED_AT)
        assert aggregate.client.name == "Jane Smith"
        assert aggregate.generated_at == GENERATED_AT
        assert aggregate.fallbacks == []

    def test_task_uncompleted_after_first_assembly(self, db, user, job, tasks, service):
        first = service.prepare_report_data(job.id)
        assert {t.title: t.is_completed for t in first.tasks}["Clean oven"] is True
        job_service.update_task(db, user.id, job.id, tasks[1].id, {"is_completed": False})
        second = service.prepare_report_data(job.id)
        assert {t.title: t.is_completed for t in second.tasks}["Clean oven"] is False

    def test_task_completed_after_first_assembly(self, db, user, job, tasks, service):
        service.prepare_report_data(job.id)
        job_service.update_task(db, user.id, job.id, tasks[0].id, {"is_completed": True})
        aggregate = service.prepare_report_data(job.id)
        assert {t.title: t.is_completed for t in aggregate.tasks}["Mop floors"] is True

    def test_same_timestamp_photos_keep_upload_order(self, db, user, job, service):
        names = ["hall.jpg", "stairs.jpg", "landing.jpg", "porch.jpg"]
        uploaded = [
            job_service.add_photo(db, user.id, job.id, {"file_path": f"jobs/{job.id}/{name}", "file_name": name})
            for name in names
        ]
        assert [p.order_index for p in uploaded] == [0, 1, 2, 3]
        for p in uploaded:
            p.created_at = datetime(2024, 6, 4, 9, 0)
        db.commit()
        aggregate = service.prepare_report_data(job.id)
        assert [p.file_name for p in aggregate.photos] == names

    def test_photo_added_later_goes_last(self, db, job, photos, service):
        service.prepare_report_data(job.id)
        extra = Photo(job_id=job.id, file_path="jobs/extra.jpg", file_name="extra.jpg", created_at=datetime(2024, 6, 4, 8, 0))
        db.add(extra)
        db.commit()
        aggregate = service.prepare_report_data(job.id)
        assert aggregate.photos[-1].file_name == "extra.jpg"
        assert aggregate.photos[-1].display_order == 3

    def test_unknown_job(self, service):
        with pytest.raises(NotFoundError):
            service.prepare_report_data(uuid.uuid4())

    def test_other_users_job(self, db, other_user, job, storage):
        with pytest.raises(NotFoundError):
            ReportService(db, other_user.id, storage).prepare_report_data(job.id)


class TestDegradedDefaults:
    def test_missing_report_photos_table_includes_all(self, db, engine, job, photos, service):
        db.commit()
        ReportPhoto.__table__.drop(engine)
        aggregate = service.prepare_report_data(job.id, generated_at=GENERATED_AT)
        assert aggregate.fallbacks == ["report_photos"]
        assert [p.file_name for p in aggregate.photos] == ["kitchen.jpg", "bathroom.jpg", "lounge.jpg"]
        assert all(p.include_in_report for p in aggregate.photos)

    def test_missing_configuration_table_uses_defaults(self, db, engine, job, tasks, service):
        db.commit()
        ReportConfiguration.__table__.drop(engine)
        aggregate = service.prepare_report_data(job.id, generated_at=GENERATED_AT)
        assert "report_configurations" in aggregate.fallbacks
        assert aggregate.configuration["company_name"] == "Your Company"
        assert aggregate.configuration["primary_color"] == "#3B82F6"
        assert len(aggregate.tasks) == 2


class TestSelections:
    def test_exclude_photo(self, db, job, photos, service):
        service.prepare_report_data(job.id)
        service.update_photo_selection(job.id, photos[1].id, False, caption="Before")
        aggregate = service.prepare_report_data(job.id)
        assert [p.file_name for p in aggregate.included_photos()] == ["kitchen.jpg", "lounge.jpg"]
        excluded = [p for p in aggregate.photos if not p.include_in_report]
        assert excluded[0].caption == "Before"

    def test_photo_selection_is_idempotent(self, db, job, photos, service):
        service.update_photo_selection(job.id, photos[0].id, False)
        service.update_photo_selection(job.id, photos[0].id, False)
        rows = db.query(ReportPhoto).filter(ReportPhoto.photo_id == photos[0].id).all()
        assert len(rows) == 1
        assert rows[0].include_in_report is False

    def test_task_selection_creates_missing_row(self, db, job, tasks, service):
        row = service.update_task_selection(job.id, tasks[0].id, False)
        assert row.include_in_report is False
        assert row.task_title == "Mop floors"
        aggregate = service.prepare_report_data(job.id)
        assert [t.title for t in aggregate.included_tasks()] == ["Clean oven"]
        assert db.query(ReportTask).filter(ReportTask.job_id == job.id).count() == 2

    def test_unknown_photo(self, job, service):
        with pytest.raises(NotFoundError):
            service.update_photo_selection(job.id, uuid.uuid4(), True)

    def test_max_photos_caps_included(self, job, photos, service):
        service.update_report_configuration({"max_photos_per_report": 2})
        aggregate = service.prepare_report_data(job.id)
        assert len(aggregate.photos) == 3
        assert [p.file_name for p in aggregate.included_photos()] == ["kitchen.jpg", "bathroom.jpg"]


class TestGeneratedReports:
    def test_generate_stores_pdf_and_row(self, db, job, storage, renderer, service):
        report = service.generate_report(job.id, renderer, now=GENERATED_AT)
        assert report.storage_key.startswith(f"reports/{job.id}/")
        assert report.storage_key.endswith("-report.pdf")
        assert storage.exists(report.storage_key)
        assert report.report_url.startswith("http://testserver/files/reports/")
        assert "End of tenancy clean" in renderer.calls[0]
        assert db.query(Report).count() == 1

    def test_list_and_delete(self, db, job, storage, renderer, service):
        report = service.generate_report(job.id, renderer, now=GENERATED_AT)
        key = report.storage_key
        assert [r.id for r in service.list_job_reports(job.id)] == [report.id]
        service.delete_report(report.id)
        assert not storage.exists(key)
        assert service.list_job_reports(job.id) == []

    def test_mark_sent(self, job, renderer, service):
        report = service.generate_report(job.id, renderer, now=GENERATED_AT)
        sent = service.mark_report_sent(report.id, "jane@example.com")
        assert sent.email_sent is True
        assert sent.sent_to == "jane@example.com"
        assert sent.sent_at is not None
