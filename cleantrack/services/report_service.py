"""
Job report assembly.

Collects a job's tasks, photos and notes together with the owner's report
configuration and per-job selection rows into a ReportAggregate, and drives
the render -> PDF -> storage -> ``reports`` row sequence.

Configuration and selection rows are created on first use. When one of
those tables is not provisioned the pipeline logs it and carries on with
built-in defaults so a report can still be produced.
"""
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

import structlog
from sqlalchemy import func
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundError, ValidationError, commit_or_raise
from ..models.models import (
    Job,
    Note,
    Photo,
    Report,
    ReportConfiguration,
    ReportPhoto,
    ReportTask,
    Task,
    User,
)
from ..reports.aggregate import (
    ClientInfo,
    JobInfo,
    NoteEntry,
    PhotoEntry,
    ReportAggregate,
    TaskEntry,
)
from ..reports.document import REPORT_TEMPLATES, render_document
from ..reports.pdf import PdfRenderer
from ..storage.provider import StorageProvider


logger = structlog.get_logger(__name__)

T = TypeVar("T")

CONFIG_FIELDS = (
    "company_name",
    "company_logo_url",
    "primary_color",
    "secondary_color",
    "accent_color",
    "font_family",
    "include_company_logo",
    "include_company_colors",
    "include_photos",
    "include_tasks",
    "include_notes",
    "include_timer_data",
    "photo_layout",
    "max_photos_per_report",
    "report_template",
    "custom_header_text",
    "custom_footer_text",
)

# The logo and custom texts are the only settings a user may clear
NULLABLE_CONFIG_FIELDS = {"company_logo_url", "custom_header_text", "custom_footer_text"}


def default_configuration(company_name: Optional[str] = None, logo_url: Optional[str] = None) -> Dict[str, Any]:
    return {
        "company_name": company_name or settings.report_company_name,
        "company_logo_url": logo_url,
        "primary_color": settings.report_primary_color,
        "secondary_color": settings.report_secondary_color,
        "accent_color": settings.report_accent_color,
        "font_family": settings.report_font_family,
        "include_company_logo": True,
        "include_company_colors": True,
        "include_photos": True,
        "include_tasks": True,
        "include_notes": True,
        "include_timer_data": True,
        "photo_layout": "grid",
        "max_photos_per_report": settings.report_max_photos,
        "report_template": "standard",
        "custom_header_text": None,
        "custom_footer_text": None,
    }


def configuration_values(row: ReportConfiguration) -> Dict[str, Any]:
    return {name: getattr(row, name) for name in CONFIG_FIELDS}


class ReportService:
    def __init__(self, db: Session, user_id: uuid.UUID, storage: Optional[StorageProvider] = None):
        self.db = db
        self.user_id = user_id
        self.storage = storage

    # Configuration

    def get_report_configuration(self) -> ReportConfiguration:
        """Return the user's configuration, creating it with defaults on first use."""
        config = (
            self.db.query(ReportConfiguration)
            .filter(ReportConfiguration.user_id == self.user_id)
            .first()
        )
        if config:
            return config
        user = self.db.query(User).filter(User.id == self.user_id).first()
        values = default_configuration(
            company_name=user.company_name if user else None,
            logo_url=user.logo_url if user else None,
        )
        config = ReportConfiguration(user_id=self.user_id, **values)
        self.db.add(config)
        commit_or_raise(self.db, "create report configuration")
        self.db.refresh(config)
        logger.info("report_config_created", user_id=str(self.user_id))
        return config

    def update_report_configuration(self, patch: Dict[str, Any]) -> ReportConfiguration:
        config = self.get_report_configuration()
        for key, value in patch.items():
            if key not in CONFIG_FIELDS:
                continue
            if value is None and key not in NULLABLE_CONFIG_FIELDS:
                raise ValidationError(f"{key} cannot be null")
            if key == "report_template" and value not in REPORT_TEMPLATES:
                raise ValidationError(f"Unknown report template: {value}")
            setattr(config, key, value)
        commit_or_raise(self.db, "update report configuration")
        self.db.refresh(config)
        return config

    # Assembly

    def _get_job(self, job_id: uuid.UUID) -> Job:
        job = self.db.query(Job).filter(Job.id == job_id, Job.user_id == self.user_id).first()
        if not job:
            raise NotFoundError("Job not found")
        return job

    def _with_fallback(self, table: str, fn: Callable[[], T], fallback: T, fallbacks: List[str]) -> T:
        try:
            return fn()
        except (OperationalError, ProgrammingError) as exc:
            self.db.rollback()
            logger.warning("report_table_fallback", table=table, error=str(exc.orig if hasattr(exc, "orig") else exc))
            fallbacks.append(table)
            return fallback

    def _get_or_create_report_photos(self, job: Job, photos: List[Photo]) -> List[ReportPhoto]:
        existing = self.db.query(ReportPhoto).filter(ReportPhoto.job_id == job.id).all()
        known = {rp.photo_id for rp in existing}
        next_order = max((rp.display_order for rp in existing), default=-1) + 1
        created = []
        for photo in photos:
            if photo.id in known:
                continue
            row = ReportPhoto(
                job_id=job.id,
                photo_id=photo.id,
                photo_type="general",
                display_order=next_order,
                include_in_report=True,
                caption=photo.file_name,
            )
            next_order += 1
            self.db.add(row)
            created.append(row)
        if created:
            commit_or_raise(self.db, "create report photo selection")
            logger.info("report_photos_created", job_id=str(job.id), count=len(created))
        rows = existing + created
        return sorted(rows, key=lambda rp: rp.display_order)

    def _get_or_create_report_tasks(self, job: Job, tasks: List[Task]) -> List[ReportTask]:
        existing = self.db.query(ReportTask).filter(ReportTask.job_id == job.id).all()
        known = {rt.task_id for rt in existing}
        next_order = max((rt.display_order for rt in existing), default=-1) + 1
        created = []
        for task in tasks:
            if task.id in known:
                continue
            row = ReportTask(
                job_id=job.id,
                task_id=task.id,
                task_title=task.title,
                task_description=task.description,
                is_completed=bool(task.is_completed),
                completed_at=datetime.utcnow() if task.is_completed else None,
                display_order=next_order,
                include_in_report=True,
            )
            next_order += 1
            self.db.add(row)
            created.append(row)
        if created:
            commit_or_raise(self.db, "create report task selection")
            logger.info("report_tasks_created", job_id=str(job.id), count=len(created))
        rows = existing + created
        return sorted(rows, key=lambda rt: rt.display_order)

    def prepare_report_data(self, job_id: uuid.UUID, generated_at: Optional[datetime] = None) -> ReportAggregate:
        job = self._get_job(job_id)
        client = job.client
        tasks = (
            self.db.query(Task)
            .filter(Task.job_id == job.id)
            .order_by(Task.order_index.asc(), Task.created_at.asc())
            .all()
        )
        photos = (
            self.db.query(Photo)
            .filter(Photo.job_id == job.id)
            .order_by(Photo.created_at.asc(), Photo.order_index.asc(), Photo.id.asc())
            .all()
        )
        notes = (
            self.db.query(Note)
            .filter(Note.job_id == job.id)
            .order_by(Note.created_at.desc())
            .all()
        )

        # Snapshot before any fallback rollback expires the loaded rows
        job_info = JobInfo(
            id=job.id,
            title=job.title,
            description=job.description,
            scheduled_date=job.scheduled_date,
            scheduled_time=job.scheduled_time,
            status=job.status,
            agreed_hours=job.agreed_hours,
            actual_hours=job.actual_hours,
            total_time_seconds=job.total_time_seconds or 0,
        )
        client_info = ClientInfo(
            name=client.name, email=client.email, phone=client.phone, address=client.address,
        ) if client else None
        note_entries = [NoteEntry(content=n.content, created_at=n.created_at) for n in notes]
        default_tasks = [
            TaskEntry(
                task_id=t.id,
                title=t.title,
                description=t.description,
                is_completed=bool(t.is_completed),
                display_order=i,
            )
            for i, t in enumerate(tasks)
        ]
        default_photos = [
            PhotoEntry(
                photo_id=p.id,
                file_name=p.file_name,
                url=self._photo_url(p.file_path),
                caption=p.file_name,
                photo_type="general",
                display_order=i,
            )
            for i, p in enumerate(photos)
        ]

        fallbacks: List[str] = []
        configuration = self._with_fallback(
            "report_configurations",
            lambda: configuration_values(self.get_report_configuration()),
            default_configuration(),
            fallbacks,
        )
        photo_entries = self._with_fallback(
            "report_photos",
            lambda: self._merge_photos(default_photos, self._get_or_create_report_photos(job, photos)),
            default_photos,
            fallbacks,
        )
        task_entries = self._with_fallback(
            "report_tasks",
            lambda: self._merge_tasks(default_tasks, self._get_or_create_report_tasks(job, tasks)),
            default_tasks,
            fallbacks,
        )

        return ReportAggregate(
            job=job_info,
            client=client_info,
            tasks=task_entries,
            photos=photo_entries,
            notes=note_entries,
            configuration=configuration,
            generated_at=generated_at or datetime.utcnow(),
            fallbacks=fallbacks,
        )

    def _photo_url(self, key: str) -> Optional[str]:
        if self.storage is None:
            return None
        return self.storage.get_public_url(key)

    @staticmethod
    def _merge_photos(defaults: List[PhotoEntry], rows: List[ReportPhoto]) -> List[PhotoEntry]:
        by_id = {entry.photo_id: entry for entry in defaults}
        merged = []
        for row in rows:
            entry = by_id.get(row.photo_id)
            if entry is None:
                continue
            merged.append(PhotoEntry(
                photo_id=entry.photo_id,
                file_name=entry.file_name,
                url=entry.url,
                caption=row.caption or entry.file_name,
                photo_type=row.photo_type or "general",
                display_order=row.display_order,
                include_in_report=bool(row.include_in_report),
            ))
        return merged

    @staticmethod
    def _merge_tasks(defaults: List[TaskEntry], rows: List[ReportTask]) -> List[TaskEntry]:
        by_id = {entry.task_id: entry for entry in defaults}
        merged = []
        for row in rows:
            entry = by_id.get(row.task_id)
            if entry is None:
                continue
            merged.append(TaskEntry(
                task_id=entry.task_id,
                title=entry.title,
                description=entry.description,
                is_completed=entry.is_completed,
                display_order=row.display_order,
                include_in_report=bool(row.include_in_report),
            ))
        return merged

    # Selection

    def update_photo_selection(
        self,
        job_id: uuid.UUID,
        photo_id: uuid.UUID,
        include_in_report: bool,
        caption: Optional[str] = None,
        photo_type: Optional[str] = None,
    ) -> ReportPhoto:
        job = self._get_job(job_id)
        photo = self.db.query(Photo).filter(Photo.id == photo_id, Photo.job_id == job.id).first()
        if not photo:
            raise NotFoundError("Photo not found")
        row = (
            self.db.query(ReportPhoto)
            .filter(ReportPhoto.job_id == job.id, ReportPhoto.photo_id == photo.id)
            .first()
        )
        if row is None:
            next_order = self.db.query(func.max(ReportPhoto.display_order)).filter(ReportPhoto.job_id == job.id).scalar()
            row = ReportPhoto(
                job_id=job.id,
                photo_id=photo.id,
                photo_type="general",
                display_order=0 if next_order is None else next_order + 1,
                caption=photo.file_name,
            )
            self.db.add(row)
        row.include_in_report = include_in_report
        if caption is not None:
            row.caption = caption
        if photo_type is not None:
            row.photo_type = photo_type
        commit_or_raise(self.db, "update report photo selection")
        self.db.refresh(row)
        return row

    def update_task_selection(self, job_id: uuid.UUID, task_id: uuid.UUID, include_in_report: bool) -> ReportTask:
        job = self._get_job(job_id)
        task = self.db.query(Task).filter(Task.id == task_id, Task.job_id == job.id).first()
        if not task:
            raise NotFoundError("Task not found")
        row = (
            self.db.query(ReportTask)
            .filter(ReportTask.job_id == job.id, ReportTask.task_id == task.id)
            .first()
        )
        if row is None:
            next_order = self.db.query(func.max(ReportTask.display_order)).filter(ReportTask.job_id == job.id).scalar()
            row = ReportTask(
                job_id=job.id,
                task_id=task.id,
                task_title=task.title,
                task_description=task.description,
                is_completed=bool(task.is_completed),
                display_order=0 if next_order is None else next_order + 1,
            )
            self.db.add(row)
        row.include_in_report = include_in_report
        commit_or_raise(self.db, "update report task selection")
        self.db.refresh(row)
        return row

    # Generated reports

    def preview_html(self, job_id: uuid.UUID) -> str:
        return render_document(self.prepare_report_data(job_id))

    def generate_report(self, job_id: uuid.UUID, renderer: PdfRenderer, now: Optional[datetime] = None) -> Report:
        if self.storage is None:
            raise RuntimeError("ReportService needs a storage provider to generate reports")
        now = now or datetime.utcnow()
        aggregate = self.prepare_report_data(job_id, generated_at=now)
        html = render_document(aggregate)
        pdf_bytes = renderer.render_pdf(html)

        key = f"reports/{job_id}/{int(now.timestamp() * 1000)}-report.pdf"
        self.storage.upload(key, pdf_bytes, "application/pdf")
        report = Report(
            job_id=job_id,
            user_id=self.user_id,
            storage_key=key,
            report_url=self.storage.get_public_url(key),
        )
        self.db.add(report)
        try:
            commit_or_raise(self.db, "save report")
        except Exception:
            self.storage.delete(key)
            raise
        self.db.refresh(report)
        logger.info("report_generated", job_id=str(job_id), report_id=str(report.id), bytes=len(pdf_bytes))
        return report

    def list_job_reports(self, job_id: uuid.UUID) -> List[Report]:
        job = self._get_job(job_id)
        return (
            self.db.query(Report)
            .filter(Report.job_id == job.id, Report.user_id == self.user_id)
            .order_by(Report.created_at.desc())
            .all()
        )

    def get_report(self, report_id: uuid.UUID) -> Report:
        report = (
            self.db.query(Report)
            .filter(Report.id == report_id, Report.user_id == self.user_id)
            .first()
        )
        if not report:
            raise NotFoundError("Report not found")
        return report

    def delete_report(self, report_id: uuid.UUID) -> None:
        report = self.get_report(report_id)
        key = report.storage_key
        self.db.delete(report)
        commit_or_raise(self.db, "delete report")
        if self.storage is not None:
            self.storage.delete(key)

    def mark_report_sent(self, report_id: uuid.UUID, recipient_email: str) -> Report:
        """Record that a report went out; delivery itself is handled elsewhere."""
        report = self.get_report(report_id)
        report.email_sent = True
        report.sent_to = recipient_email
        report.sent_at = datetime.utcnow()
        commit_or_raise(self.db, "mark report sent")
        self.db.refresh(report)
        logger.info("report_marked_sent", report_id=str(report_id), recipient=recipient_email)
        return report
