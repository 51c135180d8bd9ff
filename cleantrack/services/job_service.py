import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError, commit_or_raise
from ..models.models import JOB_STATUSES, Client, Job, Note, Photo, ReportPhoto, ReportTask, Task


logger = structlog.get_logger(__name__)

# completed and cancelled are terminal
ALLOWED_TRANSITIONS = {
    "enquiry": {"scheduled", "cancelled"},
    "scheduled": {"in_progress", "cancelled"},
    "in_progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

# Columns a patch may change but never clear
JOB_REQUIRED_FIELDS = ("title", "scheduled_date")
TASK_REQUIRED_FIELDS = ("title", "is_completed", "order_index")


def _reject_nulls(patch: Dict[str, Any], fields) -> None:
    for key in fields:
        if key in patch and patch[key] is None:
            raise ValidationError(f"{key} cannot be null")


def get_job(db: Session, user_id: uuid.UUID, job_id: uuid.UUID) -> Job:
    job = db.query(Job).filter(Job.id == job_id, Job.user_id == user_id).first()
    if not job:
        raise NotFoundError("Job not found")
    return job


def create_job(db: Session, user_id: uuid.UUID, data: Dict[str, Any]) -> Job:
    client = db.query(Client).filter(Client.id == data["client_id"], Client.user_id == user_id).first()
    if not client:
        raise NotFoundError("Client not found")
    if data.get("status", "scheduled") not in JOB_STATUSES:
        raise ValidationError("Invalid status")
    job = Job(user_id=user_id, **data)
    db.add(job)
    commit_or_raise(db, "create job")
    db.refresh(job)
    return job


def list_jobs(
    db: Session,
    user_id: uuid.UUID,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
) -> List[Job]:
    q = db.query(Job).filter(Job.user_id == user_id)
    if date_from:
        q = q.filter(Job.scheduled_date >= date_from)
    if date_to:
        q = q.filter(Job.scheduled_date <= date_to)
    if status:
        q = q.filter(Job.status == status)
    return q.order_by(Job.scheduled_date.asc(), Job.scheduled_time.asc()).all()


def update_job(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, patch: Dict[str, Any]) -> Job:
    job = get_job(db, user_id, job_id)
    _reject_nulls(patch, JOB_REQUIRED_FIELDS)
    for key, value in patch.items():
        setattr(job, key, value)
    commit_or_raise(db, "update job")
    db.refresh(job)
    return job


def delete_job(db: Session, user_id: uuid.UUID, job_id: uuid.UUID) -> None:
    job = get_job(db, user_id, job_id)
    recurring_job_id = job.recurring_job_id
    db.delete(job)
    commit_or_raise(db, "delete job")
    logger.info("job_deleted", job_id=str(job_id), recurring_job_id=str(recurring_job_id) if recurring_job_id else None)


def change_status(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, new_status: str) -> Job:
    job = get_job(db, user_id, job_id)
    _apply_transition(job, new_status)
    commit_or_raise(db, "change job status")
    db.refresh(job)
    return job


def _apply_transition(job: Job, new_status: str) -> None:
    if new_status not in JOB_STATUSES:
        raise ValidationError(f"Unknown status: {new_status}")
    current = job.status or "scheduled"
    if new_status == current:
        return
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValidationError(f"Cannot move job from {current} to {new_status}")
    job.status = new_status


# Timer: all state is on the job row; elapsed time is derived, never cached


def elapsed_seconds(job: Job, now: Optional[datetime] = None) -> int:
    total = job.total_time_seconds or 0
    started = job.timer_started_at
    if started:
        now = now or datetime.utcnow()
        if started.tzinfo is not None and now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        elif started.tzinfo is None and now.tzinfo is not None:
            started = started.replace(tzinfo=timezone.utc)
        total += max(int((now - started).total_seconds()), 0)
    return total


def start_timer(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, now: Optional[datetime] = None) -> Job:
    job = get_job(db, user_id, job_id)
    if job.timer_started_at:
        raise ValidationError("Timer is already running")
    if job.status != "in_progress":
        _apply_transition(job, "in_progress")
    job.timer_started_at = now or datetime.utcnow()
    job.timer_ended_at = None
    commit_or_raise(db, "start timer")
    db.refresh(job)
    return job


def pause_timer(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, now: Optional[datetime] = None) -> Job:
    job = get_job(db, user_id, job_id)
    if not job.timer_started_at:
        raise ValidationError("Timer is not running")
    job.total_time_seconds = elapsed_seconds(job, now)
    job.timer_started_at = None
    commit_or_raise(db, "pause timer")
    db.refresh(job)
    return job


def stop_timer(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, now: Optional[datetime] = None) -> Job:
    job = get_job(db, user_id, job_id)
    if job.status != "in_progress":
        raise ValidationError("Job is not in progress")
    now = now or datetime.utcnow()
    job.total_time_seconds = elapsed_seconds(job, now)
    job.timer_started_at = None
    job.timer_ended_at = now
    job.actual_hours = round(job.total_time_seconds / 3600.0, 2)
    _apply_transition(job, "completed")
    commit_or_raise(db, "stop timer")
    db.refresh(job)
    logger.info("job_completed", job_id=str(job.id), seconds=job.total_time_seconds)
    return job


# Children


def add_task(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, data: Dict[str, Any]) -> Task:
    job = get_job(db, user_id, job_id)
    if data.get("order_index") is None:
        current_max = db.query(func.max(Task.order_index)).filter(Task.job_id == job.id).scalar()
        data["order_index"] = 0 if current_max is None else current_max + 1
    task = Task(job_id=job.id, **data)
    db.add(task)
    commit_or_raise(db, "add task")
    db.refresh(task)
    return task


def _get_task(db: Session, job: Job, task_id: uuid.UUID) -> Task:
    task = db.query(Task).filter(Task.id == task_id, Task.job_id == job.id).first()
    if not task:
        raise NotFoundError("Task not found")
    return task


def update_task(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, task_id: uuid.UUID, patch: Dict[str, Any]) -> Task:
    job = get_job(db, user_id, job_id)
    task = _get_task(db, job, task_id)
    _reject_nulls(patch, TASK_REQUIRED_FIELDS)
    for key, value in patch.items():
        setattr(task, key, value)
    commit_or_raise(db, "update task")
    db.refresh(task)
    return task


def delete_task(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, task_id: uuid.UUID) -> None:
    job = get_job(db, user_id, job_id)
    task = _get_task(db, job, task_id)
    db.query(ReportTask).filter(ReportTask.task_id == task.id).delete(synchronize_session=False)
    db.query(Photo).filter(Photo.task_id == task.id).update({Photo.task_id: None}, synchronize_session=False)
    db.delete(task)
    commit_or_raise(db, "delete task")


def add_note(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, content: str) -> Note:
    job = get_job(db, user_id, job_id)
    content = (content or "").strip()
    if not content:
        raise ValidationError("Note content is required")
    note = Note(job_id=job.id, content=content)
    db.add(note)
    commit_or_raise(db, "add note")
    db.refresh(note)
    return note


def delete_note(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, note_id: uuid.UUID) -> None:
    job = get_job(db, user_id, job_id)
    note = db.query(Note).filter(Note.id == note_id, Note.job_id == job.id).first()
    if not note:
        raise NotFoundError("Note not found")
    db.delete(note)
    commit_or_raise(db, "delete note")


def add_photo(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, data: Dict[str, Any]) -> Photo:
    job = get_job(db, user_id, job_id)
    if data.get("task_id") is not None:
        _get_task(db, job, data["task_id"])
    current_max = db.query(func.max(Photo.order_index)).filter(Photo.job_id == job.id).scalar()
    data["order_index"] = 0 if current_max is None else current_max + 1
    photo = Photo(job_id=job.id, **data)
    db.add(photo)
    commit_or_raise(db, "add photo")
    db.refresh(photo)
    return photo


def delete_photo(db: Session, user_id: uuid.UUID, job_id: uuid.UUID, photo_id: uuid.UUID) -> str:
    """Remove the photo row and its report selection; returns the storage key to purge."""
    job = get_job(db, user_id, job_id)
    photo = db.query(Photo).filter(Photo.id == photo_id, Photo.job_id == job.id).first()
    if not photo:
        raise NotFoundError("Photo not found")
    key = photo.file_path
    db.query(ReportPhoto).filter(ReportPhoto.photo_id == photo.id).delete(synchronize_session=False)
    db.delete(photo)
    commit_or_raise(db, "delete photo")
    return key
