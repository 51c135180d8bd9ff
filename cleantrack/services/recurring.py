"""
Recurring schedule management.

A RecurringJob is a template; Job rows carrying its id are the concrete
occurrences. Instances are materialized in finite batches on request rather
than indefinitely, and edits to the template never rewrite instances that
already exist.
"""
import calendar
import uuid
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundError, ValidationError, commit_or_raise
from ..models.models import FREQUENCIES, Client, Job, RecurringJob


logger = structlog.get_logger(__name__)

_FIXED_STEP_DAYS = {"daily": 1, "weekly": 7, "bi_weekly": 14}

# Columns a patch may change but never clear
REQUIRED_FIELDS = ("client_id", "title", "frequency", "start_date", "is_active")


def _add_months(anchor: date, months: int) -> date:
    """Shift by whole months, clamping to the last day (Jan 31 -> Feb 28/29 -> Mar 31)."""
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def occurrence_date(start: date, frequency: str, n: int) -> date:
    """Date of the n-th occurrence (0-based) of a schedule anchored at start."""
    if frequency == "monthly":
        return _add_months(start, n)
    try:
        step = _FIXED_STEP_DAYS[frequency]
    except KeyError:
        raise ValidationError(f"Unknown frequency: {frequency}")
    return start + timedelta(days=step * n)


def _first_index_on_or_after(start: date, frequency: str, target: date) -> int:
    if target <= start:
        return 0
    if frequency == "monthly":
        n = max((target.year - start.year) * 12 + (target.month - start.month) - 1, 0)
    else:
        step = _FIXED_STEP_DAYS.get(frequency)
        if step is None:
            raise ValidationError(f"Unknown frequency: {frequency}")
        n = (target - start).days // step
    while occurrence_date(start, frequency, n) < target:
        n += 1
    return n


def _validate_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date is not None and end_date is not None and start_date > end_date:
        raise ValidationError("end_date must be on or after start_date")


def _ensure_client(db: Session, user_id: uuid.UUID, client_id: uuid.UUID) -> Client:
    client = db.query(Client).filter(Client.id == client_id, Client.user_id == user_id).first()
    if not client:
        raise NotFoundError("Client not found")
    return client


def get_definition(db: Session, user_id: uuid.UUID, definition_id: uuid.UUID) -> RecurringJob:
    definition = (
        db.query(RecurringJob)
        .filter(RecurringJob.id == definition_id, RecurringJob.user_id == user_id)
        .first()
    )
    if not definition:
        raise NotFoundError("Recurring job not found")
    return definition


def create_definition(db: Session, user_id: uuid.UUID, data: Dict[str, Any]) -> RecurringJob:
    if data.get("frequency") not in FREQUENCIES:
        raise ValidationError(f"frequency must be one of {', '.join(FREQUENCIES)}")
    _validate_range(data.get("start_date"), data.get("end_date"))
    _ensure_client(db, user_id, data["client_id"])
    definition = RecurringJob(user_id=user_id, **data)
    db.add(definition)
    commit_or_raise(db, "create recurring job")
    db.refresh(definition)
    logger.info("recurring_created", recurring_job_id=str(definition.id), frequency=definition.frequency)
    return definition


def list_definitions(db: Session, user_id: uuid.UUID) -> List[RecurringJob]:
    return (
        db.query(RecurringJob)
        .filter(RecurringJob.user_id == user_id)
        .order_by(RecurringJob.created_at.desc())
        .all()
    )


def update_definition(
    db: Session,
    user_id: uuid.UUID,
    definition_id: uuid.UUID,
    patch: Dict[str, Any],
) -> RecurringJob:
    """Apply field changes to the template only; generated instances keep their values."""
    definition = get_definition(db, user_id, definition_id)
    for key in REQUIRED_FIELDS:
        if key in patch and patch[key] is None:
            raise ValidationError(f"{key} cannot be null")
    if "title" in patch:
        patch["title"] = str(patch["title"]).strip()
        if not patch["title"]:
            raise ValidationError("title is required")
    if "frequency" in patch and patch["frequency"] not in FREQUENCIES:
        raise ValidationError(f"frequency must be one of {', '.join(FREQUENCIES)}")
    if patch.get("client_id") is not None:
        _ensure_client(db, user_id, patch["client_id"])
    _validate_range(
        patch.get("start_date", definition.start_date),
        patch.get("end_date", definition.end_date),
    )
    for key, value in patch.items():
        setattr(definition, key, value)
    commit_or_raise(db, "update recurring job")
    db.refresh(definition)
    return definition


def list_instances(db: Session, user_id: uuid.UUID, definition_id: uuid.UUID) -> List[Job]:
    return (
        db.query(Job)
        .filter(Job.recurring_job_id == definition_id, Job.user_id == user_id)
        .order_by(Job.scheduled_date.asc(), Job.created_at.asc())
        .all()
    )


def _instance_exists(db: Session, definition_id: uuid.UUID, day: date) -> bool:
    return (
        db.query(Job.id)
        .filter(Job.recurring_job_id == definition_id, Job.scheduled_date == day)
        .first()
        is not None
    )


def generate_instances(
    db: Session,
    user_id: uuid.UUID,
    definition_id: uuid.UUID,
    *,
    horizon_days: Optional[int] = None,
    max_batch: Optional[int] = None,
) -> List[Job]:
    """Materialize the next batch of occurrences for an active definition.

    The window opens at start_date, or the day after the latest existing
    instance, and spans ``horizon_days`` (clipped to end_date). Occurrences
    stay on the grid anchored at start_date. Each date is checked against
    the store right before its insert, so re-running never duplicates a date.
    Instances are committed one by one; a storage failure leaves earlier
    writes in place.
    """
    definition = get_definition(db, user_id, definition_id)
    if not definition.is_active:
        raise ValidationError("Recurring job is inactive")

    horizon_days = horizon_days or settings.recurring_horizon_days
    max_batch = max_batch or settings.recurring_max_batch
    if horizon_days < 1 or max_batch < 1:
        raise ValidationError("horizon_days and max_batch must be positive")

    latest = (
        db.query(Job.scheduled_date)
        .filter(Job.recurring_job_id == definition.id)
        .order_by(Job.scheduled_date.desc())
        .first()
    )
    window_start = definition.start_date
    if latest and latest[0] >= window_start:
        window_start = latest[0] + timedelta(days=1)
    window_end = window_start + timedelta(days=horizon_days - 1)
    if definition.end_date and definition.end_date < window_end:
        window_end = definition.end_date

    created: List[Job] = []
    n = _first_index_on_or_after(definition.start_date, definition.frequency, window_start)
    while len(created) < max_batch:
        day = occurrence_date(definition.start_date, definition.frequency, n)
        n += 1
        if day > window_end:
            break
        if _instance_exists(db, definition.id, day):
            continue
        instance = Job(
            user_id=definition.user_id,
            client_id=definition.client_id,
            recurring_job_id=definition.id,
            recurring_instance_date=day,
            title=definition.title,
            description=definition.description,
            scheduled_date=day,
            scheduled_time=definition.scheduled_time,
            status="scheduled",
        )
        db.add(instance)
        commit_or_raise(db, f"create instance for {day.isoformat()}")
        created.append(instance)

    if created:
        definition.last_generated_date = created[-1].scheduled_date
        commit_or_raise(db, "record last generated date")

    logger.info(
        "instances_generated",
        recurring_job_id=str(definition.id),
        count=len(created),
        window_start=window_start.isoformat(),
        window_end=window_end.isoformat(),
    )
    return created


def navigate_instances(
    db: Session,
    user_id: uuid.UUID,
    definition_id: uuid.UUID,
    current_instance_id: uuid.UUID,
    direction: str,
) -> Optional[Job]:
    """Return the neighbour of an instance in date order, or None at either end."""
    if direction not in ("next", "prev", "previous"):
        raise ValidationError("direction must be 'next' or 'prev'")
    get_definition(db, user_id, definition_id)
    instances = list_instances(db, user_id, definition_id)
    position = next((i for i, job in enumerate(instances) if job.id == current_instance_id), None)
    if position is None:
        raise NotFoundError("Instance not found for this recurring job")
    target = position + 1 if direction == "next" else position - 1
    if target < 0 or target >= len(instances):
        return None
    return instances[target]


def _get_instance(db: Session, definition: RecurringJob, instance_id: Optional[uuid.UUID]) -> Job:
    if instance_id is None:
        raise ValidationError("instance_id is required for this scope")
    instance = (
        db.query(Job)
        .filter(Job.id == instance_id, Job.recurring_job_id == definition.id)
        .first()
    )
    if not instance:
        raise NotFoundError("Instance not found for this recurring job")
    return instance


def _delete_rows(db: Session, instances: List[Job]) -> int:
    deleted = 0
    for instance in instances:
        db.delete(instance)
        commit_or_raise(db, f"delete instance {instance.id}")
        deleted += 1
    return deleted


def delete_definition(
    db: Session,
    user_id: uuid.UUID,
    definition_id: uuid.UUID,
    scope: str,
    instance_id: Optional[uuid.UUID] = None,
) -> int:
    """Delete across the instance set; returns how many instances were removed.

    ``single`` removes one instance. ``future`` removes the reference
    instance and everything on or after its date, then pauses the
    definition. ``all`` removes every instance and the definition itself.
    Rows are removed one at a time without an enclosing transaction.
    """
    definition = get_definition(db, user_id, definition_id)

    if scope == "single":
        instance = _get_instance(db, definition, instance_id)
        deleted = _delete_rows(db, [instance])
    elif scope == "future":
        reference = _get_instance(db, definition, instance_id)
        doomed = (
            db.query(Job)
            .filter(
                Job.recurring_job_id == definition.id,
                Job.scheduled_date >= reference.scheduled_date,
            )
            .order_by(Job.scheduled_date.asc())
            .all()
        )
        deleted = _delete_rows(db, doomed)
        definition.is_active = False
        commit_or_raise(db, "deactivate recurring job")
    elif scope == "all":
        doomed = db.query(Job).filter(Job.recurring_job_id == definition.id).all()
        deleted = _delete_rows(db, doomed)
        db.delete(definition)
        commit_or_raise(db, "delete recurring job")
    else:
        raise ValidationError("scope must be one of single, future, all")

    logger.info("recurring_deleted", recurring_job_id=str(definition_id), scope=scope, instances=deleted)
    return deleted
