import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.jobs import JobResponse
from ..schemas.recurring import (
    DeleteScope,
    Direction,
    RecurringJobCreate,
    RecurringJobResponse,
    RecurringJobUpdate,
)
from ..services import recurring as recurring_service


router = APIRouter(prefix="/recurring-jobs", tags=["recurring-jobs"])


@router.post("", response_model=RecurringJobResponse, status_code=201)
def create_recurring_job(
    payload: RecurringJobCreate,
    generate: bool = True,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    definition = recurring_service.create_definition(db, user.id, payload.model_dump())
    if generate and definition.is_active:
        recurring_service.generate_instances(db, user.id, definition.id)
        db.refresh(definition)
    return definition


@router.get("", response_model=List[RecurringJobResponse])
def list_recurring_jobs(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return recurring_service.list_definitions(db, user.id)


@router.get("/{definition_id}", response_model=RecurringJobResponse)
def get_recurring_job(definition_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return recurring_service.get_definition(db, user.id, definition_id)


@router.patch("/{definition_id}", response_model=RecurringJobResponse)
def update_recurring_job(
    definition_id: uuid.UUID,
    payload: RecurringJobUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return recurring_service.update_definition(db, user.id, definition_id, payload.model_dump(exclude_unset=True))


@router.delete("/{definition_id}")
def delete_recurring_job(
    definition_id: uuid.UUID,
    scope: DeleteScope = "all",
    instance_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    deleted = recurring_service.delete_definition(db, user.id, definition_id, scope, instance_id)
    return {"status": "ok", "scope": scope, "deleted_instances": deleted}


@router.post("/{definition_id}/generate", response_model=List[JobResponse])
def generate_recurring_instances(
    definition_id: uuid.UUID,
    horizon_days: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return recurring_service.generate_instances(db, user.id, definition_id, horizon_days=horizon_days)


@router.get("/{definition_id}/instances", response_model=List[JobResponse])
def list_recurring_instances(definition_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    recurring_service.get_definition(db, user.id, definition_id)
    return recurring_service.list_instances(db, user.id, definition_id)


@router.get("/{definition_id}/instances/{instance_id}/navigate", response_model=Optional[JobResponse])
def navigate_recurring_instances(
    definition_id: uuid.UUID,
    instance_id: uuid.UUID,
    direction: Direction = "next",
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return recurring_service.navigate_instances(db, user.id, definition_id, instance_id, direction)
