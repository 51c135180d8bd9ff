import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.jobs import (
    JobCreate,
    JobDetailResponse,
    JobResponse,
    JobStatus,
    JobUpdate,
    NoteCreate,
    NoteResponse,
    PhotoCreate,
    PhotoResponse,
    StatusChange,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from ..services import job_service
from ..storage.provider import StorageProvider, get_storage


router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobResponse, status_code=201)
def create_job(payload: JobCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.create_job(db, user.id, payload.model_dump())


@router.get("", response_model=List[JobResponse])
def list_jobs(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[JobStatus] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return job_service.list_jobs(db, user.id, date_from=date_from, date_to=date_to, status=status)


@router.get("/{job_id}", response_model=JobDetailResponse)
def get_job(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.get_job(db, user.id, job_id)


@router.patch("/{job_id}", response_model=JobResponse)
def update_job(job_id: uuid.UUID, payload: JobUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.update_job(db, user.id, job_id, payload.model_dump(exclude_unset=True))


@router.delete("/{job_id}")
def delete_job(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job_service.delete_job(db, user.id, job_id)
    return {"status": "ok"}


@router.post("/{job_id}/status", response_model=JobResponse)
def change_status(job_id: uuid.UUID, payload: StatusChange, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.change_status(db, user.id, job_id, payload.status)


# Timer

@router.post("/{job_id}/timer/start", response_model=JobResponse)
def start_timer(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.start_timer(db, user.id, job_id)


@router.post("/{job_id}/timer/pause", response_model=JobResponse)
def pause_timer(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.pause_timer(db, user.id, job_id)


@router.post("/{job_id}/timer/stop", response_model=JobResponse)
def stop_timer(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.stop_timer(db, user.id, job_id)


@router.get("/{job_id}/timer")
def get_timer(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job = job_service.get_job(db, user.id, job_id)
    return {
        "running": job.timer_started_at is not None,
        "started_at": job.timer_started_at,
        "ended_at": job.timer_ended_at,
        "elapsed_seconds": job_service.elapsed_seconds(job),
    }


# Tasks

@router.post("/{job_id}/tasks", response_model=TaskResponse, status_code=201)
def add_task(job_id: uuid.UUID, payload: TaskCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.add_task(db, user.id, job_id, payload.model_dump())


@router.patch("/{job_id}/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    job_id: uuid.UUID,
    task_id: uuid.UUID,
    payload: TaskUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return job_service.update_task(db, user.id, job_id, task_id, payload.model_dump(exclude_unset=True))


@router.delete("/{job_id}/tasks/{task_id}")
def delete_task(job_id: uuid.UUID, task_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job_service.delete_task(db, user.id, job_id, task_id)
    return {"status": "ok"}


# Notes

@router.post("/{job_id}/notes", response_model=NoteResponse, status_code=201)
def add_note(job_id: uuid.UUID, payload: NoteCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.add_note(db, user.id, job_id, payload.content)


@router.delete("/{job_id}/notes/{note_id}")
def delete_note(job_id: uuid.UUID, note_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job_service.delete_note(db, user.id, job_id, note_id)
    return {"status": "ok"}


# Photos

@router.post("/{job_id}/photos", response_model=PhotoResponse, status_code=201)
def add_photo(job_id: uuid.UUID, payload: PhotoCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return job_service.add_photo(db, user.id, job_id, payload.model_dump())


@router.delete("/{job_id}/photos/{photo_id}")
def delete_photo(
    job_id: uuid.UUID,
    photo_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    key = job_service.delete_photo(db, user.id, job_id, photo_id)
    storage.delete(key)
    return {"status": "ok"}
