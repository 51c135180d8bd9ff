import uuid
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..reports.document import list_report_templates
from ..reports.pdf import PdfRenderer, get_pdf_renderer
from ..schemas.reports import (
    PhotoSelection,
    ReportConfigurationResponse,
    ReportConfigurationUpdate,
    ReportPhotoResponse,
    ReportResponse,
    ReportTaskResponse,
    ReportTemplateResponse,
    SendReport,
    TaskSelection,
)
from ..services.report_service import ReportService
from ..storage.provider import StorageProvider, get_storage


router = APIRouter(prefix="/reports", tags=["reports"])


def get_report_service(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
) -> ReportService:
    return ReportService(db, user.id, storage)


@router.get("/configuration", response_model=ReportConfigurationResponse)
def get_configuration(service: ReportService = Depends(get_report_service)):
    return service.get_report_configuration()


@router.patch("/configuration", response_model=ReportConfigurationResponse)
def update_configuration(payload: ReportConfigurationUpdate, service: ReportService = Depends(get_report_service)):
    return service.update_report_configuration(payload.model_dump(exclude_unset=True))


@router.get("/templates", response_model=List[ReportTemplateResponse])
def get_templates(user: User = Depends(get_current_user)):
    return list_report_templates()


@router.get("/jobs/{job_id}/data")
def get_report_data(job_id: uuid.UUID, service: ReportService = Depends(get_report_service)):
    return service.prepare_report_data(job_id).to_dict()


@router.get("/jobs/{job_id}/preview", response_class=HTMLResponse)
def preview_report(job_id: uuid.UUID, service: ReportService = Depends(get_report_service)):
    return HTMLResponse(service.preview_html(job_id))


@router.post("/jobs/{job_id}/generate", response_model=ReportResponse, status_code=201)
def generate_report(
    job_id: uuid.UUID,
    service: ReportService = Depends(get_report_service),
    renderer: PdfRenderer = Depends(get_pdf_renderer),
):
    return service.generate_report(job_id, renderer)


@router.put("/jobs/{job_id}/photos/{photo_id}", response_model=ReportPhotoResponse)
def update_photo_selection(
    job_id: uuid.UUID,
    photo_id: uuid.UUID,
    payload: PhotoSelection,
    service: ReportService = Depends(get_report_service),
):
    return service.update_photo_selection(
        job_id, photo_id, payload.include_in_report, caption=payload.caption, photo_type=payload.photo_type,
    )


@router.put("/jobs/{job_id}/tasks/{task_id}", response_model=ReportTaskResponse)
def update_task_selection(
    job_id: uuid.UUID,
    task_id: uuid.UUID,
    payload: TaskSelection,
    service: ReportService = Depends(get_report_service),
):
    return service.update_task_selection(job_id, task_id, payload.include_in_report)


@router.get("/jobs/{job_id}", response_model=List[ReportResponse])
def list_job_reports(job_id: uuid.UUID, service: ReportService = Depends(get_report_service)):
    return service.list_job_reports(job_id)


@router.delete("/{report_id}")
def delete_report(report_id: uuid.UUID, service: ReportService = Depends(get_report_service)):
    service.delete_report(report_id)
    return {"status": "ok"}


@router.post("/{report_id}/send", response_model=ReportResponse)
def send_report(report_id: uuid.UUID, payload: SendReport, service: ReportService = Depends(get_report_service)):
    return service.mark_report_sent(report_id, payload.recipient_email)
