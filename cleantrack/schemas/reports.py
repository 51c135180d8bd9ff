import uuid
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator


class ReportConfigurationUpdate(BaseModel):
    company_name: Optional[str] = None
    company_logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    accent_color: Optional[str] = None
    font_family: Optional[str] = None
    include_company_logo: Optional[bool] = None
    include_company_colors: Optional[bool] = None
    include_photos: Optional[bool] = None
    include_tasks: Optional[bool] = None
    include_notes: Optional[bool] = None
    include_timer_data: Optional[bool] = None
    photo_layout: Optional[str] = None
    max_photos_per_report: Optional[int] = None
    report_template: Optional[str] = None
    custom_header_text: Optional[str] = None
    custom_footer_text: Optional[str] = None

    @field_validator(
        "company_name", "primary_color", "secondary_color", "accent_color", "font_family",
        "include_company_logo", "include_company_colors", "include_photos", "include_tasks",
        "include_notes", "include_timer_data", "photo_layout", "max_photos_per_report",
        "report_template",
        mode="before",
    )
    @classmethod
    def not_null(cls, v, info):
        # only the logo and custom texts may be cleared
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("primary_color", "secondary_color", "accent_color")
    @classmethod
    def hex_color(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not (v.startswith("#") and len(v) in (4, 7)):
            raise ValueError("colors must be #rgb or #rrggbb")
        return v

    @field_validator("max_photos_per_report")
    @classmethod
    def non_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("max_photos_per_report must be >= 0")
        return v


class ReportConfigurationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    company_name: str
    company_logo_url: Optional[str] = None
    primary_color: str
    secondary_color: str
    accent_color: str
    font_family: str
    include_company_logo: bool
    include_company_colors: bool
    include_photos: bool
    include_tasks: bool
    include_notes: bool
    include_timer_data: bool
    photo_layout: str
    max_photos_per_report: int
    report_template: str
    custom_header_text: Optional[str] = None
    custom_footer_text: Optional[str] = None


class PhotoSelection(BaseModel):
    include_in_report: bool
    caption: Optional[str] = None
    photo_type: Optional[str] = None


class TaskSelection(BaseModel):
    include_in_report: bool


class ReportPhotoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    photo_id: uuid.UUID
    photo_type: str
    display_order: int
    include_in_report: bool
    caption: Optional[str] = None


class ReportTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_id: uuid.UUID
    task_title: str
    is_completed: bool
    display_order: int
    include_in_report: bool


class ReportTemplateResponse(BaseModel):
    name: str
    label: str
    description: str
    is_default: bool


class ReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    report_url: str
    email_sent: bool
    sent_to: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime


class SendReport(BaseModel):
    recipient_email: str
