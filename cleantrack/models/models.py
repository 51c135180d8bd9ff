import uuid
from datetime import datetime, date, time
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Time,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    Numeric,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


JOB_STATUSES = ("enquiry", "scheduled", "in_progress", "completed", "cancelled")
FREQUENCIES = ("daily", "weekly", "bi_weekly", "monthly")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    company_name: Mapped[Optional[str]] = mapped_column(String(255))
    logo_url: Mapped[Optional[str]] = mapped_column(String(1024))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=datetime.utcnow)


class RecurringJob(Base):
    __tablename__ = "recurring_jobs"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    client_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("clients.id"), index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)  # daily|weekly|bi_weekly|monthly
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    scheduled_time: Mapped[Optional[time]] = mapped_column(Time)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_generated_date: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=datetime.utcnow)

    client = relationship("Client")


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    client_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("clients.id"), index=True)
    # Back-reference only; the definition does not own its instances
    recurring_job_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("recurring_jobs.id", ondelete="SET NULL"), index=True)
    recurring_instance_date: Mapped[Optional[date]] = mapped_column(Date)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[Optional[time]] = mapped_column(Time)
    end_time: Mapped[Optional[time]] = mapped_column(Time)
    status: Mapped[str] = mapped_column(String(20), default="scheduled")
    agreed_hours: Mapped[Optional[float]] = mapped_column(Float)
    actual_hours: Mapped[Optional[float]] = mapped_column(Float)
    total_cost: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False))
    # Timer state lives on the row so any server instance can read it
    timer_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    timer_ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    total_time_seconds: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=datetime.utcnow)

    client = relationship("Client")
    recurring_job = relationship("RecurringJob")
    tasks = relationship("Task", back_populates="job", cascade="all, delete-orphan", order_by="Task.order_index")
    photos = relationship("Photo", back_populates="job", cascade="all, delete-orphan", order_by="[Photo.created_at, Photo.order_index, Photo.id]")
    notes = relationship("Note", back_populates="job", cascade="all, delete-orphan")
    report_photos = relationship("ReportPhoto", cascade="all, delete-orphan")
    report_tasks = relationship("ReportTask", cascade="all, delete-orphan")
    reports = relationship("Report", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_jobs_recurring_date", "recurring_job_id", "scheduled_date"),
    )


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=datetime.utcnow)

    job = relationship("Job", back_populates="tasks")


class Photo(Base):
    __tablename__ = "photos"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="SET NULL"))
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)  # storage key
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(Integer)
    # Upload sequence within the job; breaks created_at ties from batch uploads
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    job = relationship("Job", back_populates="photos")


class Note(Base):
    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=datetime.utcnow)

    job = relationship("Job", back_populates="notes")


class ReportConfiguration(Base):
    __tablename__ = "report_configurations"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    company_name: Mapped[str] = mapped_column(String(255), default="Your Company")
    company_logo_url: Mapped[Optional[str]] = mapped_column(String(1024))
    primary_color: Mapped[str] = mapped_column(String(20), default="#3B82F6")
    secondary_color: Mapped[str] = mapped_column(String(20), default="#1F2937")
    accent_color: Mapped[str] = mapped_column(String(20), default="#10B981")
    font_family: Mapped[str] = mapped_column(String(100), default="Inter")
    include_company_logo: Mapped[bool] = mapped_column(Boolean, default=True)
    include_company_colors: Mapped[bool] = mapped_column(Boolean, default=True)
    include_photos: Mapped[bool] = mapped_column(Boolean, default=True)
    include_tasks: Mapped[bool] = mapped_column(Boolean, default=True)
    include_notes: Mapped[bool] = mapped_column(Boolean, default=True)
    include_timer_data: Mapped[bool] = mapped_column(Boolean, default=True)
    photo_layout: Mapped[str] = mapped_column(String(20), default="grid")
    max_photos_per_report: Mapped[int] = mapped_column(Integer, default=20)
    report_template: Mapped[str] = mapped_column(String(50), default="standard")
    custom_header_text: Mapped[Optional[str]] = mapped_column(Text)
    custom_footer_text: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=datetime.utcnow)


class ReportPhoto(Base):
    __tablename__ = "report_photos"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    photo_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("photos.id", ondelete="CASCADE"))
    photo_type: Mapped[str] = mapped_column(String(50), default="general")  # general|before|after
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    include_in_report: Mapped[bool] = mapped_column(Boolean, default=True)
    caption: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("job_id", "photo_id", name="uq_report_photo"),
    )


class ReportTask(Base):
    __tablename__ = "report_tasks"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    task_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"))
    task_title: Mapped[str] = mapped_column(String(255), nullable=False)
    task_description: Mapped[Optional[str]] = mapped_column(Text)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    include_in_report: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("job_id", "task_id", name="uq_report_task"),
    )


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    report_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    sent_to: Mapped[Optional[str]] = mapped_column(String(255))
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
