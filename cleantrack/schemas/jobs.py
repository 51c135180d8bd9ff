import uuid
from datetime import date, time, datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, ConfigDict, field_validator


JobStatus = Literal["enquiry", "scheduled", "in_progress", "completed", "cancelled"]


class ClientCreate(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("email", "phone", "address", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class ClientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class JobCreate(BaseModel):
    client_id: uuid.UUID
    title: str
    description: Optional[str] = None
    scheduled_date: date
    scheduled_time: Optional[time] = None
    end_time: Optional[time] = None
    status: JobStatus = "scheduled"
    agreed_hours: Optional[float] = None
    total_cost: Optional[float] = None


class JobUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    end_time: Optional[time] = None
    agreed_hours: Optional[float] = None
    total_cost: Optional[float] = None

    @field_validator("title", "scheduled_date", mode="before")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class StatusChange(BaseModel):
    status: JobStatus


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    recurring_job_id: Optional[uuid.UUID] = None
    title: str
    description: Optional[str] = None
    scheduled_date: date
    scheduled_time: Optional[time] = None
    end_time: Optional[time] = None
    status: str
    agreed_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    total_cost: Optional[float] = None
    timer_started_at: Optional[datetime] = None
    timer_ended_at: Optional[datetime] = None
    total_time_seconds: int = 0


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    order_index: Optional[int] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    is_completed: Optional[bool] = None
    order_index: Optional[int] = None

    @field_validator("title", "is_completed", "order_index", mode="before")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    title: str
    description: Optional[str] = None
    is_completed: bool
    order_index: int


class NoteCreate(BaseModel):
    content: str


class NoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    content: str
    created_at: datetime


class PhotoCreate(BaseModel):
    file_path: str
    file_name: str
    file_size: Optional[int] = None
    task_id: Optional[uuid.UUID] = None


class PhotoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    task_id: Optional[uuid.UUID] = None
    file_path: str
    file_name: str
    file_size: Optional[int] = None
    order_index: int = 0
    created_at: datetime


class JobDetailResponse(JobResponse):
    client: Optional[ClientResponse] = None
    tasks: List[TaskResponse] = []
    photos: List[PhotoResponse] = []
    notes: List[NoteResponse] = []
