import uuid
from datetime import date, time, datetime
from typing import Optional, Literal
from pydantic import BaseModel, ConfigDict, field_validator, model_validator


Frequency = Literal["daily", "weekly", "bi_weekly", "monthly"]
DeleteScope = Literal["single", "future", "all"]
Direction = Literal["next", "prev", "previous"]


def clean_title(v):
    v = str(v or "").strip()
    if not v:
        raise ValueError("title is required")
    return v


class RecurringJobBase(BaseModel):
    client_id: uuid.UUID
    title: str
    description: Optional[str] = None
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    is_active: bool = True

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v):
        return clean_title(v)

    @field_validator("end_date", "scheduled_time", "description", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class RecurringJobCreate(RecurringJobBase):
    pass


class RecurringJobUpdate(BaseModel):
    client_id: Optional[uuid.UUID] = None
    title: Optional[str] = None
    description: Optional[str] = None
    frequency: Optional[Frequency] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    is_active: Optional[bool] = None

    @field_validator("client_id", "frequency", "start_date", "is_active", mode="before")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v):
        return clean_title(v)


class RecurringJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    client_id: uuid.UUID
    title: str
    description: Optional[str] = None
    frequency: str
    start_date: date
    end_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    is_active: bool
    last_generated_date: Optional[date] = None
    created_at: Optional[datetime] = None
