"""
Snapshot of everything a job report needs, detached from the ORM session.
"""
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional


@dataclass
class TaskEntry:
    task_id: uuid.UUID
    title: str
    description: Optional[str]
    is_completed: bool
    display_order: int
    include_in_report: bool = True


@dataclass
class PhotoEntry:
    photo_id: uuid.UUID
    file_name: str
    url: Optional[str]
    caption: Optional[str]
    photo_type: str
    display_order: int
    include_in_report: bool = True


@dataclass
class NoteEntry:
    content: str
    created_at: datetime


@dataclass
class JobInfo:
    id: uuid.UUID
    title: str
    description: Optional[str]
    scheduled_date: date
    scheduled_time: Optional[time]
    status: str
    agreed_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    total_time_seconds: int = 0


@dataclass
class ClientInfo:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


@dataclass
class ReportAggregate:
    job: JobInfo
    client: Optional[ClientInfo]
    tasks: List[TaskEntry]
    photos: List[PhotoEntry]
    notes: List[NoteEntry]
    configuration: Dict[str, Any]
    generated_at: datetime
    # Names of optional tables that were unavailable and replaced by defaults
    fallbacks: List[str] = field(default_factory=list)

    def included_tasks(self) -> List[TaskEntry]:
        return sorted(
            (t for t in self.tasks if t.include_in_report),
            key=lambda t: t.display_order,
        )

    def included_photos(self) -> List[PhotoEntry]:
        photos = sorted(
            (p for p in self.photos if p.include_in_report),
            key=lambda p: p.display_order,
        )
        limit = self.configuration.get("max_photos_per_report")
        if limit is not None:
            photos = photos[:limit]
        return photos

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
