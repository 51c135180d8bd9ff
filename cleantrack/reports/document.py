"""
Job report HTML rendering.

The output depends only on the aggregate passed in; timestamps come from
``aggregate.generated_at`` so identical aggregates render identically.
"""
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import settings
from .aggregate import ReportAggregate


TEMPLATE_DIR = Path(__file__).parent / "templates"

# Selectable report layouts, keyed by the configured report_template
REPORT_TEMPLATES = {
    "standard": {
        "file": "job_report.html",
        "label": "Standard",
        "description": "Full-width header with logo, two-column photo grid",
    },
    "compact": {
        "file": "job_report_compact.html",
        "label": "Compact",
        "description": "Text-only header, smaller type and a denser photo grid",
    },
}
DEFAULT_TEMPLATE = "standard"

STATUS_LABELS = {
    "enquiry": "Enquiry",
    "scheduled": "Scheduled",
    "in_progress": "In Progress",
    "completed": "Completed",
    "cancelled": "Cancelled",
}


def format_date(value: Optional[date]) -> str:
    if not value:
        return ""
    return value.strftime("%A, %d %B %Y")


def format_time(value: Optional[time]) -> str:
    if not value:
        return ""
    return value.strftime("%H:%M")


def format_datetime(value: Optional[datetime]) -> str:
    if not value:
        return ""
    return value.strftime("%d %B %Y %H:%M")


def format_duration(seconds: Optional[int]) -> str:
    seconds = int(seconds or 0)
    hours, rest = divmod(seconds, 3600)
    minutes = rest // 60
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def status_label(value: Optional[str]) -> str:
    if not value:
        return ""
    return STATUS_LABELS.get(value, value.replace("_", " ").title())


def _create_jinja_env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["date"] = format_date
    env.filters["time"] = format_time
    env.filters["datetime"] = format_datetime
    env.filters["duration"] = format_duration
    env.filters["status_label"] = status_label
    return env


_env = _create_jinja_env()


def resolve_template(name: Optional[str]) -> str:
    """Template file for a configured layout name; unknown names use the default."""
    entry = REPORT_TEMPLATES.get(name or DEFAULT_TEMPLATE) or REPORT_TEMPLATES[DEFAULT_TEMPLATE]
    return entry["file"]


def list_report_templates() -> List[Dict[str, Any]]:
    return [
        {
            "name": name,
            "label": entry["label"],
            "description": entry["description"],
            "is_default": name == DEFAULT_TEMPLATE,
        }
        for name, entry in REPORT_TEMPLATES.items()
    ]


def resolve_palette(configuration: Dict[str, Any]) -> Dict[str, str]:
    """Colors and font for the document; brand colors only when enabled."""
    if configuration.get("include_company_colors", True):
        return {
            "primary": configuration.get("primary_color") or settings.report_primary_color,
            "secondary": configuration.get("secondary_color") or settings.report_secondary_color,
            "accent": configuration.get("accent_color") or settings.report_accent_color,
            "font": configuration.get("font_family") or settings.report_font_family,
        }
    return {
        "primary": settings.report_primary_color,
        "secondary": settings.report_secondary_color,
        "accent": settings.report_accent_color,
        "font": configuration.get("font_family") or settings.report_font_family,
    }


def render_document(aggregate: ReportAggregate, template_name: Optional[str] = None) -> str:
    config = aggregate.configuration
    template_name = template_name or resolve_template(config.get("report_template"))
    logo_url = config.get("company_logo_url") if config.get("include_company_logo") else None
    timer_seconds = aggregate.job.total_time_seconds or 0
    template = _env.get_template(template_name)
    return template.render(
        job=aggregate.job,
        client=aggregate.client,
        config=config,
        palette=resolve_palette(config),
        logo_url=logo_url,
        tasks=aggregate.included_tasks() if config.get("include_tasks", True) else [],
        show_tasks=bool(config.get("include_tasks", True)),
        photos=aggregate.included_photos() if config.get("include_photos", True) else [],
        show_photos=bool(config.get("include_photos", True)),
        photo_layout=config.get("photo_layout") or "grid",
        notes=aggregate.notes if config.get("include_notes", True) else [],
        show_notes=bool(config.get("include_notes", True)),
        show_timer=bool(config.get("include_timer_data", True)) and (timer_seconds > 0 or aggregate.job.actual_hours),
        timer_seconds=timer_seconds,
        generated_at=aggregate.generated_at,
    )
