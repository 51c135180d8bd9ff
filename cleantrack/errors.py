"""
Service-level error taxonomy.

Services raise these; the API layer maps them to JSON responses with the
matching status code.
"""
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError


logger = structlog.get_logger(__name__)


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Bad or inactive input (e.g. generating instances for a paused definition)."""
    status_code = 400


class NotFoundError(ValidationError):
    """Referenced definition, job, instance or row does not exist for this user."""
    status_code = 404


class StorageError(ServiceError):
    """The underlying persistence call failed."""
    status_code = 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def commit_or_raise(db, action: str) -> None:
    """Commit the session, turning driver failures into StorageError."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("storage_failed", action=action, error=str(exc))
        raise StorageError(f"Failed to {action}") from exc
