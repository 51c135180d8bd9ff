import os
import shutil
import tempfile
from datetime import date
from pathlib import Path

import pytest


# Configure settings before any cleantrack module is imported.
_SESSION_DIR = Path(tempfile.mkdtemp(prefix="cleantrack_pytest_"))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("STORAGE_DIR", str(_SESSION_DIR / "storage"))
os.environ.setdefault("JWT_SECRET", "cleantrack-test-secret-0123456789abcdef")
os.environ.setdefault("RATE_LIMIT", "10000/minute")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from cleantrack.auth.security import create_access_token  # noqa: E402
from cleantrack.db import Base, get_db, make_engine  # noqa: E402
from cleantrack.models.models import Client, Job, RecurringJob, User  # noqa: E402
from cleantrack.reports.pdf import PdfRenderer, get_pdf_renderer  # noqa: E402
from cleantrack.storage.local_provider import LocalStorageProvider  # noqa: E402
from cleantrack.storage.provider import get_storage  # noqa: E402


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_SESSION_DIR, ignore_errors=True)


class FakeRenderer(PdfRenderer):
    """Stands in for headless Chromium; remembers what it was asked to render."""

    def __init__(self):
        self.calls = []

    def render_pdf(self, html: str) -> bytes:
        self.calls.append(html)
        return b"%PDF-1.4 fake report"


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    yield session
    session.close()


@pytest.fixture
def user(db):
    u = User(email="owner@example.com", display_name="Owner", company_name="Sparkle Cleaning")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def other_user(db):
    u = User(email="other@example.com", display_name="Other")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def client_row(db, user):
    c = Client(user_id=user.id, name="Jane Smith", email="jane@example.com", phone="555-0100", address="1 High St")
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture
def make_definition(db, user, client_row):
    def _make(**overrides):
        values = dict(
            user_id=user.id,
            client_id=client_row.id,
            title="Weekly clean",
            frequency="weekly",
            start_date=date(2024, 5, 21),
            end_date=date(2024, 6, 18),
            is_active=True,
        )
        values.update(overrides)
        definition = RecurringJob(**values)
        db.add(definition)
        db.commit()
        db.refresh(definition)
        return definition

    return _make


@pytest.fixture
def job(db, user, client_row):
    j = Job(
        user_id=user.id,
        client_id=client_row.id,
        title="End of tenancy clean",
        description="Full clean of a two bed flat",
        scheduled_date=date(2024, 6, 4),
        status="scheduled",
    )
    db.add(j)
    db.commit()
    db.refresh(j)
    return j


@pytest.fixture
def storage(tmp_path):
    return LocalStorageProvider(base_dir=str(tmp_path / "storage"), public_base_url="http://testserver")


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def token(user):
    return create_access_token(str(user.id))


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api(db, storage, renderer):
    from cleantrack.main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_pdf_renderer] = lambda: renderer
    yield TestClient(app)
    app.dependency_overrides.clear()
