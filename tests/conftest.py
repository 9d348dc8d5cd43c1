# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up test environment variables before any imports
# - Fresh in-memory SQLite database per test (schema created, FKs on)
# - FastAPI app + httpx client wired to that database
# - Factories for users, projects and applications, and auth headers
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config: get_settings() is cached and
# workers.config reads it at import time (Celery runs tasks eagerly in test)

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-that-is-long-enough-123")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-that-is-long-enough-456")
os.environ.setdefault("LOG_LEVEL", "debug")
os.environ.setdefault("FRONTEND_URL", "http://localhost:5173")

from datetime import timedelta

import httpx
import pytest

import lib.passwords
from app.config import get_settings
from app.main import create_app
from core.entities import (
    Application,
    ApplicationStatus,
    Base,
    DifficultyLevel,
    Project,
    ProjectStatus,
    ProjectType,
    User,
    UserRole,
)
from lib.database import DatabaseClient
from lib.request_tracker import RequestTracker
from lib.tokens import TokenPayload, generate_access_token
from lib.utils import utcnow

TEST_PASSWORD = "Str0ng!pass"


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Cost factor 12 is far too slow for a test suite."""
    monkeypatch.setattr(lib.passwords, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def db(settings):
    """Connected DatabaseClient on a private in-memory database."""
    client = DatabaseClient(settings)
    await client.connect()
    await client.create_all(Base.metadata)
    yield client
    await client.disconnect()


@pytest.fixture
async def session(db):
    """A session for arranging data directly; committed on exit."""
    async with db.session() as s:
        yield s


@pytest.fixture
def tracker():
    return RequestTracker()


@pytest.fixture
def app(settings, db, tracker):
    return create_app(settings, db=db, tracker=tracker)


@pytest.fixture
async def client(app):
    """
    httpx client speaking ASGI to the app.

    The lifespan is not run here (tests/test_lifecycle.py drives it); the db
    fixture has already connected.
    """
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def api_prefix(settings):
    return settings.api_prefix


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_user(db):
    """
    Insert a user and return it.

    Example:
        mentor = await make_user(role=UserRole.MENTOR)
    """
    counter = {"n": 0}

    async def _make(role: UserRole = UserRole.STUDENT, email: str | None = None, **fields) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"{role.value.lower()}{counter['n']}@codionix.dev",
            password_hash=lib.passwords.hash_password(TEST_PASSWORD),
            full_name=fields.pop("full_name", f"Test {role.value.title()} {counter['n']}"),
            role=role,
            skills=fields.pop("skills", []),
            **fields,
        )
        async with db.session() as s:
            s.add(user)
        return user

    return _make


@pytest.fixture
def make_project(db):
    async def _make(owner: User, **fields) -> Project:
        values = {
            "title": "Build a REST API",
            "description": "Design and ship a small CRUD service with tests.",
            "skills": ["Python", "FastAPI"],
            "duration": "4 weeks",
            "deadline": utcnow() + timedelta(days=30),
            "project_type": ProjectType.PROJECT,
            "difficulty_level": DifficultyLevel.INTERMEDIATE,
            "status": ProjectStatus.PUBLISHED,
            "max_applicants": 10,
            "current_applicants": 0,
        }
        values.update(fields)
        project = Project(created_by_id=owner.id, **values)
        async with db.session() as s:
            s.add(project)
        return project

    return _make


@pytest.fixture
def make_application(db):
    async def _make(project: Project, student: User, **fields) -> Application:
        values = {
            "cover_letter": "I have built several APIs and would love to contribute to this one.",
            "status": ApplicationStatus.PENDING,
        }
        values.update(fields)
        application = Application(project_id=project.id, student_id=student.id, **values)
        async with db.session() as s:
            s.add(application)
        return application

    return _make


@pytest.fixture
def auth_headers(settings):
    """Bearer header for a user, signed with the test secret."""

    def _headers(user: User) -> dict[str, str]:
        token = generate_access_token(settings, TokenPayload(user.id, user.email, user.role.value))
        return {"Authorization": f"Bearer {token}"}

    return _headers
