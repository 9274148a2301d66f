"""
Pytest Configuration and Shared Fixtures

Everything runs against the in-memory store and static lookups, so no
database is needed. API tests swap the process-wide services for a
freshly built set through app.dependency_overrides.

Fixtures:
- store, bus, engine, attachments: one wired set of core services
- postings, profiles: static lookups with an open and a closed posting
- student, other_student, company, other_company: actors
- submit: helper coroutine that submits as `student`
- services, client, auth_headers: API level
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from internlink.api.deps import build_services, get_services
from internlink.core.auth import create_access_token
from internlink.core.config import Settings
from internlink.main import app
from internlink.schemas.schemas import (
    Actor,
    ActorRole,
    Application,
    ApplicationStatus,
    Posting,
    StudentProfile,
)
from internlink.services.application_store import InMemoryApplicationStore
from internlink.services.attachment_service import ResumeAttachmentService
from internlink.services.lookups import StaticPostingLookup, StaticProfileLookup
from internlink.services.notification_bus import NotificationBus
from internlink.services.status_engine import StatusTransitionEngine

COMPANY = "Acme Robotics"
OTHER_COMPANY = "Globex"

OPEN_POSTING = Posting(posting_id="p-1", title="Backend Intern", company_name=COMPANY)
SECOND_POSTING = Posting(posting_id="p-2", title="Data Intern", company_name=COMPANY)
CLOSED_POSTING = Posting(posting_id="p-closed", title="Old Intern", company_name=COMPANY, is_active=False)
OTHER_POSTING = Posting(posting_id="p-globex", title="QA Intern", company_name=OTHER_COMPANY)

VALID_NOTES = "Strong portfolio, invite to a technical interview"


def make_application(app_id="a-1", status=ApplicationStatus.pending, student_id="s-1",
                     posting=OPEN_POSTING, last_updated=1, cover_letter="I would love to join",
                     applied_date=None, **extra) -> Application:
    """Build an application document directly, bypassing the engine."""
    return Application(
        id=app_id,
        posting_id=posting.posting_id,
        posting_title=posting.title,
        company_name=posting.company_name,
        student_id=student_id,
        cover_letter=cover_letter,
        status=status,
        applied_date=applied_date or datetime(2024, 6, 1, tzinfo=timezone.utc),
        last_updated=last_updated,
        **extra,
    )


@pytest.fixture
def settings():
    return Settings(store_backend="memory", max_resume_bytes=500_000, min_review_note_length=20)


@pytest.fixture
def postings():
    return StaticPostingLookup([OPEN_POSTING, SECOND_POSTING, CLOSED_POSTING, OTHER_POSTING])


@pytest.fixture
def profiles():
    return StaticProfileLookup([
        StudentProfile(student_id="s-1", name="Maria Santos", school="UP Diliman",
                       course="BS Computer Science", skills=["python", "sql"]),
    ])


@pytest.fixture
def store():
    return InMemoryApplicationStore()


@pytest.fixture
def bus(store):
    return NotificationBus(store)


@pytest.fixture
def attachments():
    return ResumeAttachmentService(max_bytes=500_000)


@pytest.fixture
def engine(store, postings, attachments, profiles):
    return StatusTransitionEngine(store, postings, attachments, profiles, min_review_note_length=20)


@pytest.fixture
def student():
    return Actor(id="s-1", role=ActorRole.student, email="maria@example.com")


@pytest.fixture
def other_student():
    return Actor(id="s-2", role=ActorRole.student, email="juan@example.com")


@pytest.fixture
def company():
    return Actor(id="c-1", role=ActorRole.company, company_name=COMPANY)


@pytest.fixture
def other_company():
    return Actor(id="c-9", role=ActorRole.company, company_name=OTHER_COMPANY)


@pytest.fixture
def submit(engine, student):
    async def _submit(posting_id=OPEN_POSTING.posting_id, cover_letter="I would love to join", resume=None,
                      actor=None):
        return await engine.submit_application(actor or student, posting_id, cover_letter, resume)
    return _submit


# ============================================================
# API
# ============================================================

@pytest.fixture
def services(settings, store, postings, profiles):
    return build_services(settings, store=store, postings=postings, profiles=profiles)


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    # Entering the context keeps one event loop for HTTP calls and websockets
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(actor: Actor) -> dict:
        return {"Authorization": f"Bearer {create_access_token(actor)}"}
    return _headers
