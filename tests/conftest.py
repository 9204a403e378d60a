"""
Shared pytest fixtures for the Use Case Workflow Core Service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - plant: Pre-created Plant entity
    - auth_headers: factory building Bearer headers for a user id + roles
    - owner_headers / other_headers / review_headers / internal_headers
    - make_use_case: factory creating a UseCase directly via the ORM

Outbound calls (file service, user directory, SMTP) are never made for real:
TestingConfig leaves MAIL_SERVER unset (log-only mail) and tests that
complete steps patch the module-level gateway singletons.
"""

from datetime import datetime, timedelta, timezone

import pytest

from core_service import create_app
from core_service.models import db as _db
from core_service.models.plant import Plant
from core_service.models.use_case import UseCase, UseCaseStep
from core_service.models.workflow import ROLE_REQUESTOR, ROLE_REVIEW_TEAM, STEPS_ORDER
from core_service.services.jwt_service import generate_access_token
from core_service.services.permission import ActingUser

OWNER_ID = "user-owner"
OTHER_ID = "user-other"
REVIEWER_ID = "user-reviewer"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Identity fixtures ────────────────────────────────────────────────────


@pytest.fixture()
def auth_headers():
    """Return a builder: (user_id, *roles) → {"Authorization": "Bearer ..."}."""

    def _build(user_id, *roles):
        token = generate_access_token(user_id, list(roles))
        return {"Authorization": f"Bearer {token}"}

    return _build


@pytest.fixture()
def owner_headers(auth_headers):
    return auth_headers(OWNER_ID, ROLE_REQUESTOR)


@pytest.fixture()
def other_headers(auth_headers):
    return auth_headers(OTHER_ID, ROLE_REQUESTOR)


@pytest.fixture()
def review_headers(auth_headers):
    return auth_headers(REVIEWER_ID, ROLE_REVIEW_TEAM)


@pytest.fixture()
def internal_headers(app):
    return {"X-Internal-Token": app.config["INTERNAL_API_TOKEN"]}


@pytest.fixture()
def owner():
    return ActingUser(OWNER_ID, frozenset({ROLE_REQUESTOR}))


@pytest.fixture()
def stranger():
    return ActingUser(OTHER_ID, frozenset({ROLE_REQUESTOR}))


@pytest.fixture()
def reviewer():
    return ActingUser(REVIEWER_ID, frozenset({ROLE_REVIEW_TEAM}))


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def plant():
    """Create and return a test Plant."""
    p = Plant(id="P01", name="Munich Plant", country="DE")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def make_use_case(plant):
    """Return a factory creating a committed UseCase owned by OWNER_ID.

    ``completed`` = number of leading catalog steps to mark submitted+completed.
    ``submitted`` = extra steps (after the completed prefix) submitted only.
    """

    def _make(completed=0, submitted=0, status="in-evaluation", created_by=OWNER_ID):
        uc = UseCase(
            name=f"{plant.id}-H7-Robot cell",
            building="7",
            plant_id=plant.id,
            created_by=created_by,
            status=status,
        )
        _db.session.add(uc)
        for idx, step in enumerate(STEPS_ORDER[: completed + submitted]):
            record = UseCaseStep(
                use_case=uc,
                step_type=step.value,
                form={"seq": idx},
                created_by=created_by,
            )
            if idx < completed:
                record.completed_at = datetime.now(timezone.utc) + timedelta(seconds=idx)
            _db.session.add(record)
        _db.session.commit()
        return uc

    return _make

