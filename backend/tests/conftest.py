"""
Fixtures communes : store en mémoire, services et TestClient authentifié par jetons mock.
"""

import os
import tempfile
from pathlib import Path

# Avant tout import de l'application : settings mis en cache au premier appel
os.environ.setdefault("LOG_DIR", str(Path(tempfile.gettempdir()) / "ecotrack-test-logs"))
os.environ.setdefault("IDENTITY_PROVIDER", "mock")

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from ecotrack.core.security import Identity, MockIdentityVerifier
from ecotrack.core.settings import Settings
from ecotrack.db.memory import InMemoryStore
from ecotrack.main import create_app
from ecotrack.models.challenge import ChallengeCreate
from ecotrack.services.challenges import ChallengeService
from ecotrack.services.memberships import MembershipService


@pytest.fixture
def store():
    return InMemoryStore(timeout_s=1.0)


@pytest.fixture
def challenge_service(store):
    return ChallengeService(store)


@pytest.fixture
def membership_service(store):
    return MembershipService(store)


@pytest.fixture
def owner():
    return Identity(user_id=str(ObjectId()), is_admin=False)


@pytest.fixture
def admin():
    return Identity(user_id=str(ObjectId()), is_admin=True)


def new_user() -> Identity:
    return Identity(user_id=str(ObjectId()), is_admin=False)


def challenge_payload(slug: str = "plastic-free-week", **overrides) -> ChallengeCreate:
    data = {
        "title": "Plastic free week",
        "slug": slug,
        "description": "Avoid single-use plastic for seven days",
        "category": "waste",
        "tags": ["plastic", "zero-waste"],
        "startDate": "2026-03-01T00:00:00Z",
        "endDate": "2026-03-08T00:00:00Z",
    }
    data.update(overrides)
    return ChallengeCreate.model_validate(data)


@pytest.fixture
def app(store):
    settings = Settings(store_backend="memory", identity_provider="mock")
    return create_app(settings=settings, store=store, identity_verifier=MockIdentityVerifier())


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def auth(user_id: str | None = None, *, admin: bool = False) -> dict:
    token = "mock-admin" if admin else f"mock-user:{user_id or ''}"
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user():
    return new_user


@pytest.fixture
def make_payload():
    return challenge_payload


@pytest.fixture
def auth_headers():
    return auth
