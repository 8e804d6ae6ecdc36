# backend/tests/test_mongodb_store.py
# Intégration MongoDB : exige un replica set joignable via TEST_MONGODB_URI (sinon skip).

import asyncio
import os

import pytest
from bson import ObjectId
from rich import print

from ecotrack.core.errors import CapacityExceededError, DuplicateMembershipError
from ecotrack.core.settings import Settings
from ecotrack.db.mongodb import MongoStore
from ecotrack.services.challenges import ChallengeService
from ecotrack.services.memberships import MembershipService

MONGODB_URI = os.getenv("TEST_MONGODB_URI")

pytestmark = pytest.mark.skipif(not MONGODB_URI, reason="TEST_MONGODB_URI not set")


async def _open_store() -> MongoStore:
    settings = Settings(
        store_backend="mongodb",
        mongodb_uri=MONGODB_URI,
        mongodb_db=f"ecotrack_test_{ObjectId()}",
        store_timeout_ms=3000,
    )
    store = MongoStore.from_settings(settings)
    try:
        hello = await store.db.command("hello")
    except Exception as e:
        store.client.close()
        pytest.skip(f"MongoDB unreachable: {e}")
    if not hello.get("setName"):
        store.client.close()
        pytest.skip("MongoDB is not a replica set (transactions unavailable)")
    await store.ensure_indexes()
    print(f"🔎 Base de test : {store.db.name}")
    return store


async def _drop(store: MongoStore) -> None:
    await store.client.drop_database(store.db.name)
    await store.close()


@pytest.mark.asyncio
async def test_round_trip_and_unique_slug(owner, make_payload):
    store = await _open_store()
    try:
        service = ChallengeService(store)
        created = await service.create(owner, make_payload("mongo-roundtrip"))
        fetched = await service.get(created.id)
        assert fetched.model_dump() == created.model_dump()

        raw = await store.db["challenges"].find_one({"_id": created.id})
        assert "startDate" in raw and "maxParticipants" in raw
    finally:
        await _drop(store)


@pytest.mark.asyncio
async def test_concurrent_joins_respect_capacity(owner, make_payload, make_user):
    store = await _open_store()
    try:
        challenges = ChallengeService(store)
        memberships = MembershipService(store)
        challenge = await challenges.create(owner, make_payload("mongo-race", maxParticipants=3))

        results = await asyncio.gather(
            *(memberships.join(make_user(), challenge.id) for _ in range(10)),
            return_exceptions=True,
        )

        assert sum(1 for r in results if not isinstance(r, Exception)) == 3
        assert all(isinstance(r, CapacityExceededError) for r in results if isinstance(r, Exception))
        assert (await challenges.get(challenge.id)).participants == 3
        assert await memberships.count_members(challenge.id) == 3
    finally:
        await _drop(store)


@pytest.mark.asyncio
async def test_concurrent_duplicate_join(owner, make_payload, make_user):
    store = await _open_store()
    try:
        challenges = ChallengeService(store)
        memberships = MembershipService(store)
        challenge = await challenges.create(owner, make_payload("mongo-dup"))
        user = make_user()

        results = await asyncio.gather(
            *(memberships.join(user, challenge.id) for _ in range(4)),
            return_exceptions=True,
        )

        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert all(isinstance(r, DuplicateMembershipError) for r in results if isinstance(r, Exception))
        assert (await challenges.get(challenge.id)).participants == 1
    finally:
        await _drop(store)


@pytest.mark.asyncio
async def test_delete_cascades_in_transaction(owner, make_payload, make_user):
    store = await _open_store()
    try:
        challenges = ChallengeService(store)
        memberships = MembershipService(store)
        challenge = await challenges.create(owner, make_payload("mongo-delete"))
        await memberships.join(make_user(), challenge.id)
        assert await store.db["userChallenges"].count_documents({"challenge": challenge.id}) == 1

        await challenges.delete(owner, challenge.id)
        assert await memberships.count_members(challenge.id) == 0
    finally:
        await _drop(store)
