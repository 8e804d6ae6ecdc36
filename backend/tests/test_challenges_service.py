# backend/tests/test_challenges_service.py

import datetime as dt

import pytest
from bson import ObjectId

from ecotrack.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ecotrack.core.security import Identity
from ecotrack.db.memory import InMemoryStore, MemoryChallengeRepository
from ecotrack.models.challenge import ChallengeCreate, ChallengeUpdate
from ecotrack.services.challenges import ChallengeService

MARCH_1 = dt.datetime(2026, 3, 1, tzinfo=dt.timezone.utc)
MARCH_8 = dt.datetime(2026, 3, 8, tzinfo=dt.timezone.utc)


@pytest.mark.asyncio
async def test_create_then_get_returns_same_fields(challenge_service, owner, make_payload):
    created = await challenge_service.create(owner, make_payload())
    fetched = await challenge_service.get(str(created.id))

    assert fetched.slug == "plastic-free-week"
    assert fetched.title == created.title
    assert fetched.start_date == MARCH_1
    assert fetched.end_date == MARCH_8
    assert fetched.participants == 0
    assert fetched.owner == ObjectId(owner.user_id)
    assert fetched.is_published is True
    assert fetched.created_at == fetched.updated_at == created.created_at


@pytest.mark.asyncio
async def test_create_ignores_client_participants(challenge_service, owner, make_payload):
    payload = make_payload()
    # Champ inconnu du payload : ignoré par le modèle
    payload = ChallengeCreate.model_validate({**payload.model_dump(by_alias=True), "participants": 42})
    created = await challenge_service.create(owner, payload)
    assert created.participants == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["title", "slug", "description", "startDate", "endDate"])
async def test_create_requires_fields(challenge_service, owner, make_payload, missing):
    with pytest.raises(ValidationError, match=f"Missing field: {missing}"):
        await challenge_service.create(owner, make_payload(**{missing: None}))


@pytest.mark.asyncio
async def test_create_rejects_unparsable_dates(challenge_service, owner, make_payload):
    with pytest.raises(ValidationError, match="Invalid date format"):
        await challenge_service.create(owner, make_payload(startDate="not-a-date"))
    assert await challenge_service.store.challenges.count({}) == 0


@pytest.mark.asyncio
async def test_create_duplicate_slug_conflicts(challenge_service, owner, make_payload):
    await challenge_service.create(owner, make_payload("dup"))
    with pytest.raises(ConflictError):
        await challenge_service.create(owner, make_payload("dup", title="Other"))
    assert await challenge_service.store.challenges.count({}) == 1


@pytest.mark.asyncio
async def test_scalar_tag_becomes_list(challenge_service, owner, make_payload):
    created = await challenge_service.create(owner, make_payload(tags="water"))
    assert created.tags == ["water"]

    untagged = await challenge_service.create(owner, make_payload("untagged", tags=None))
    assert untagged.tags == []


@pytest.mark.asyncio
async def test_unpublished_only_when_explicitly_false(challenge_service, owner, make_payload):
    hidden = await challenge_service.create(owner, make_payload("hidden", isPublished=False))
    assert hidden.is_published is False

    listing = await challenge_service.list_challenges({})
    assert listing.total == 0


@pytest.mark.asyncio
async def test_owner_is_unset_when_identity_is_not_an_object_id(challenge_service, make_payload):
    created = await challenge_service.create(Identity(user_id="external-user"), make_payload())
    assert created.owner is None


@pytest.mark.asyncio
async def test_list_paginates_and_sorts_by_start_date(challenge_service, owner, make_payload):
    for i, day in enumerate([20, 5, 12]):
        await challenge_service.create(owner, make_payload(f"c{i}", startDate=f"2026-04-{day:02d}"))

    first = await challenge_service.list_challenges({"page": "1", "limit": "2"})
    assert first.total == 3
    assert [c.start_date.day for c in first.items] == [5, 12]

    second = await challenge_service.list_challenges({"page": "2", "limit": "2"})
    assert [c.start_date.day for c in second.items] == [20]


@pytest.mark.asyncio
async def test_non_owner_update_is_forbidden_and_leaves_document(challenge_service, owner, make_payload, make_user):
    created = await challenge_service.create(owner, make_payload())

    with pytest.raises(AuthorizationError):
        await challenge_service.update(make_user(), created.id, ChallengeUpdate(title="Hijacked"))

    assert (await challenge_service.get(created.id)).model_dump() == created.model_dump()


@pytest.mark.asyncio
async def test_owner_and_admin_can_update(challenge_service, owner, admin, make_payload):
    created = await challenge_service.create(owner, make_payload())

    updated = await challenge_service.update(owner, created.id, ChallengeUpdate(title="Renamed"))
    assert updated.title == "Renamed"
    assert updated.updated_at >= created.updated_at

    by_admin = await challenge_service.update(admin, created.id, ChallengeUpdate.model_validate({"maxParticipants": 3}))
    assert by_admin.max_participants == 3
    assert by_admin.title == "Renamed"


@pytest.mark.asyncio
async def test_update_parses_dates(challenge_service, owner, make_payload):
    created = await challenge_service.create(owner, make_payload())
    updated = await challenge_service.update(
        owner, created.id, ChallengeUpdate.model_validate({"endDate": "2026-03-15T10:00:00Z"})
    )
    assert updated.end_date == dt.datetime(2026, 3, 15, 10, tzinfo=dt.timezone.utc)
    assert updated.start_date == MARCH_1


@pytest.mark.asyncio
async def test_update_unparsable_date_strict_by_default(challenge_service, owner, make_payload):
    created = await challenge_service.create(owner, make_payload())

    with pytest.raises(ValidationError, match="startDate"):
        await challenge_service.update(owner, created.id, ChallengeUpdate.model_validate({"startDate": "soon"}))

    assert (await challenge_service.get(created.id)).start_date == MARCH_1


@pytest.mark.asyncio
async def test_update_unparsable_date_lenient_mode(store, owner, make_payload):
    service = ChallengeService(store, lenient_update_dates=True)
    created = await service.create(owner, make_payload())

    updated = await service.update(owner, created.id, ChallengeUpdate.model_validate({"startDate": "soon"}))
    assert updated.start_date is None


@pytest.mark.asyncio
async def test_explicit_null_equals_omitted(challenge_service, owner, make_payload):
    created = await challenge_service.create(owner, make_payload())

    with_null = await challenge_service.update(
        owner, created.id, ChallengeUpdate.model_validate({"title": "T2", "description": None})
    )
    assert with_null.description == created.description
    assert with_null.title == "T2"


@pytest.mark.asyncio
async def test_update_cannot_touch_participants_or_owner(challenge_service, owner, make_payload):
    created = await challenge_service.create(owner, make_payload())
    patch = ChallengeUpdate.model_validate({"participants": 99, "owner": str(ObjectId()), "title": "T"})

    updated = await challenge_service.update(owner, created.id, patch)
    assert updated.participants == 0
    assert updated.owner == created.owner


@pytest.mark.asyncio
async def test_update_to_taken_slug_conflicts(challenge_service, owner, make_payload):
    await challenge_service.create(owner, make_payload("taken"))
    other = await challenge_service.create(owner, make_payload("free"))

    with pytest.raises(ConflictError):
        await challenge_service.update(owner, other.id, ChallengeUpdate(slug="taken"))
    assert (await challenge_service.get(other.id)).slug == "free"


@pytest.mark.asyncio
async def test_delete_cascades_memberships(challenge_service, membership_service, owner, make_payload, make_user):
    created = await challenge_service.create(owner, make_payload())
    await membership_service.join(make_user(), created.id)
    await membership_service.join(make_user(), created.id)

    await challenge_service.delete(owner, created.id)

    with pytest.raises(NotFoundError):
        await challenge_service.get(created.id)
    assert await membership_service.count_members(created.id) == 0


@pytest.mark.asyncio
async def test_delete_by_stranger_is_forbidden(challenge_service, owner, make_payload, make_user):
    created = await challenge_service.create(owner, make_payload())
    with pytest.raises(AuthorizationError):
        await challenge_service.delete(make_user(), created.id)
    assert (await challenge_service.get(created.id)).id == created.id


@pytest.mark.asyncio
async def test_unknown_and_malformed_ids(challenge_service, owner):
    with pytest.raises(NotFoundError):
        await challenge_service.get(ObjectId())
    with pytest.raises(NotFoundError):
        await challenge_service.update(owner, ObjectId(), ChallengeUpdate(title="x"))
    with pytest.raises(NotFoundError):
        await challenge_service.delete(owner, ObjectId())
    with pytest.raises(ValidationError):
        await challenge_service.get("123")


@pytest.mark.asyncio
async def test_capacity_cannot_drop_below_participants(challenge_service, membership_service, owner, make_payload, make_user):
    created = await challenge_service.create(owner, make_payload(maxParticipants=3))
    for _ in range(3):
        await membership_service.join(make_user(), created.id)

    with pytest.raises(ValidationError, match="maxParticipants"):
        await challenge_service.update(owner, created.id, ChallengeUpdate.model_validate({"maxParticipants": 1}))

    stored = await challenge_service.get(created.id)
    assert (stored.participants, stored.max_participants) == (3, 3)

    # Égal au compteur : accepté, le challenge devient complet
    updated = await challenge_service.update(owner, created.id, ChallengeUpdate.model_validate({"maxParticipants": 3, "title": "Full"}))
    assert updated.is_full and updated.title == "Full"

    raised = await challenge_service.update(owner, created.id, ChallengeUpdate.model_validate({"maxParticipants": 10}))
    assert raised.max_participants == 10


class _RacingJoinRepository(MemoryChallengeRepository):
    """Des adhésions arrivent entre la lecture d'autorisation et l'écriture."""

    async def update_fields(self, challenge_id, fields, *, guard=None):
        self.docs[challenge_id]["participants"] = 4
        return await super().update_fields(challenge_id, fields, guard=guard)


@pytest.mark.asyncio
async def test_capacity_guard_is_checked_at_write_time(owner, make_payload):
    store = InMemoryStore()
    store.challenges = _RacingJoinRepository()
    service = ChallengeService(store)
    created = await service.create(owner, make_payload(maxParticipants=5))

    with pytest.raises(ValidationError, match="maxParticipants"):
        await service.update(owner, created.id, ChallengeUpdate.model_validate({"maxParticipants": 2}))

    stored = await service.get(created.id)
    assert (stored.participants, stored.max_participants) == (4, 5)


@pytest.mark.asyncio
async def test_create_rejects_date_out_of_range_after_utc_conversion(challenge_service, owner, make_payload):
    with pytest.raises(ValidationError, match="Invalid date format"):
        await challenge_service.create(owner, make_payload(startDate="0001-01-01T00:00:00+01:00"))
    with pytest.raises(ValidationError, match="Invalid date format"):
        await challenge_service.create(owner, make_payload(endDate="9999-12-31T23:59:59-01:00"))
    assert await challenge_service.store.challenges.count({}) == 0


@pytest.mark.asyncio
async def test_image_is_stored_as_given(challenge_service, owner, make_payload):
    image = {"url": "https://cdn.example.org/river.jpg", "alt": "River"}
    created = await challenge_service.create(owner, make_payload(image=image))
    assert (await challenge_service.get(created.id)).image == image
