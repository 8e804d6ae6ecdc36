# ecotrack/services/challenges.py
# Cycle de vie des challenges : création, lecture, listing filtré, mise à jour et suppression.

from __future__ import annotations

from typing import Any

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from ecotrack.core.bson_utils import dump_mongo, parse_object_id
from ecotrack.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ecotrack.core.logging_config import get_loggers, log_context
from ecotrack.core.security import Identity
from ecotrack.core.utils import parse_date_safe, utcnow
from ecotrack.db.base import Store
from ecotrack.models.challenge import Challenge, ChallengeCreate, ChallengeListResponse, ChallengeUpdate
from ecotrack.services.query_builder import build_challenge_filters, normalize_pagination
from ecotrack.services.store_guard import store_guard

REQUIRED_CREATE_FIELDS = ("title", "slug", "description", "start_date", "end_date")
CAPACITY_BELOW_PARTICIPANTS = "maxParticipants cannot be lower than the current participants"


def _normalize_tags(tags: list[str] | str | None) -> list[str]:
    if tags is None:
        return []
    if isinstance(tags, list):
        return tags
    return [tags] if tags else []


def is_owner_or_admin(identity: Identity, challenge: dict[str, Any]) -> bool:
    owner = challenge.get("owner")
    is_owner = owner is not None and identity.user_id is not None and str(owner) == identity.user_id
    return is_owner or identity.is_admin


class ChallengeService:
    """Service de cycle de vie des challenges.

    Description:
        Seul le service d'adhésion (`MembershipService`) incrémente `participants` :
        la création l'initialise à 0 et la mise à jour ne peut pas le modifier.

    Args:
        store (Store): Poignée de store injectée.
        lenient_update_dates (bool): Une date illisible en mise à jour devient null au lieu
            de lever `ValidationError`.
        default_limit (int): Taille de page par défaut.
        max_limit (int): Taille de page maximale.
    """

    def __init__(self, store: Store, *, lenient_update_dates: bool = False,
                 default_limit: int = 10, max_limit: int = 100):
        self.store = store
        self.lenient_update_dates = lenient_update_dates
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.logger, _ = get_loggers()

    async def create(self, identity: Identity, payload: ChallengeCreate) -> Challenge:
        """Créer un challenge.

        Raises:
            ValidationError: Champ requis manquant ou date illisible.
            ConflictError: Slug déjà utilisé (violation de l'index unique).
        """
        for field in REQUIRED_CREATE_FIELDS:
            if not getattr(payload, field):
                alias = ChallengeCreate.model_fields[field].alias or field
                raise ValidationError(f"Missing field: {alias}")

        start_date = parse_date_safe(payload.start_date)
        end_date = parse_date_safe(payload.end_date)
        if not start_date or not end_date:
            raise ValidationError("Invalid date format")

        now = utcnow()
        challenge = Challenge(
            slug=payload.slug,
            title=payload.title,
            description=payload.description,
            category=payload.category,
            tags=_normalize_tags(payload.tags),
            start_date=start_date,
            end_date=end_date,
            owner=identity.object_id,
            participants=0,
            max_participants=payload.max_participants,
            is_published=payload.is_published is not False,
            location=payload.location,
            image=payload.image,
            metadata=payload.metadata,
            created_at=now,
            updated_at=now,
        )

        async with store_guard("challenge.create", slug=payload.slug, user_id=identity.user_id):
            try:
                challenge.id = await self.store.challenges.insert_one(dump_mongo(challenge))
            except DuplicateKeyError as e:
                raise ConflictError("Slug already exists") from e

        self.logger.info(
            f"Challenge created: {challenge.id} ({challenge.slug})",
            extra=log_context("challenge.create", challenge_id=challenge.id, user_id=identity.user_id),
        )
        return challenge

    async def get(self, challenge_id: str | ObjectId) -> Challenge:
        oid = parse_object_id(challenge_id)
        async with store_guard("challenge.get", challenge_id=oid):
            doc = await self.store.challenges.find_one(oid)
        if doc is None:
            raise NotFoundError()
        return Challenge.model_validate(doc)

    async def list_challenges(self, params: dict[str, Any]) -> ChallengeListResponse:
        """Lister les challenges publiés (filtrés, paginés, triés par date de début).

        Args:
            params: Options brutes (`page`, `limit` + options de filtre).

        Returns:
            ChallengeListResponse: page, limit, total et items.
        """
        pagination = normalize_pagination(
            params.get("page"), params.get("limit"),
            default_limit=self.default_limit, max_limit=self.max_limit,
        )
        filters = build_challenge_filters(params)

        async with store_guard("challenge.list"):
            items = await self.store.challenges.find(filters, skip=pagination.skip, limit=pagination.limit)
            total = await self.store.challenges.count(filters)

        return ChallengeListResponse(
            page=pagination.page,
            limit=pagination.limit,
            total=total,
            items=[Challenge.model_validate(d) for d in items],
        )

    async def _get_authorized(self, identity: Identity, oid: ObjectId, operation: str) -> dict[str, Any]:
        async with store_guard(operation, challenge_id=oid):
            existing = await self.store.challenges.find_one(oid)
        if existing is None:
            raise NotFoundError()
        if not is_owner_or_admin(identity, existing):
            raise AuthorizationError()
        return existing

    def _prepare_update(self, patch: ChallengeUpdate) -> dict[str, Any]:
        """Champs `$set` d'une mise à jour partielle (clés Mongo camelCase)."""
        provided = patch.model_dump(exclude_unset=True, exclude_none=True)
        fields: dict[str, Any] = {}

        for name, value in provided.items():
            alias = ChallengeUpdate.model_fields[name].alias or name
            if name in ("start_date", "end_date"):
                parsed = parse_date_safe(value)
                if parsed is None and not self.lenient_update_dates:
                    raise ValidationError(f"Invalid date format: {alias}")
                value = parsed
            elif name == "tags":
                value = _normalize_tags(value)
            fields[alias] = value

        fields["updatedAt"] = utcnow()
        return fields

    async def update(self, identity: Identity, challenge_id: str | ObjectId, patch: ChallengeUpdate) -> Challenge:
        """Mise à jour partielle par le propriétaire ou un admin.

        Raises:
            ValidationError: Id invalide, date illisible (mode strict) ou plafond
                `maxParticipants` inférieur au compteur `participants`.
            NotFoundError: Challenge absent.
            AuthorizationError: Appelant ni propriétaire ni admin.
            ConflictError: Nouveau slug déjà utilisé.
        """
        oid = parse_object_id(challenge_id)
        existing = await self._get_authorized(identity, oid, "challenge.update")
        fields = self._prepare_update(patch)

        # Le plafond ne descend jamais sous le compteur, vérifié au moment de l'écriture
        new_max = fields.get("maxParticipants")
        guard = {"participants": {"$lte": new_max}} if new_max is not None else None
        if guard and existing.get("participants", 0) > new_max:
            raise ValidationError(CAPACITY_BELOW_PARTICIPANTS)

        async with store_guard("challenge.update", challenge_id=oid, user_id=identity.user_id):
            try:
                doc = await self.store.challenges.update_fields(oid, fields, guard=guard)
            except DuplicateKeyError as e:
                raise ConflictError("Slug already exists") from e
            if doc is None and guard:
                # Condition refusée ou challenge supprimé entre-temps
                if await self.store.challenges.find_one(oid) is not None:
                    raise ValidationError(CAPACITY_BELOW_PARTICIPANTS)
        if doc is None:
            # Supprimé entre la lecture et l'écriture
            raise NotFoundError()
        return Challenge.model_validate(doc)

    async def delete(self, identity: Identity, challenge_id: str | ObjectId) -> None:
        """Supprime le challenge et ses adhésions dans une même transaction."""
        oid = parse_object_id(challenge_id)
        await self._get_authorized(identity, oid, "challenge.delete")

        async def _delete(session) -> int:
            if not await self.store.challenges.delete_one(oid, session=session):
                raise NotFoundError()
            return await self.store.memberships.delete_for_challenge(oid, session=session)

        async with store_guard("challenge.delete", challenge_id=oid, user_id=identity.user_id):
            removed = await self.store.run_transaction(oid, _delete)

        self.logger.info(
            f"Challenge deleted: {oid} ({removed} memberships removed)",
            extra=log_context("challenge.delete", challenge_id=oid, user_id=identity.user_id),
        )
