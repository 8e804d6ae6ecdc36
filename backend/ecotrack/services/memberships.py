# ecotrack/services/memberships.py
# Adhésion à un challenge : transition atomique « non participant » -> « participant ».

from __future__ import annotations

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from ecotrack.core.bson_utils import dump_mongo, parse_object_id
from ecotrack.core.errors import (
    CapacityExceededError,
    DuplicateMembershipError,
    EcoTrackError,
    NotFoundError,
    ValidationError,
)
from ecotrack.core.logging_config import get_loggers, log_context
from ecotrack.core.security import Identity
from ecotrack.core.utils import utcnow
from ecotrack.db.base import Session, Store
from ecotrack.models.challenge import Challenge
from ecotrack.models.user_challenge import UserChallenge
from ecotrack.services.store_guard import store_guard


class MembershipService:
    """Coordinateur des adhésions.

    Description:
        Seul composant autorisé à écrire à la fois dans `challenges` et `userChallenges`.
        Le join s'exécute dans une transaction du store : lecture du challenge, contrôle de
        capacité, insertion de l'adhésion puis incrément du compteur, tout ou rien. Le contrôle
        de capacité et l'incrément voient le même snapshot ; aucun rejeu n'est fait ici,
        la politique de retry appartient à l'appelant.
    """

    def __init__(self, store: Store):
        self.store = store
        self.logger, _ = get_loggers()

    @staticmethod
    def _require_user_id(identity: Identity | None) -> ObjectId:
        user_oid = identity.object_id if identity is not None else None
        if user_oid is None:
            raise ValidationError("Missing or invalid identity: a valid user id is required to join")
        return user_oid

    async def join(self, identity: Identity | None, challenge_id: str | ObjectId) -> UserChallenge:
        """Faire rejoindre un challenge à l'appelant.

        Args:
            identity (Identity | None): Appelant ; son `user_id` doit être un ObjectId.
            challenge_id (str | ObjectId): Challenge visé.

        Returns:
            UserChallenge: Adhésion créée.

        Raises:
            ValidationError: Identité ou id de challenge invalide.
            NotFoundError: Challenge absent.
            CapacityExceededError: `participants >= maxParticipants`.
            DuplicateMembershipError: L'appelant a déjà rejoint ce challenge.
            StoreUnavailableError: Store injoignable ou timeout.
        """
        user_oid = self._require_user_id(identity)
        challenge_oid = parse_object_id(challenge_id, "challenge id")

        async def _join(session: Session) -> UserChallenge:
            doc = await self.store.challenges.find_one(challenge_oid, session=session)
            if doc is None:
                raise NotFoundError("Challenge not found")
            challenge = Challenge.model_validate(doc)
            if challenge.is_full:
                raise CapacityExceededError()

            now = utcnow()
            membership = UserChallenge(
                user=user_oid,
                challenge=challenge_oid,
                joined_at=now,
                progress=0,
                status="joined",
                meta=None,
                created_at=now,
                updated_at=now,
            )
            try:
                membership.id = await self.store.memberships.insert_one(dump_mongo(membership), session=session)
            except DuplicateKeyError as e:
                raise DuplicateMembershipError() from e

            await self.store.challenges.increment_participants(challenge_oid, now, session=session)
            return membership

        try:
            async with store_guard("challenge.join", challenge_id=challenge_oid, user_id=user_oid):
                membership = await self.store.run_transaction(challenge_oid, _join)
        except EcoTrackError as e:
            self.logger.info(
                f"Join rejected ({e.code}): user {user_oid} -> challenge {challenge_oid}",
                extra=log_context("challenge.join", challenge_id=challenge_oid, user_id=user_oid),
            )
            raise

        self.logger.info(
            f"Join: user {user_oid} -> challenge {challenge_oid}",
            extra=log_context("challenge.join", challenge_id=challenge_oid, user_id=user_oid),
        )
        return membership

    async def count_members(self, challenge_id: str | ObjectId) -> int:
        """Nombre d'adhésions persistées (doit égaler le compteur `participants`)."""
        oid = parse_object_id(challenge_id, "challenge id")
        async with store_guard("challenge.count_members", challenge_id=oid):
            return await self.store.memberships.count_for_challenge(oid)
