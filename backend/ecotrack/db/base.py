# backend/ecotrack/db/base.py
# Interfaces du store : repositories `challenges` / `userChallenges` et unité de travail transactionnelle.

from __future__ import annotations

import abc
import datetime as dt
from typing import Any, Awaitable, Callable, TypeVar

from bson import ObjectId

T = TypeVar("T")

# Session opaque transmise aux repositories pendant une transaction
Session = Any
TransactionBody = Callable[[Session], Awaitable[T]]

CHALLENGES = "challenges"
USER_CHALLENGES = "userChallenges"


class ChallengeRepository(abc.ABC):
    """Collection `challenges` : unicité du slug, compteur `participants` de référence."""

    @abc.abstractmethod
    async def insert_one(self, doc: dict[str, Any]) -> ObjectId:
        """Insère un challenge ; lève `DuplicateKeyError` si le slug existe déjà."""

    @abc.abstractmethod
    async def find_one(self, challenge_id: ObjectId, *, session: Session = None) -> dict[str, Any] | None:
        ...

    @abc.abstractmethod
    async def find(self, query: dict[str, Any], *, skip: int, limit: int) -> list[dict[str, Any]]:
        """Documents correspondant à `query`, triés par `startDate` croissant."""

    @abc.abstractmethod
    async def count(self, query: dict[str, Any]) -> int:
        ...

    @abc.abstractmethod
    async def update_fields(self, challenge_id: ObjectId, fields: dict[str, Any], *,
                            guard: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """`$set` des champs puis retour du document modifié.

        Le document doit aussi satisfaire `guard` (filtre évalué atomiquement avec
        l'écriture) ; None si absent ou si la condition échoue.
        """

    @abc.abstractmethod
    async def delete_one(self, challenge_id: ObjectId, *, session: Session = None) -> bool:
        ...

    @abc.abstractmethod
    async def increment_participants(self, challenge_id: ObjectId, at: dt.datetime, *, session: Session = None) -> None:
        """`$inc participants` de 1 et rafraîchit `updatedAt`."""


class MembershipRepository(abc.ABC):
    """Collection `userChallenges` : unicité de la paire (user, challenge)."""

    @abc.abstractmethod
    async def insert_one(self, doc: dict[str, Any], *, session: Session = None) -> ObjectId:
        """Insère une adhésion ; lève `DuplicateKeyError` si la paire existe déjà."""

    @abc.abstractmethod
    async def count_for_challenge(self, challenge_id: ObjectId, *, session: Session = None) -> int:
        ...

    @abc.abstractmethod
    async def delete_for_challenge(self, challenge_id: ObjectId, *, session: Session = None) -> int:
        ...


class Store(abc.ABC):
    """Poignée de store injectée dans les services.

    Description:
        Acquise une fois au démarrage (lifespan FastAPI), libérée à l'arrêt. `run_transaction`
        exécute un corps tout-ou-rien : soit tous ses effets sont appliqués, soit aucun.
    """

    challenges: ChallengeRepository
    memberships: MembershipRepository

    @abc.abstractmethod
    async def run_transaction(self, key: ObjectId, body: TransactionBody[T]) -> T:
        """Exécute `body(session)` atomiquement ; `key` identifie le challenge concerné."""

    @abc.abstractmethod
    async def ensure_indexes(self) -> None:
        ...

    @abc.abstractmethod
    async def ping(self) -> None:
        """Lève une exception si le store est injoignable."""

    @abc.abstractmethod
    async def close(self) -> None:
        ...
