# backend/ecotrack/models/user_challenge.py
# Adhésion d'un utilisateur à un challenge (créée uniquement par le join).

from __future__ import annotations

import datetime as dt
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ecotrack.core.bson_utils import MongoBaseModel, PyObjectId
from ecotrack.core.utils import utcnow


class UserChallenge(MongoBaseModel):
    """Document Mongo « UserChallenge ».

    Description:
        Lie un utilisateur à un challenge. La paire (`user`, `challenge`) est unique
        (index `uniq_user_challenge_pair`).

    Attributes:
        user (PyObjectId): Réf. utilisateur.
        challenge (PyObjectId): Réf. challenge.
        joined_at (datetime): Date d'adhésion (UTC).
        progress (float): Avancement, 0 à la création.
        status (Literal['joined']): Statut initial.
        meta (Any | None): Données libres.
        created_at (datetime): Création (UTC).
        updated_at (datetime): MAJ (UTC).
    """
    user: PyObjectId
    challenge: PyObjectId
    joined_at: dt.datetime = Field(default_factory=utcnow)
    progress: float = 0
    status: Literal["joined"] = "joined"
    meta: Optional[Any] = None
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)


class JoinResponse(BaseModel):
    message: str = "Joined"
    user_challenge: UserChallenge

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
