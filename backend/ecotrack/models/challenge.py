# backend/ecotrack/models/challenge.py
# Représentation d'un challenge (document Mongo) et des payloads de création/mise à jour.

from __future__ import annotations

import datetime as dt
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt
from pydantic.alias_generators import to_camel

from ecotrack.core.bson_utils import MongoBaseModel, PyObjectId
from ecotrack.core.utils import utcnow

# Date brute telle que reçue du client : validée et parsée par le service
RawDate = Union[dt.datetime, str, None]


class Challenge(MongoBaseModel):
    """Document Mongo d'un challenge.

    Attributes:
        slug (str): Clé lisible, unique sur toute la collection.
        title (str): Titre.
        description (str): Description.
        category (str | None): Catégorie (ex. "water", "energy").
        tags (list[str]): Tags ordonnés.
        start_date (datetime): Début (UTC).
        end_date (datetime | None): Fin (UTC) ; aucune contrainte d'ordre avec le début.
        owner (PyObjectId | None): Créateur.
        participants (int): Compteur dénormalisé, seul le join l'incrémente.
        max_participants (int | None): Plafond de participants.
        is_published (bool | None): Visible dans le catalogue (absent = publié).
        location, image, metadata: Champs opaques optionnels.
        created_at (datetime): Création (UTC).
        updated_at (datetime): Dernière modification (UTC).
    """
    slug: str
    title: str
    description: str
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    start_date: Optional[dt.datetime] = None
    end_date: Optional[dt.datetime] = None
    owner: Optional[PyObjectId] = None
    participants: int = Field(default=0, ge=0)
    max_participants: Optional[int] = None
    is_published: Optional[bool] = True
    location: Optional[Any] = None
    image: Optional[Any] = None
    metadata: Optional[Any] = None
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    @property
    def is_full(self) -> bool:
        return self.max_participants is not None and self.participants >= self.max_participants


class _ChallengePayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChallengeCreate(_ChallengePayload):
    """Payload de création.

    Description:
        Les champs requis (`title`, `slug`, `description`, `startDate`, `endDate`) sont
        déclarés optionnels : leur présence et le format des dates sont contrôlés par le
        service, qui lève `ValidationError` avec le nom du champ manquant.
    """
    title: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    start_date: RawDate = None
    end_date: RawDate = None
    category: Optional[str] = None
    tags: Union[list[str], str, None] = None
    max_participants: Optional[PositiveInt] = None
    is_published: Optional[bool] = None
    location: Optional[Any] = None
    image: Optional[Any] = None
    metadata: Optional[Any] = None


class ChallengeUpdate(_ChallengePayload):
    """Payload de mise à jour partielle.

    Description:
        Seuls les champs fournis et non nuls sont modifiés. `owner`, `participants` et
        les horodatages ne sont pas modifiables par cette voie.
    """
    title: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    start_date: RawDate = None
    end_date: RawDate = None
    category: Optional[str] = None
    tags: Union[list[str], str, None] = None
    max_participants: Optional[PositiveInt] = None
    is_published: Optional[bool] = None
    location: Optional[Any] = None
    image: Optional[Any] = None
    metadata: Optional[Any] = None


class ChallengeListResponse(BaseModel):
    page: int
    limit: int
    total: int
    items: list[Challenge]


class DeleteResponse(BaseModel):
    message: str = "Deleted"
