# backend/ecotrack/api/routes/challenges.py
# Routes du catalogue : listing filtré, détail, création/modification/suppression, adhésion.

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Path, Query, Request, status

from ecotrack.core.security import CurrentIdentity
from ecotrack.core.settings import Settings
from ecotrack.db.base import Store
from ecotrack.db.provider import get_store
from ecotrack.models.challenge import (
    Challenge,
    ChallengeCreate,
    ChallengeListResponse,
    ChallengeUpdate,
    DeleteResponse,
)
from ecotrack.models.user_challenge import JoinResponse
from ecotrack.services.challenges import ChallengeService
from ecotrack.services.memberships import MembershipService

router = APIRouter(prefix="/challenges", tags=["challenges"])


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def get_challenge_service(
    store: Annotated[Store, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings_from_app)],
) -> ChallengeService:
    return ChallengeService(
        store,
        lenient_update_dates=settings.lenient_update_dates,
        default_limit=settings.default_page_limit,
        max_limit=settings.max_page_limit,
    )


def get_membership_service(store: Annotated[Store, Depends(get_store)]) -> MembershipService:
    return MembershipService(store)


ChallengeServiceDep = Annotated[ChallengeService, Depends(get_challenge_service)]
MembershipServiceDep = Annotated[MembershipService, Depends(get_membership_service)]
ChallengeIdPath = Annotated[str, Path(description="Identifiant du challenge (ObjectId).")]


@router.get(
    "",
    response_model=ChallengeListResponse,
    summary="Lister les challenges publiés",
    description=(
        "Retourne la liste paginée des challenges publiés, triés par date de début.\n\n"
        "- `category` : liste séparée par virgules\n"
        "- `startDate` / `endDate` : bornes sur la date de début (valeurs illisibles ignorées)\n"
        "- `participantsMin` / `participantsMax` : bornes sur le nombre de participants\n"
        "- `search` : texte recherché dans le titre, la description et les tags\n"
        "- Pagination via `page` (≥1) et `limit` (borné à 1–100)"
    ),
)
async def list_challenges(
    service: ChallengeServiceDep,
    page: str | None = Query(default=None, description="Numéro de page (≥1)."),
    limit: str | None = Query(default=None, description="Taille de page (1–100)."),
    category: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    participants_min: str | None = Query(default=None, alias="participantsMin"),
    participants_max: str | None = Query(default=None, alias="participantsMax"),
    search: str | None = Query(default=None),
):
    # Paramètres volontairement en `str` : une valeur illisible est ignorée, pas rejetée (422)
    params = {
        "page": page,
        "limit": limit,
        "category": category,
        "startDate": start_date,
        "endDate": end_date,
        "participantsMin": participants_min,
        "participantsMax": participants_max,
        "search": search,
    }
    return await service.list_challenges(params)


@router.get("/{challenge_id}", response_model=Challenge, summary="Détail d'un challenge")
async def get_challenge(challenge_id: ChallengeIdPath, service: ChallengeServiceDep):
    return await service.get(challenge_id)


@router.post(
    "",
    response_model=Challenge,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un challenge",
    description="Le créateur authentifié devient propriétaire. Le slug doit être unique (409 sinon).",
)
async def create_challenge(
    identity: CurrentIdentity,
    service: ChallengeServiceDep,
    payload: Annotated[ChallengeCreate, Body(...)],
):
    return await service.create(identity, payload)


@router.patch(
    "/{challenge_id}",
    response_model=Challenge,
    summary="Modifier un challenge (propriétaire ou admin)",
)
async def update_challenge(
    challenge_id: ChallengeIdPath,
    identity: CurrentIdentity,
    service: ChallengeServiceDep,
    patch: Annotated[ChallengeUpdate, Body(...)],
):
    return await service.update(identity, challenge_id, patch)


@router.delete(
    "/{challenge_id}",
    response_model=DeleteResponse,
    summary="Supprimer un challenge (propriétaire ou admin)",
    description="Supprime aussi les adhésions du challenge, dans la même transaction.",
)
async def delete_challenge(challenge_id: ChallengeIdPath, identity: CurrentIdentity, service: ChallengeServiceDep):
    await service.delete(identity, challenge_id)
    return DeleteResponse()


@router.post(
    "/join/{challenge_id}",
    response_model=JoinResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Rejoindre un challenge",
    description=(
        "Crée l'adhésion de l'utilisateur courant et incrémente `participants`, atomiquement.\n\n"
        "- 404 si le challenge n'existe pas\n"
        "- 400 si le challenge est complet\n"
        "- 409 si l'utilisateur a déjà rejoint"
    ),
)
async def join_challenge(challenge_id: ChallengeIdPath, identity: CurrentIdentity, service: MembershipServiceDep):
    membership = await service.join(identity, challenge_id)
    return JoinResponse(user_challenge=membership)
