# backend/ecotrack/api/routes/health.py
# Routes de santé : ping applicatif et état du store.

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ecotrack.core.health_checks import check_store
from ecotrack.core.utils import utcnow
from ecotrack.db.base import Store
from ecotrack.db.provider import get_store
from ecotrack.models.health import HealthCheck

router = APIRouter(tags=["Health"])


@router.get(
    "/ping",
    summary="Vérification de santé de l'API",
    description="Retourne un message 'pong' permettant de tester que l'API répond.",
)
async def ping():
    return {"status": "ok", "message": "pong"}


@router.get(
    "/health",
    response_model=HealthCheck,
    summary="Health check de l'API",
    description="Retourne le statut de l'API et de son store (200, ou 503 si le store est injoignable).",
)
async def health(request: Request, store: Annotated[Store, Depends(get_store)]) -> JSONResponse:
    checks = {"store": await check_store(store)}

    has_errors = any(check != "ok" for check in checks.values())
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if has_errors else status.HTTP_200_OK

    response = HealthCheck(
        status="degraded" if has_errors else "ok",
        timestamp=utcnow(),
        version=request.app.state.settings.api_version,
        checks=checks,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
