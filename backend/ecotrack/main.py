# backend/ecotrack/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ecotrack.api.routes import routers
from ecotrack.core.exception_handlers import register_exception_handlers
from ecotrack.core.logging_config import get_loggers
from ecotrack.core.security import IdentityVerifier, build_identity_verifier
from ecotrack.core.settings import Settings, get_settings
from ecotrack.db.base import Store
from ecotrack.db.provider import build_store


def create_app(
    settings: Settings | None = None,
    store: Store | None = None,
    identity_verifier: IdentityVerifier | None = None,
) -> FastAPI:
    """Construit l'application.

    Description:
        La poignée de store est acquise une seule fois dans le lifespan (ou injectée, pour les
        tests), rangée dans `app.state` puis fermée à l'arrêt. Aucun client global.

    Args:
        settings (Settings | None): Configuration (défaut : `get_settings()`).
        store (Store | None): Store déjà construit ; sinon construit selon `STORE_BACKEND`.
        identity_verifier (IdentityVerifier | None): Vérificateur ; sinon selon `IDENTITY_PROVIDER`.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- startup ---
        logger, _ = get_loggers()
        app.state.store = store or build_store(settings)
        await app.state.store.ensure_indexes()
        logger.info(f"{settings.app_name} started (store={type(app.state.store).__name__})")

        yield  # l'app tourne ici

        # --- shutdown ---
        await app.state.store.close()

    app = FastAPI(title=f"{settings.app_name} API", version=settings.api_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.identity_verifier = identity_verifier or build_identity_verifier(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    for r in routers:
        app.include_router(r)

    return app


app = create_app()
