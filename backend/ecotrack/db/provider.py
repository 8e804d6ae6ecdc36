# backend/ecotrack/db/provider.py
# Construction du store selon les settings et dépendance FastAPI d'accès à la poignée.

from fastapi import Request

from ecotrack.core.settings import Settings
from ecotrack.db.base import Store
from ecotrack.db.memory import InMemoryStore
from ecotrack.db.mongodb import MongoStore


def build_store(settings: Settings) -> Store:
    """Instancie le backend configuré (`STORE_BACKEND`)."""
    if settings.store_backend == "memory":
        return InMemoryStore(timeout_s=settings.store_timeout_s)
    return MongoStore.from_settings(settings)


def get_store(request: Request) -> Store:
    """Retourne la poignée de store ouverte par le lifespan de l'application."""
    return request.app.state.store
