# ecotrack/services/store_guard.py
# Traduction des erreurs du driver en `StoreUnavailableError`, avec journalisation du contexte.

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from pymongo.errors import PyMongoError

from ecotrack.core.errors import EcoTrackError, StoreUnavailableError
from ecotrack.core.logging_config import get_loggers, log_context


@asynccontextmanager
async def store_guard(operation: str, **context: Any) -> AsyncIterator[None]:
    """Encadre un appel au store.

    Description:
        Les erreurs métier traversent telles quelles. Les erreurs pymongo et les timeouts
        sont journalisées (logger erreurs, avec l'opération et son contexte) puis remplacées
        par `StoreUnavailableError` : le détail du driver n'est jamais exposé à l'appelant.

    Args:
        operation (str): Nom de l'opération (ex. "challenge.join").
        **context: Identifiants utiles au diagnostic (challenge_id, user_id...).
    """
    try:
        yield
    except EcoTrackError:
        raise
    except (PyMongoError, asyncio.TimeoutError) as e:
        _, logger_errors = get_loggers()
        logger_errors.error(
            f"{operation} failed: {type(e).__name__}: {e}",
            extra=log_context(operation, **context),
        )
        raise StoreUnavailableError() from e
