from ecotrack.core.logging_config import get_loggers
from ecotrack.db.base import Store


async def check_store(store: Store) -> str:
    """
    Vérifie la connexion au store (ping MongoDB, no-op en mémoire)

    Returns:
        "ok" si joignable, "error" sinon (le détail part dans les logs)
    """
    try:
        await store.ping()
        return "ok"
    except Exception as e:
        _, logger_errors = get_loggers()
        logger_errors.error(f"Store health check failed: {type(e).__name__}: {e}")
        return "error"
