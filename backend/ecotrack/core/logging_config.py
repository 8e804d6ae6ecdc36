"""Configuration du système de logging centralisé.

Deux loggers à rotation quotidienne :
- `ecotrack.generic` (INFO+) : créations, adhésions acceptées ou refusées, suppressions
- `ecotrack.errors` (ERROR+) : échecs du store et erreurs non capturées

Le contexte d'opération (ids, nom d'opération) passe en `extra` et n'est jamais
renvoyé au client.
"""

import logging
import logging.handlers
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from ecotrack.core.settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILES = {"ecotrack.generic": "generic.log", "ecotrack.errors": "errors.log"}


def _rotating_logger(name: str, level: int, filename: Path) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:  # Éviter les doublons
        handler = logging.handlers.TimedRotatingFileHandler(
            filename=filename,
            when="midnight",
            interval=1,
            encoding="utf-8",
        )
        handler.suffix = "%Y-%m-%d"
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


def setup_logging(logs_dir: Path, retention_days: int = 30) -> tuple[logging.Logger, logging.Logger]:
    """Crée le dossier de logs, purge les anciens fichiers et configure les loggers.

    Args:
        logs_dir (Path): Dossier des fichiers de log.
        retention_days (int): Durée de conservation des fichiers tournés.

    Returns:
        tuple: (logger_generic, logger_errors)
    """
    logs_dir.mkdir(parents=True, exist_ok=True)
    cleanup_old_logs(logs_dir, retention_days)

    generic = _rotating_logger("ecotrack.generic", logging.INFO, logs_dir / LOG_FILES["ecotrack.generic"])
    errors = _rotating_logger("ecotrack.errors", logging.ERROR, logs_dir / LOG_FILES["ecotrack.errors"])
    return generic, errors


def cleanup_old_logs(logs_dir: Path, retention_days: int = 30) -> None:
    """Supprime les fichiers tournés (`generic.log.YYYY-MM-DD`) plus vieux que retention_days."""
    cutoff_str = (datetime.now() - timedelta(days=retention_days)).strftime("%Y-%m-%d")

    for base_name in LOG_FILES.values():
        for file_path in logs_dir.glob(f"{base_name}.*"):
            date_part = file_path.name.rsplit(".", 1)[-1]
            if len(date_part) == 10 and date_part.count("-") == 2 and date_part < cutoff_str:
                try:
                    os.remove(file_path)
                except OSError:
                    continue


# Instance globale (lazy initialization)
_loggers: Optional[tuple[logging.Logger, logging.Logger]] = None


def get_loggers() -> tuple[logging.Logger, logging.Logger]:
    """Retourne les loggers configurés (singleton)."""
    global _loggers
    if _loggers is None:
        settings = get_settings()
        _loggers = setup_logging(Path(settings.log_dir), settings.log_retention_days)
    return _loggers


def log_context(operation: str, **fields: Any) -> Dict[str, Any]:
    """Contexte d'opération passé en `extra` aux loggers."""
    context: Dict[str, Any] = {"operation": operation}
    for key, value in fields.items():
        if value is not None:
            context[key] = str(value)
    return context
