# backend/ecotrack/core/utils.py
# Fonctions temporelles : horodatage UTC et parsing tolérant des dates.

import datetime as dt
from typing import Any

from dateutil import parser as date_parser


def utcnow() -> dt.datetime:
    """Date/heure UTC (timezone-aware), tronquée à la milliseconde.

    Description:
        MongoDB ne conserve que les millisecondes ; tronquer ici garantit qu'un document
        relu est identique à celui qui a été écrit, quel que soit le backend.

    Returns:
        datetime.datetime: Timestamp UTC (aware).
    """
    return to_store_precision(dt.datetime.now(dt.timezone.utc))


def to_store_precision(value: dt.datetime) -> dt.datetime:
    """Normalise un datetime pour le stockage (UTC aware, millisecondes)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def parse_date_safe(value: Any) -> dt.datetime | None:
    """Parse une date sans jamais lever d'exception.

    Description:
        Accepte un `datetime`, une `date` ou une chaîne (ISO 8601 ou tout format reconnu
        par dateutil). Une valeur vide ou illisible renvoie `None`.

    Args:
        value (Any): Valeur brute (query string, payload JSON...).

    Returns:
        datetime.datetime | None: Date UTC normalisée, ou None.
    """
    if value is None or value == "":
        return None
    try:
        if isinstance(value, dt.datetime):
            return to_store_precision(value)
        if isinstance(value, dt.date):
            return to_store_precision(dt.datetime(value.year, value.month, value.day))
        if not isinstance(value, str):
            return None
        try:
            parsed = date_parser.isoparse(value)
        except ValueError:
            parsed = date_parser.parse(value)
        # La conversion UTC peut sortir de [datetime.min, datetime.max]
        return to_store_precision(parsed)
    except (ValueError, OverflowError):
        return None


# Bornes d'un entier BSON (int64)
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def parse_int_safe(value: Any) -> int | None:
    """Entier depuis une query string, ou None si illisible ou hors de la plage int64."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    else:
        try:
            parsed = int(str(value).strip(), 10)
        except ValueError:
            return None
    if not INT64_MIN <= parsed <= INT64_MAX:
        return None
    return parsed
