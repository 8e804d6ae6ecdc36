# ecotrack/services/query_builder.py
# Traduction des options de recherche du catalogue en requête Mongo sur `challenges`.

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ecotrack.core.utils import INT64_MAX, parse_date_safe, parse_int_safe

# NOTE: fonction pure, aucun accès au store. Une option absente ou illisible est ignorée,
# jamais rejetée : c'est un filtre « best effort » pour l'écran de navigation.

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def _split_categories(raw: Any) -> List[str]:
    if not raw or not isinstance(raw, str):
        return []
    return [c.strip() for c in raw.split(",") if c.strip()]


def build_challenge_filters(q: Mapping[str, Any]) -> Dict[str, Any]:
    """Construit le filtre Mongo du listing des challenges.

    Description:
        - `category` : liste séparée par virgules -> `$in` (sensible à la casse)
        - `startDate` / `endDate` : bornes `$gte` / `$lte` sur la date de début du challenge
        - `participantsMin` / `participantsMax` : bornes `$gte` / `$lte` sur `participants`
        - `search` : sous-chaîne insensible à la casse sur titre OU description OU tags
        - toujours : `isPublished` vrai ou absent

    Args:
        q (Mapping[str, Any]): Options brutes (query string).

    Returns:
        dict: Requête Mongo (critères combinés en ET).
    """
    filters: Dict[str, Any] = {"isPublished": {"$in": [True, None]}}

    cats = _split_categories(q.get("category"))
    if cats:
        filters["category"] = {"$in": cats}

    date_from = parse_date_safe(q.get("startDate"))
    date_to = parse_date_safe(q.get("endDate"))
    if date_from or date_to:
        filters["startDate"] = {}
        if date_from:
            filters["startDate"]["$gte"] = date_from
        if date_to:
            filters["startDate"]["$lte"] = date_to

    p_min = parse_int_safe(q.get("participantsMin"))
    p_max = parse_int_safe(q.get("participantsMax"))
    if p_min is not None or p_max is not None:
        filters["participants"] = {}
        if p_min is not None:
            filters["participants"]["$gte"] = p_min
        if p_max is not None:
            filters["participants"]["$lte"] = p_max

    search = q.get("search")
    if isinstance(search, str) and search.strip():
        # Sous-chaîne brute : les espaces fournis comptent
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filters["$or"] = [{"title": pattern}, {"description": pattern}, {"tags": pattern}]

    return filters


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def normalize_pagination(page: Any = None, limit: Any = None, *,
                         default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT) -> PageParams:
    """`page` >= 1 ; `limit` borné à [1, max_limit] ; valeurs illisibles -> défauts."""
    p: Optional[int] = parse_int_safe(page)
    lim: Optional[int] = parse_int_safe(limit)
    p = max(1, p if p is not None else 1)
    lim = lim if lim is not None else default_limit
    lim = min(max_limit, max(1, lim))
    # `skip` doit rester un int64 côté Mongo
    p = min(p, INT64_MAX // lim)
    return PageParams(page=p, limit=lim)
