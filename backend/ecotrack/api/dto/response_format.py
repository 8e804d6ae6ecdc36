from typing import Any, Union

from pydantic import BaseModel

from ecotrack.core.errors import EcoTrackError


class ErrorResponse(BaseModel):
    """Format standardisé pour les réponses d'erreur : `{"success": false, "error": {...}}`."""

    success: bool = False
    error: dict[str, Any]

    @classmethod
    def from_detail(cls, detail: Union[str, dict[str, Any]], code: str = "VALIDATION_ERROR"):
        """Créer une réponse d'erreur à partir d'un détail."""
        if isinstance(detail, str):
            return cls(error={"code": code, "message": detail})
        return cls(error={"code": code, **detail})

    @classmethod
    def from_exception(cls, exc: EcoTrackError):
        """Réponse d'erreur pour une exception métier (code + message, sans détail interne)."""
        return cls(error={"code": exc.code, "message": exc.message})
