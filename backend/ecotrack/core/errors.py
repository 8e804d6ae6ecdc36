"""
Exceptions métier de l'API EcoTrack.

Chaque exception porte un code stable et le statut HTTP vers lequel elle est
traduite par les gestionnaires enregistrés dans `exception_handlers`.
"""


class EcoTrackError(Exception):
    """Exception de base des services EcoTrack."""

    code: str = "ERROR"
    status_code: int = 500
    default_message: str = "Unexpected error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(EcoTrackError):
    """Entrée absente ou mal formée ; rien n'a été appliqué."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid input"


class NotFoundError(EcoTrackError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class AuthorizationError(EcoTrackError):
    """L'appelant n'est ni propriétaire ni administrateur."""

    code = "FORBIDDEN"
    status_code = 403
    default_message = "Forbidden"


class ConflictError(EcoTrackError):
    """Contrainte d'unicité violée côté store."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Conflict"


class DuplicateMembershipError(ConflictError):
    code = "ALREADY_JOINED"
    default_message = "User already joined this challenge"


class CapacityExceededError(EcoTrackError):
    code = "CHALLENGE_FULL"
    status_code = 400
    default_message = "Challenge is full"


class StoreUnavailableError(EcoTrackError):
    """Store injoignable, timeout ou échec de l'infrastructure transactionnelle."""

    code = "STORE_UNAVAILABLE"
    status_code = 503
    default_message = "Store unavailable"
