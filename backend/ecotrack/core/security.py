# backend/ecotrack/core/security.py
# Vérification d'identité enfichable (JWT ou mock) et dépendances FastAPI `get_current_identity`.

from __future__ import annotations

import abc
from typing import Annotated, Any

from bson import ObjectId
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from ecotrack.core.settings import Settings

MOCK_ADMIN_TOKEN = "mock-admin"
MOCK_ADMIN_ID = "000000000000000000000001"
MOCK_USER_PREFIX = "mock-user:"

bearer_scheme = HTTPBearer(auto_error=False)


class Identity(BaseModel):
    """Identité de l'appelant telle que fournie par le vérificateur.

    Attributes:
        user_id (str | None): Identifiant utilisable comme clé de store (absent = anonyme).
        is_admin (bool): Privilège administrateur.
    """

    user_id: str | None = None
    is_admin: bool = False

    @property
    def object_id(self) -> ObjectId | None:
        """`user_id` converti en ObjectId, ou None s'il n'en est pas un."""
        if self.user_id and ObjectId.is_valid(self.user_id):
            return ObjectId(self.user_id)
        return None


class InvalidTokenError(Exception):
    pass


class IdentityVerifier(abc.ABC):
    """Interface de vérification d'un bearer token."""

    @abc.abstractmethod
    def verify(self, token: str) -> Identity:
        """Retourne l'identité portée par `token` ou lève `InvalidTokenError`."""


class JWTIdentityVerifier(IdentityVerifier):
    """Vérificateur JWT (python-jose).

    Description:
        Le claim `sub` porte l'identifiant utilisateur ; le privilège admin provient du
        claim booléen `admin` ou de `role == "admin"`. L'expiration (`exp`) est contrôlée
        par python-jose.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def verify(self, token: str) -> Identity:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidTokenError("Could not validate credentials") from e

        sub = payload.get("sub")
        if sub is not None and not isinstance(sub, str):
            raise InvalidTokenError("Invalid subject claim")
        is_admin = payload.get("admin") is True or payload.get("role") == "admin"
        return Identity(user_id=sub or None, is_admin=is_admin)

    def create_token(self, user_id: str, *, is_admin: bool = False, **claims: Any) -> str:
        """Encode un JWT signé (utile pour les outils d'admin et les tests)."""
        to_encode = {"sub": user_id, "admin": is_admin, **claims}
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)


class MockIdentityVerifier(IdentityVerifier):
    """Vérificateur de développement : `mock-admin` ou `mock-user:<id>`."""

    def verify(self, token: str) -> Identity:
        if token == MOCK_ADMIN_TOKEN:
            return Identity(user_id=MOCK_ADMIN_ID, is_admin=True)
        if token.startswith(MOCK_USER_PREFIX):
            user_id = token[len(MOCK_USER_PREFIX):]
            return Identity(user_id=user_id or None, is_admin=False)
        raise InvalidTokenError("Invalid token (use mock-admin or mock-user:<id>)")


def build_identity_verifier(settings: Settings) -> IdentityVerifier:
    if settings.identity_provider == "mock":
        return MockIdentityVerifier()
    return JWTIdentityVerifier(settings.jwt_secret_key, settings.jwt_algorithm)


def get_identity_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.identity_verifier


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    verifier: Annotated[IdentityVerifier, Depends(get_identity_verifier)],
) -> Identity:
    """Dépendance FastAPI : identité de l'appelant depuis `Authorization: Bearer`.

    Raises:
        HTTPException: 401 si l'en-tête est absent ou si le jeton est refusé.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return verifier.verify(credentials.credentials)
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


# Type alias pour faciliter l'usage
CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
