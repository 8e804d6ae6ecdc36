# backend/ecotrack/core/settings.py
# Configuration de l'application (variables d'environnement + .env) via pydantic-settings.

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from rich import print


class Settings(BaseSettings):
    # === App settings ===
    app_name: str = "EcoTrack"
    api_version: str = "0.1.0"
    environment: str = "development"  # or "production"
    cors_origins: list[str] = ["http://localhost:5173"]

    # === Store ===
    store_backend: Literal["mongodb", "memory"] = "mongodb"
    mongodb_uri: str = "mongodb://localhost:27017/?replicaSet=rs0"
    mongodb_db: str = "ecoTrack"
    store_timeout_ms: int = 5000

    # === Identity ===
    identity_provider: Literal["jwt", "mock"] = "jwt"
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"

    # === Challenges ===
    default_page_limit: int = 10
    max_page_limit: int = 100
    # Ancien comportement : une date illisible en PATCH devient null au lieu d'un 400
    lenient_update_dates: bool = False

    # === Logging ===
    log_dir: str = "logs"
    log_retention_days: int = 30

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def store_timeout_s(self) -> float:
        return self.store_timeout_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Retourne l'instance unique des settings (chargée au premier appel)."""
    settings = Settings()
    print(f"--- Settings loaded ({settings.environment}, store={settings.store_backend}) ---")
    return settings
