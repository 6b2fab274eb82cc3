"""
Configuration and settings for the Lookbook API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    port: int = Field(default=4000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    cors_origins: list[str] = Field(default=["*"], validation_alias="CORS_ORIGINS")

    # Firebase service account
    firebase_project_id: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_PROJECT_ID"
    )
    firebase_private_key_id: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_PRIVATE_KEY_ID"
    )
    firebase_private_key: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_PRIVATE_KEY"
    )
    firebase_client_email: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_CLIENT_EMAIL"
    )
    firebase_client_id: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_CLIENT_ID"
    )
    firebase_client_x509_cert_url: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_CLIENT_X509_CERT_URL"
    )

    # Development toggles
    use_in_memory_store: bool = Field(
        default=False, validation_alias="LOOKBOOK_USE_IN_MEMORY_STORE"
    )
    enable_debug_routes: bool = Field(
        default=True, validation_alias="LOOKBOOK_ENABLE_DEBUG_ROUTES"
    )

    def firebase_service_account(self) -> dict:
        """Service-account info in the shape `credentials.Certificate` expects."""
        private_key = self.firebase_private_key
        if private_key:
            # Env files usually carry the PEM with escaped newlines.
            private_key = private_key.replace("\\n", "\n")
        return {
            "type": "service_account",
            "project_id": self.firebase_project_id,
            "private_key_id": self.firebase_private_key_id,
            "private_key": private_key,
            "client_email": self.firebase_client_email,
            "client_id": self.firebase_client_id,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
            "client_x509_cert_url": self.firebase_client_x509_cert_url,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
