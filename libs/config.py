"""
Configuration module for loading environment variables
"""

import os
from typing import List, Optional
from urllib.parse import quote_plus


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Application configuration"""

    # Database Configuration
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    DATABASE_HOST: str = os.getenv("DATABASE_HOST", "127.0.0.1")
    DATABASE_PORT: str = os.getenv("DATABASE_PORT", "5432")
    DATABASE_USER: str = os.getenv("DATABASE_USER", "civic")
    DATABASE_PASSWORD: str = os.getenv("DATABASE_PASSWORD", "")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "civic")
    DATABASE_ECHO: bool = _env_bool("DATABASE_ECHO")
    # Create missing tables on startup (local dev only)
    DB_CREATE_TABLES: bool = _env_bool("DB_CREATE_TABLES")

    # Auth Configuration
    JWT_SECRET: Optional[str] = os.getenv("JWT_SECRET")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_AUDIENCE: Optional[str] = os.getenv("JWT_AUDIENCE")
    JWT_ISSUER: Optional[str] = os.getenv("JWT_ISSUER")
    # When set, tokens are verified against this JWKS document (RS256)
    AUTH_JWKS_URL: Optional[str] = os.getenv("AUTH_JWKS_URL")
    IDENTITY_WEBHOOK_SECRET: Optional[str] = os.getenv("IDENTITY_WEBHOOK_SECRET")

    # Blob Storage Configuration
    BLOB_STORAGE_DIR: str = os.getenv("BLOB_STORAGE_DIR", "uploads")
    BLOB_PUBLIC_BASE_URL: str = os.getenv("BLOB_PUBLIC_BASE_URL", "/uploads")
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    # Priority Classifier Configuration
    PRIORITY_CLASSIFIER_URL: Optional[str] = os.getenv("PRIORITY_CLASSIFIER_URL")
    PRIORITY_CLASSIFIER_TIMEOUT: float = float(
        os.getenv("PRIORITY_CLASSIFIER_TIMEOUT", "5")
    )

    # CORS
    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    @classmethod
    def database_url(cls) -> str:
        """
        Return DATABASE_URL, or build it from the individual DATABASE_* parts.

        Kubernetes deployments set the parts separately; the password is
        URL-encoded because it may contain special characters.
        """
        if cls.DATABASE_URL:
            return cls.DATABASE_URL
        password = quote_plus(cls.DATABASE_PASSWORD) if cls.DATABASE_PASSWORD else ""
        return (
            f"postgresql+asyncpg://{cls.DATABASE_USER}:{password}"
            f"@{cls.DATABASE_HOST}:{cls.DATABASE_PORT}/{cls.DATABASE_NAME}"
        )

    @classmethod
    def cors_origins(cls) -> List[str]:
        return [o.strip() for o in cls.CORS_ALLOW_ORIGINS.split(",") if o.strip()]

    @classmethod
    def validate_auth_config(cls) -> bool:
        """Check that at least one token verification mode is configured"""
        return bool(cls.JWT_SECRET or cls.AUTH_JWKS_URL)


config = Config()
