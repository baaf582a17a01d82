# uplaw/core/config.py
"""
Application configuration using Pydantic Settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import json
from pydantic import field_validator


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """

    # Application
    APP_NAME: str = "UPLAW"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # JWT Authentication
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"

    # AWS Configuration (blank keys fall back to the boto3 credential chain)
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "ap-south-1"

    # S3 document storage
    S3_BUCKET_NAME: str = "uplaw-case-documents"
    S3_KEY_PREFIX: str = "uplaw_uploads"
    S3_PUBLIC_BASE_URL: str = ""  # e.g. a CloudFront domain; blank = bucket URL

    # Uploads
    MAX_UPLOAD_FILES: int = 10
    VOICE_NOTE_MAX_BYTES: int = 10 * 1024 * 1024
    VOICE_NOTE_CONTENT_TYPES: List[str] = [
        "audio/mpeg", "audio/mp3", "audio/wav", "audio/ogg", "audio/m4a", "audio/webm", "audio/x-m4a",
    ]

    # Matching
    SUGGESTED_LAWYERS_LIST_LIMIT: int = 5

    # Proposal acceptance follow-up steps
    ACCEPTANCE_STEP_ATTEMPTS: int = 3
    ACCEPTANCE_RETRY_BACKOFF_SECONDS: float = 0.5

    # CORS
    CORS_ORIGINS: str = '["http://localhost:3000"]'

    @field_validator("S3_KEY_PREFIX", mode="before")
    @classmethod
    def strip_key_prefix(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().strip("/")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from string to list"""
        try:
            if isinstance(self.CORS_ORIGINS, str):
                return json.loads(self.CORS_ORIGINS)
            return self.CORS_ORIGINS
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Create settings instance
settings = Settings()
