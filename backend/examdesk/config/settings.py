"""
Configuration settings for ExamDesk.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / ".env")


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment."""

    # Database
    MONGODB_URL: str = os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.environ.get("DB_NAME", "examdesk")

    # Server
    PORT: int = int(os.environ.get("PORT", 8001))
    HOST: str = os.environ.get("HOST", "0.0.0.0")
    DEBUG: bool = os.environ.get("DEBUG", "False").lower() == "true"
    CORS_ORIGINS: List[str] = _split(os.environ.get("CORS_ORIGINS", "*"))

    # Uploads (essay answers, transfer screenshots)
    MAX_UPLOAD_SIZE_MB: int = int(os.environ.get("MAX_UPLOAD_SIZE_MB", 10))
    ALLOWED_IMAGE_EXTENSIONS: List[str] = ["png", "jpg", "jpeg", "webp"]
    FILES_URL_PREFIX: str = "/api/files"

    # Exams & wallet
    PURCHASE_MAX_RETRIES: int = int(os.environ.get("PURCHASE_MAX_RETRIES", 5))
    CURRENCY: str = os.environ.get("CURRENCY", "EGP")

    # Push notifications (Expo)
    PUSH_ENABLED: bool = os.environ.get("PUSH_ENABLED", "False").lower() == "true"
    EXPO_PUSH_URL: str = os.environ.get("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
    PUSH_TIMEOUT: int = 10  # seconds

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    def validate(self):
        """Validate critical settings."""
        if not self.MONGODB_URL:
            raise ValueError("MONGODB_URI environment variable not set")
        if not self.DATABASE_NAME:
            raise ValueError("DB_NAME environment variable is empty")
        if self.PURCHASE_MAX_RETRIES < 1:
            raise ValueError("PURCHASE_MAX_RETRIES must be at least 1")
        if self.MAX_UPLOAD_SIZE_MB <= 0:
            raise ValueError("MAX_UPLOAD_SIZE_MB must be positive")
        return True


# Global settings instance
settings = Settings()
