"""
Configuration settings for the exam engine.
"""

import os
from typing import Optional


def _optional_float(raw: Optional[str], default: Optional[float]) -> Optional[float]:
    if raw is None:
        return default
    if raw.strip().lower() in ("", "none", "off"):
        return None
    value = float(raw)
    return None if value < 0 else value


class Settings:
    """Application settings loaded from environment."""

    # Database
    MONGODB_URL: str = os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.environ.get("DATABASE_NAME", "examcore")

    # Server
    PORT: int = int(os.environ.get("PORT", 8001))
    HOST: str = os.environ.get("HOST", "0.0.0.0")
    DEBUG: bool = os.environ.get("DEBUG", "False").lower() == "true"

    # Deadline reaper
    REAPER_ENABLED: bool = os.environ.get("REAPER_ENABLED", "True").lower() == "true"
    REAPER_INTERVAL_SECONDS: float = float(os.environ.get("REAPER_INTERVAL_SECONDS", 30))
    REAPER_BATCH_SIZE: int = int(os.environ.get("REAPER_BATCH_SIZE", 200))

    # Ranking
    RANKING_DEBOUNCE_SECONDS: Optional[float] = _optional_float(
        os.environ.get("RANKING_DEBOUNCE_SECONDS"), 2.0
    )
    RANKING_METHOD: str = os.environ.get("RANKING_METHOD", "competition")  # competition, dense
    LEADERBOARD_LIMIT: int = int(os.environ.get("LEADERBOARD_LIMIT", 100))

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    def validate(self):
        """Validate critical settings."""
        if not self.MONGODB_URL:
            raise ValueError("MONGODB_URI environment variable not set")
        if self.RANKING_METHOD not in ("competition", "dense"):
            raise ValueError(f"RANKING_METHOD must be 'competition' or 'dense', got {self.RANKING_METHOD!r}")
        if self.REAPER_INTERVAL_SECONDS <= 0:
            raise ValueError("REAPER_INTERVAL_SECONDS must be positive")
        if self.REAPER_BATCH_SIZE <= 0:
            raise ValueError("REAPER_BATCH_SIZE must be positive")
        return True


# Global settings instance
settings = Settings()
