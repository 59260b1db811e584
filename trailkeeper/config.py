"""Configuration management for trailkeeper."""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """Library configuration."""

    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./trailkeeper.db")

    # Auditing
    IGNORED_ATTRIBUTES: list[str] = _split_list(
        os.getenv(
            "IGNORED_ATTRIBUTES",
            "lock_version,created_at,updated_at,created_on,updated_on",
        )
    )
    CURRENT_USER_METHOD: str = os.getenv("CURRENT_USER_METHOD", "current_user")
    CURRENT_AGENCY_METHOD: str = os.getenv("CURRENT_AGENCY_METHOD", "current_agency")


config = Config()
