# backend/labstock/config.py
from __future__ import annotations
import os


def _csv_env(name: str, default: str) -> set[str]:
    raw = os.environ.get(name, default)
    return {part.strip() for part in raw.split(",") if part.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///labstock.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Depot accounts log in as "<depot id>@<domain>"
    DEPOT_EMAIL_DOMAIN = os.environ.get("DEPOT_EMAIL_DOMAIN", "pasteur.tn")

    MOVEMENT_LIST_LIMIT = int(os.environ.get("MOVEMENT_LIST_LIMIT", "500"))

    # "current_location": a movement belongs to the depot where its product is now.
    # "snapshot": a movement belongs to the depot recorded when it was written.
    MOVEMENT_DEPOT_ATTRIBUTION = os.environ.get("MOVEMENT_DEPOT_ATTRIBUTION", "current_location")

    AI_API_KEY = os.environ.get("AI_API_KEY") or os.environ.get("OPENAI_API_KEY")
    AI_TEXT_MODEL = os.environ.get("AI_TEXT_MODEL", "gpt-4o-mini")
    AI_IMAGE_MODEL = os.environ.get("AI_IMAGE_MODEL", "gpt-image-1")

    CORS_ALLOWED_ORIGINS = _csv_env(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    )
