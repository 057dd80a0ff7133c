"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    if _candidate_specific.exists():
        _ENV_FILE_PATH = _candidate_specific
    else:
        _ENV_FILE_PATH = _candidate_default


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )
    APP_NAME: str = "sipnread-backend"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    # Base URL du front (liens dans les notifications)
    APP_PUBLIC_URL: str = "http://localhost:9002"

    REDIS_URL: str | None = None
    REQUIRE_REDIS: bool = False
    # JWT/Auth
    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALG: str = "HS256"
    JWT_EXPIRES_MIN: int = 60
    # Comptes ouverts avec le rôle "tassologist" (emails séparés par des virgules)
    TASSOLOGIST_EMAILS: str = ""

    # Modèle génératif
    LLM_PROVIDER: str = "gemini"  # "gemini" | "openai"
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.0-flash"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_S: float = 60.0
    # Longueur maximale d'un prompt rendu (caractères)
    PROMPT_MAX_CHARS: int = 24000
    ENFORCE_SYMBOL_ACKNOWLEDGEMENT: bool = True

    # Google Cloud (stockage objet, transcription)
    GCS_BUCKET_NAME: str | None = None
    GOOGLE_CLOUD_PROJECT: str | None = None
    SPEECH_LANGUAGE_CODE: str = "en-US"
    SPEECH_MODEL: str = "latest_long"
    SPEECH_API_BASE: str = "https://speech.googleapis.com/v1"

    # Lecture personnalisée
    PERSONALIZED_READING_PRICE: int = 50
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    OTLP_ENDPOINT: str | None = None
    # LLM Guard
    LLM_GUARD_ENABLE: bool = True
    LLM_GUARD_MAX_INPUT_LEN: int = 1000
    # Rate limit
    RATE_LIMIT_CLIENT_QPS: int = 5
    RATE_LIMIT_EXEMPT_HEALTH: bool = False


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()
