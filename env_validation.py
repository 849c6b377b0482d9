"""Environment variable validation and management."""

import os
import logging
from typing import Dict, Optional

from dotenv import load_dotenv

from errors import ConfigurationError

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_PORT = 3001
DEFAULT_DB_PATH = "database.sqlite"
DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-preview-05-20"
DEFAULT_GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"

# env name -> key in the /api/config payload
CLIENT_CONFIG_VARS: Dict[str, str] = {
    "FIREBASE_API_KEY": "firebaseApiKey",
    "FIREBASE_AUTH_DOMAIN": "firebaseAuthDomain",
    "FIREBASE_PROJECT_ID": "firebaseProjectId",
    "FIREBASE_STORAGE_BUCKET": "firebaseStorageBucket",
    "FIREBASE_MESSAGING_SENDER_ID": "firebaseMessagingSenderId",
    "FIREBASE_APP_ID": "firebaseAppId",
    "GEMINI_API_KEY": "geminiApiKey",
}


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}


def get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid integer for {name}: {value}") from exc


def get_env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid number for {name}: {value}") from exc


def gemini_api_key() -> Optional[str]:
    return os.getenv("GEMINI_API_KEY") or None


def client_config() -> Dict[str, Optional[str]]:
    """Values a frontend needs to initialise its own Firebase/Gemini clients.

    Read on every call; nothing is checked for emptiness. The Gemini key is
    left out (``None``) when ``EXPOSE_GEMINI_API_KEY`` is switched off.
    """
    config = {key: os.getenv(var) for var, key in CLIENT_CONFIG_VARS.items()}
    if not get_env_bool("EXPOSE_GEMINI_API_KEY", True):
        config["geminiApiKey"] = None
    return config


def validate_environment() -> None:
    """Validate critical environment variables.

    Raises ConfigurationError if validation fails.
    """
    defaults = {
        "PORT": str(DEFAULT_PORT),
        "DB_PATH": DEFAULT_DB_PATH,
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    get_env_int("PORT", DEFAULT_PORT)
    if get_env_int("DB_POOL_SIZE", 1) < 1:
        raise ConfigurationError("DB_POOL_SIZE must be at least 1")
    get_env_int("MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES)
    get_env_float("GEMINI_TIMEOUT")

    api_url = os.getenv("GEMINI_API_URL")
    if api_url and not (api_url.startswith("http://") or api_url.startswith("https://")):
        raise ConfigurationError(f"Invalid URL format for GEMINI_API_URL: {api_url}")

    # Only report presence, never values.
    for var in CLIENT_CONFIG_VARS:
        logger.info("%s: %s", var, "Loaded" if os.getenv(var) else "NOT FOUND")

    if gemini_api_key() and get_env_bool("EXPOSE_GEMINI_API_KEY", True):
        logger.warning(
            "GEMINI_API_KEY is exposed to clients through /api/config; "
            "set EXPOSE_GEMINI_API_KEY=false to withhold it"
        )
