"""
Configuration Settings for the Blog API

Environment variables are read once at import time, after loading an optional
.env file from the project root.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

from errors import ConfigurationError

APP_ROOT = Path(__file__).resolve().parent

load_dotenv(dotenv_path=os.path.join(APP_ROOT, '.env'))

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "")
DATABASE_NAME = os.getenv("DATABASE_NAME", "")

# Security
TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "24"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
ADMIN_REGISTRATION_KEY = os.getenv("ADMIN_REGISTRATION_KEY", "")

# HTTP
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
PORT = int(os.getenv("PORT", "8000"))

# =============================================================================
# Content Settings
# =============================================================================

SUBTITLE_MAX_LENGTH = 250
MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))
ALLOWED_IMAGE_TYPES = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
]

# Listing bounds
PUBLISHED_LIST_LIMIT = int(os.getenv("PUBLISHED_LIST_LIMIT", "100"))
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
TRENDING_DEFAULT_LIMIT = 10
POPULAR_DEFAULT_LIMIT = 5

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def validate_settings():
    """
    Validate that all required settings are properly configured.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    errors = []

    required_vars = [
        ("DATABASE_URL", DATABASE_URL),
        ("DATABASE_NAME", DATABASE_NAME),
    ]
    for var_name, var_value in required_vars:
        if not var_value:
            errors.append(f"Missing required environment variable: {var_name}")

    numeric_validations = [
        ("TOKEN_TTL_HOURS", TOKEN_TTL_HOURS, 1, 24 * 365),
        ("BCRYPT_ROUNDS", BCRYPT_ROUNDS, 4, 31),
        ("MAX_IMAGE_BYTES", MAX_IMAGE_BYTES, 1, 16 * 1024 * 1024 - 1024),
        ("PUBLISHED_LIST_LIMIT", PUBLISHED_LIST_LIMIT, 1, 1000),
    ]
    for name, value, min_val, max_val in numeric_validations:
        if value < min_val or value > max_val:
            errors.append(f"{name} must be between {min_val} and {max_val}, got {value}")

    if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        errors.append(f"LOG_LEVEL must be a standard logging level, got {LOG_LEVEL}")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return True


def get_config_summary() -> dict:
    """
    Returns a summary of current configuration (without sensitive values).
    Useful for logging startup state.
    """
    return {
        "database": {
            "configured": bool(DATABASE_URL),
            "name": DATABASE_NAME,
        },
        "security": {
            "token_ttl_hours": TOKEN_TTL_HOURS,
            "admin_registration": "key required" if ADMIN_REGISTRATION_KEY else "open",
        },
        "content": {
            "max_image_bytes": MAX_IMAGE_BYTES,
            "published_list_limit": PUBLISHED_LIST_LIMIT,
            "max_page_size": MAX_PAGE_SIZE,
        },
        "cors_origins": CORS_ORIGINS,
    }
