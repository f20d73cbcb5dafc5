"""
Configuration module for the Poster Maker.

This module centralizes all configuration values and supports environment variable overrides.
Values that tests or deployments commonly change at runtime are exposed through small
getter functions so they are read at call time rather than import time.
"""

import os
from typing import List

# ========= DATABASE CONFIGURATION =========

def get_database_url() -> str:
    """Get the SQLAlchemy database URL for the template store."""
    return os.getenv("DATABASE_URL", "sqlite:///poster_maker.db")

# ========= STORAGE CONFIGURATION =========

def get_storage_backend() -> str:
    """Get the blob storage backend: 'auto', 'r2' or 'local'."""
    return os.getenv("STORAGE_BACKEND", "auto").strip().lower()

def get_local_storage_dir() -> str:
    """Get the root directory used by the local blob store."""
    return os.getenv(
        "LOCAL_STORAGE_DIR",
        os.path.join(os.path.dirname(os.path.abspath(__file__)), "uploads"),
    )

LOCAL_STORAGE_URL_PREFIX = os.getenv("LOCAL_STORAGE_URL_PREFIX", "/uploads").rstrip("/")

def get_r2_settings() -> dict:
    """Get Cloudflare R2 (S3 compatible) connection settings."""
    return {
        "endpoint": os.getenv("R2_ENDPOINT"),
        "access_key_id": os.getenv("R2_ACCESS_KEY_ID"),
        "secret_access_key": os.getenv("R2_SECRET_ACCESS_KEY"),
        "bucket": os.getenv("R2_BUCKET_NAME"),
        "public_url": (os.getenv("R2_PUBLIC_URL") or "").rstrip("/"),
    }

def r2_configured() -> bool:
    """Return True when every R2 setting needed for uploads is present."""
    return all(get_r2_settings().values())

# Key prefixes inside the blob store
TEMPLATES_PREFIX = "templates/"
GENERATED_PREFIX = "generated/"

# ========= AUTH CONFIGURATION =========

def get_jwt_secret() -> str:
    """Get the secret used to sign admin tokens."""
    return os.getenv("JWT_SECRET", "festival_poster_secret_key_2024")

JWT_ALGORITHM = "HS256"
JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", "24"))

DEFAULT_ADMIN_USERNAME = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin123")

DEFAULT_CATEGORIES = [
    {"name": "Festival", "description": "Festival celebration posters"},
    {"name": "Event", "description": "Event announcement posters"},
    {"name": "Business", "description": "Business promotion posters"},
]

# ========= RENDERING CONFIGURATION =========

OUTPUT_JPEG_QUALITY = int(os.getenv("OUTPUT_JPEG_QUALITY", "95"))
DEFAULT_FONT_SIZE = int(os.getenv("DEFAULT_FONT_SIZE", "24"))
DEFAULT_TEXT_COLOR = os.getenv("DEFAULT_TEXT_COLOR", "#000000")

# ========= FONT CONFIGURATION =========

def _get_font_candidates(env_var: str, default: List[str]) -> List[str]:
    """Get font candidates from environment or use defaults."""
    env_value = os.getenv(env_var)
    if env_value:
        # Split by comma and strip whitespace
        return [f.strip() for f in env_value.split(",") if f.strip()]
    return default

FONT_CANDIDATES_REGULAR = _get_font_candidates(
    "FONT_CANDIDATES_REGULAR",
    ["DejaVuSans.ttf", "LiberationSans-Regular.ttf", "Arial.ttf", "arial.ttf"]
)

FONT_DIRS = _get_font_candidates(
    "FONT_DIRS",
    [
        os.path.join(os.path.dirname(os.path.abspath(__file__)), "fonts"),
        "/usr/share/fonts/truetype/dejavu",
        "/usr/share/fonts/truetype/liberation",
        "/usr/share/fonts/TTF",
        "/Library/Fonts",
        "C:\\Windows\\Fonts",
    ]
)

# Font files tried for the advisory fontFamily attribute, before the regular candidates
FONT_FAMILY_FILES = {
    "arial": ["Arial.ttf", "arial.ttf", "LiberationSans-Regular.ttf"],
    "helvetica": ["Helvetica.ttf", "LiberationSans-Regular.ttf"],
    "times new roman": ["Times New Roman.ttf", "times.ttf", "LiberationSerif-Regular.ttf", "DejaVuSerif.ttf"],
    "georgia": ["Georgia.ttf", "georgia.ttf", "DejaVuSerif.ttf"],
    "verdana": ["Verdana.ttf", "verdana.ttf", "DejaVuSans.ttf"],
    "trebuchet ms": ["Trebuchet MS.ttf", "trebuc.ttf"],
    "impact": ["Impact.ttf", "impact.ttf"],
    "comic sans ms": ["Comic Sans MS.ttf", "comic.ttf"],
    "courier new": ["Courier New.ttf", "cour.ttf", "LiberationMono-Regular.ttf", "DejaVuSansMono.ttf"],
    "lucida console": ["lucon.ttf", "DejaVuSansMono.ttf"],
}

# ========= UPLOAD CONFIGURATION =========

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
MAX_IMAGE_UPLOADS = int(os.getenv("MAX_IMAGE_UPLOADS", "10"))
MAX_LOGO_UPLOADS = int(os.getenv("MAX_LOGO_UPLOADS", "5"))

ALLOWED_UPLOAD_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/vnd.adobe.photoshop",
}

# ========= API TIMEOUT CONFIGURATION =========

API_TIMEOUT = int(os.getenv("API_TIMEOUT", "30"))  # Timeout in seconds for fetching remote images

# ========= LOGGING CONFIGURATION =========

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE")

# ========= SERVER CONFIGURATION =========

PORT = int(os.getenv("PORT", "3000"))
