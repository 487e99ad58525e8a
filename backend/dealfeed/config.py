"""
Application configuration with environment variable support.
"""
from __future__ import annotations

import os
from typing import Dict


def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable with fallback."""
    try:
        return float(os.getenv(key, default))
    except (ValueError, TypeError):
        return default


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable with fallback."""
    try:
        return int(os.getenv(key, default))
    except (ValueError, TypeError):
        return default


def _get_env_bool(key: str, default: bool) -> bool:
    """Get boolean value from environment variable with fallback."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_env_list(key: str, default: list[str], separator: str = ",") -> list[str]:
    """Get list value from environment variable with fallback."""
    value = os.getenv(key)
    if not value:
        return default
    return [item.strip() for item in value.split(separator) if item.strip()]


# Deal defaults (not operator-facing)
DEFAULT_CATEGORY: str = "Other"
DEFAULT_CURRENCY: str = "AUD"
DEFAULT_REGIONS: tuple[str, ...] = ("AU",)
MAX_ID_LENGTH: int = 200

# Shown when a deal has no usable product image
RETAILER_LOGOS: Dict[str, str] = {
    "Nike AU": "https://upload.wikimedia.org/wikipedia/commons/a/a6/Logo_NIKE.svg",
    "Sony AU": "https://upload.wikimedia.org/wikipedia/commons/2/22/Sony_logo.svg",
    "Apple Store": "https://upload.wikimedia.org/wikipedia/commons/f/fa/Apple_logo_black.svg",
    "Samsung AU": "https://upload.wikimedia.org/wikipedia/commons/2/24/Samsung_Logo.svg",
    "Adidas AU": "https://upload.wikimedia.org/wikipedia/commons/2/20/Adidas_Logo.svg",
    "Dyson AU": "https://upload.wikimedia.org/wikipedia/commons/8/8d/Dyson_logo.svg",
}

# Scoring windows
RECENCY_WINDOW_HOURS: float = 48.0
URGENCY_WINDOW_DAYS: float = 7.0

# Facet weights, must sum to 1.0
SCORE_WEIGHTS: Dict[str, float] = {
    "discount": 0.40,
    "recency": 0.15,
    "seasonMatch": 0.20,
    "popularity": 0.15,
    "urgency": 0.10,
}

# Listing Settings
TOP_DEALS_LIMIT: int = _get_env_int("TOP_DEALS_LIMIT", 8)
FEATURED_CATEGORIES_LIMIT: int = _get_env_int("FEATURED_CATEGORIES_LIMIT", 6)
BACKFILL_IMAGES: bool = _get_env_bool("BACKFILL_IMAGES", True)

# HTTP Client Configuration
HTTP_TIMEOUT_SECONDS: float = _get_env_float("HTTP_TIMEOUT_SECONDS", 10.0)
MAX_REDIRECT_HOPS: int = _get_env_int("MAX_REDIRECT_HOPS", 4)
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
HTTP_HEADERS = {"User-Agent": USER_AGENT}
NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}
# Image proxy responses: never cached, and inert if opened directly
IMAGE_PROXY_HEADERS = {
    **NO_CACHE_HEADERS,
    "Content-Security-Policy": (
        "default-src 'none'; img-src data: blob: https: http:; style-src 'unsafe-inline';"
    ),
}
DEFAULT_IMAGE_CONTENT_TYPE: str = "image/jpeg"

# Fallback when a redirect target cannot be reached at all
HOME_FALLBACK_URL: str = "https://www.google.com"
# Lets /api/click?url=... redirect to an arbitrary URL (debugging only)
ALLOW_DIRECT_CLICK_URL: bool = _get_env_bool("ALLOW_DIRECT_CLICK_URL", False)

# CORS Configuration
CORS_ALLOW_ORIGINS: list[str] = _get_env_list("CORS_ALLOW_ORIGINS", ["*"])

# Logging Configuration
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
