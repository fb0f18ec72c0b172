"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

from pharmafinder.models import Coordinates

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


class ConfigurationError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str
    gemini_model: str = DEFAULT_MODEL
    gemini_timeout: float = 30.0
    default_location: Optional[Coordinates] = None
    port: int = 8080


def require_api_key(api_key: Optional[str]) -> str:
    if not api_key:
        raise ConfigurationError("GEMINI_API_KEY is missing. Please check your environment configuration.")
    return api_key


def _parse_default_location() -> Optional[Coordinates]:
    lat_raw = os.getenv("DEFAULT_LATITUDE", "").strip()
    lng_raw = os.getenv("DEFAULT_LONGITUDE", "").strip()
    if not lat_raw and not lng_raw:
        return None
    try:
        return Coordinates(latitude=float(lat_raw), longitude=float(lng_raw))
    except ValueError:
        logger.warning("DEFAULT_LATITUDE/DEFAULT_LONGITUDE must both be numeric; ignoring default location.")
        return None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    gemini_api_key = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", "")
    gemini_model = os.getenv("GEMINI_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL
    gemini_timeout = float(os.getenv("GEMINI_TIMEOUT", "30"))
    port = int(os.getenv("PORT", "8080"))

    if not gemini_api_key:
        logger.warning("GEMINI_API_KEY is not configured; pharmacy searches will fail.")

    return Settings(
        gemini_api_key=gemini_api_key,
        gemini_model=gemini_model,
        gemini_timeout=gemini_timeout,
        default_location=_parse_default_location(),
        port=port,
    )
