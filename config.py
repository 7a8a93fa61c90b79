import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


def _origins() -> List[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    """Runtime configuration read from the environment (and ``.env``)."""

    database_url: Optional[str] = field(default_factory=lambda: os.getenv("DATABASE_URL"))
    database_name: Optional[str] = field(default_factory=lambda: os.getenv("DATABASE_NAME"))
    cors_origins: List[str] = field(default_factory=_origins)
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    # Cache lifetimes in seconds
    cache_ttl_entity: int = field(default_factory=lambda: _int("CACHE_TTL_ENTITY", 3600))
    cache_ttl_tracking: int = field(default_factory=lambda: _int("CACHE_TTL_TRACKING", 3600))
    cache_ttl_recommendations: int = field(default_factory=lambda: _int("CACHE_TTL_RECOMMENDATIONS", 3600))
    cache_sweep_interval: int = field(default_factory=lambda: _int("CACHE_SWEEP_INTERVAL", 600))
    provider_timeout: float = field(default_factory=lambda: _float("PROVIDER_TIMEOUT", 5.0))
    port: int = field(default_factory=lambda: _int("PORT", 8000))


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
