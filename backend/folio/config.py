"""Environment-driven settings for the Folio API.

Values are read once per ``Settings.from_env()`` call so the app factory
and tests can build independent configurations::

    from folio.config import Settings

    settings = Settings.from_env()
    if settings.database_url:
        ...
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DEV_ORIGINS = "http://localhost:3000,http://localhost:5173"
DEFAULT_PROD_ORIGIN = "https://app.folio.so"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def _parse_origins(raw: str, production: bool) -> list[str]:
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if not production:
        return origins
    # Production: strict HTTPS origins only, no localhost
    accepted = []
    for origin in origins:
        if not origin.startswith("https://") or "localhost" in origin:
            logger.warning("Rejecting origin in production: %s", origin)
            continue
        accepted.append(origin)
    return accepted or [DEFAULT_PROD_ORIGIN]


@dataclass
class Settings:
    """Runtime configuration for storage, database and HTTP concerns."""

    database_url: str | None = None
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    storage_bucket: str = "proposals"
    max_upload_mb: int = 25
    signed_url_ttl_seconds: int = 3600
    environment: str = "development"
    allowed_origins: list[str] = field(
        default_factory=lambda: DEFAULT_DEV_ORIGINS.split(",")
    )
    rate_limit_per_minute: int = 100
    max_request_size_mb: int = 30

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def storage_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    @classmethod
    def from_env(cls) -> "Settings":
        environment = os.getenv("ENVIRONMENT", "development").lower()
        production = environment == "production"
        default_origins = DEFAULT_PROD_ORIGIN if production else DEFAULT_DEV_ORIGINS
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY") or None,
            storage_bucket=os.getenv("STORAGE_BUCKET", "proposals"),
            max_upload_mb=_int_env("MAX_UPLOAD_MB", 25),
            signed_url_ttl_seconds=_int_env("SIGNED_URL_TTL_SECONDS", 3600),
            environment=environment,
            allowed_origins=_parse_origins(
                os.getenv("ALLOWED_ORIGINS", default_origins), production
            ),
            rate_limit_per_minute=_int_env("RATE_LIMIT_PER_MINUTE", 100),
            max_request_size_mb=_int_env("MAX_REQUEST_SIZE_MB", 30),
        )
