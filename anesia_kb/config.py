import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Explicitly load .env from the project root so it works regardless of CWD
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_PROJECT_ROOT / ".env")

_PACKAGE_DATA_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseModel):
    """
    All configuration for the AnesIA knowledge base, read from environment variables.

    Storage locations for the remote store stand-in and the snapshot cache,
    plus the timing knobs used by the load orchestrator.
    """

    environment: Literal["local", "test", "production"] = Field(
        default_factory=lambda: os.getenv("ANESIA_ENV", "local")  # type: ignore[arg-type]
    )
    project_root: Path = Field(default_factory=lambda: _PROJECT_ROOT)
    data_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("ANESIA_DATA_DIR", "data"))
    )
    remote_db_path: Path = Field(
        default_factory=lambda: Path(os.getenv("ANESIA_REMOTE_DB_PATH", "data/anesia.db"))
    )
    cache_db_path: Path = Field(
        default_factory=lambda: Path(os.getenv("ANESIA_CACHE_DB_PATH", "data/snapshots.db"))
    )
    # Bundled fallback documents; the package ships a copy
    bundle_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("ANESIA_BUNDLE_DIR", str(_PACKAGE_DATA_DIR)))
    )

    index_ttl_seconds: float = Field(
        default_factory=lambda: float(os.getenv("ANESIA_INDEX_TTL_SECONDS", 15 * 60))
    )
    full_ttl_seconds: float = Field(
        default_factory=lambda: float(os.getenv("ANESIA_FULL_TTL_SECONDS", 30 * 60))
    )
    idle_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("ANESIA_IDLE_TIMEOUT_SECONDS", 1.2))
    )
    idle_fallback_delay_seconds: float = Field(
        default_factory=lambda: float(os.getenv("ANESIA_IDLE_FALLBACK_DELAY_SECONDS", 0.032))
    )

    log_level: str = Field(
        default_factory=lambda: os.getenv("ANESIA_LOG_LEVEL", "INFO")
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings singleton. Import this instead of instantiating Settings directly."""
    return Settings()
