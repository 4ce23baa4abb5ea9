"""Runtime settings, read once from the environment at process start."""

import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_PAGE_SIZE = 1000
# PostgREST max-rows on Supabase; larger requests come back truncated
MAX_PAGE_SIZE = 1000

# setting name -> environment variables, first one set wins
ENV_VARS: Dict[str, List[str]] = {
    "source_url": ["VITE_SUPABASE_URL", "SUPABASE_URL"],
    "source_key": ["VITE_SUPABASE_ANON_KEY", "SUPABASE_KEY"],
    "target_host": ["MYSQL_HOST"],
    "target_port": ["MYSQL_PORT"],
    "target_user": ["MYSQL_USER"],
    "target_password": ["MYSQL_PASSWORD"],
    "target_database": ["MYSQL_DATABASE"],
    "target_ssl": ["MYSQL_SSL"],
    "batch_size": ["MIGRATION_BATCH_SIZE"],
    "page_size": ["MIGRATION_PAGE_SIZE"],
    "data_dir": ["MIGRATION_DATA_DIR"],
}


class MigrationSettings(BaseModel):
    """Connection and sizing settings for a migration run."""

    # Source (Supabase / PostgREST)
    source_url: Optional[str] = None
    source_key: Optional[str] = None

    # Target (MySQL)
    target_host: str = "localhost"
    target_port: int = Field(default=3306, ge=1, le=65535)
    target_user: str = "root"
    target_password: str = ""
    target_database: str = "gsl_crm"
    target_ssl: bool = False

    # Sizing
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    # Staging
    data_dir: Path = Path("data")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv: bool = True
    ) -> "MigrationSettings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``
            dotenv: Load a ``.env`` file into ``os.environ`` first

        Returns:
            Validated settings
        """
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ

        values = {}
        for setting, names in ENV_VARS.items():
            for name in names:
                raw = environ.get(name)
                if raw is not None and raw != "":
                    values[setting] = raw
                    break

        if "target_ssl" in values:
            values["target_ssl"] = str(values["target_ssl"]).strip().lower() == "true"

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid migration settings: {e}") from e

    def require_source(self) -> None:
        """Fail unless the source credentials are present."""
        missing = []
        if not self.source_url:
            missing.append(ENV_VARS["source_url"][0])
        if not self.source_key:
            missing.append(ENV_VARS["source_key"][0])
        if missing:
            raise ConfigurationError(
                f"Supabase credentials not found in environment: {', '.join(missing)}",
                missing=missing,
            )

    def require_target(self) -> None:
        """Fail unless the target connection settings are usable."""
        missing = [
            ENV_VARS[name][0]
            for name in ("target_host", "target_user", "target_database")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"MySQL settings missing: {', '.join(missing)}",
                missing=missing,
            )

    def describe(self) -> Dict[str, object]:
        """Settings safe to print or log (no secrets)."""
        return {
            "source_url": self.source_url,
            "target": f"{self.target_user}@{self.target_host}:{self.target_port}/{self.target_database}",
            "target_ssl": self.target_ssl,
            "batch_size": self.batch_size,
            "page_size": self.page_size,
            "data_dir": str(self.data_dir),
        }
