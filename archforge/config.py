"""Environment-driven settings.

Centralized config using pydantic-settings.  Reads from a .env file and
ARCHFORGE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ArchforgeSettings(BaseSettings):
    """Settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export ARCHFORGE_IMAGE_ID=ghcr.io/example/server
        export ARCHFORGE_LOG_LEVEL=DEBUG
        export ARCHFORGE_BARRIER_TIMEOUT_SECONDS=1800

    Or via .env file::

        ARCHFORGE_REGISTRY_USERNAME=ci-bot
        ARCHFORGE_REGISTRY_PASSWORD=...
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ARCHFORGE_",
        env_file_encoding="utf-8",
    )

    log_level: str = "INFO"

    # Registry
    image_id: str = "ghcr.io/xline-kv/xline"
    registry: str = "ghcr.io"
    registry_username: str = ""
    registry_password: SecretStr = SecretStr("")

    # Toolchain
    rust_toolchain: str = "1.74.0"
    binaries: list[str] = ["xline", "benchmark"]

    # Source tree layout
    source_dir: Path = Path(".")
    context_dir: Path = Path("scripts")
    cross_dir: Path = Path("ci/cross")

    # Local state
    work_root: Path = Path(".archforge/work")
    cache_root: Path = Path(".archforge/cache")
    digest_root: Path = Path(".archforge/digests")
    ledger_path: Path = Path(".archforge/ledger.db")

    # Fan-out
    max_parallel_jobs: int = 4
    barrier_timeout_seconds: float = 3600.0
    command_timeout_seconds: float | None = None

    fallback_version: str = "dev"

    @property
    def has_registry_credentials(self) -> bool:
        return bool(self.registry_username and self.registry_password.get_secret_value())


# Module-level singleton; import as `from archforge.config import settings`
settings = ArchforgeSettings()
