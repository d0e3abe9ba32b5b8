from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults match the docker-compose deployment (OpenFGA at ``openfga:8080``,
      store ids published by the init container on the ``/shared`` volume).
    - Everything can be overridden with ``APP_*`` env vars.
    """

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    data_file: str | None = None
    log_level: str = "INFO"

    openfga_url: str = "http://openfga:8080"
    fga_request_timeout_seconds: float = 10.0

    # Store/model ids are either read from a file written by an init container,
    # or created by this process when fga_bootstrap is enabled.
    fga_store_config_path: str = "/shared/openfga-store.json"
    fga_bootstrap: bool = False
    fga_store_name: str = "citizen-mandate"
    authorization_model_path: str | None = None

    # Fixed backoff, bounded attempts.
    fga_startup_attempts: int = 30
    fga_startup_interval_seconds: float = 3.0
    fga_startup_in_background: bool = True

    rehydrate_batch_size: int = 10
    rehydrate_prune_orphans: bool = True

    audit_url: str | None = None
    audit_queue_size: int = 1000
    audit_timeout_seconds: float = 5.0

    # Identity is asserted by the upstream proxy; this service does not verify it.
    user_header: str = "x-current-user"
    manager_admin_header: str = "x-manager-admin"
    trust_manager_admin_header: bool = True

    def resolved_data_file(self) -> Path:
        if self.data_file:
            return Path(self.data_file)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "data" / "store.json"

    def resolved_authorization_model_path(self) -> Path:
        if self.authorization_model_path:
            return Path(self.authorization_model_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "authorization_model.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
