from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from mandate_app.fga.client import OpenFGAClient, TupleStoreError
from mandate_app.fga.config import StoreConfig, wait_for_store_config
from mandate_app.fga.model import load_authorization_model
from mandate_app.settings import Settings
from mandate_app.store.domain_store import DomainStore
from mandate_app.sync.rehydrate import RehydrationReport, Rehydrator

logger = logging.getLogger(__name__)


class TupleStoreStartup:
    """
    Bring the tuple store online, then mark the service ready.

    Sequence: resolve store/model ids (published file, or bootstrap) -> bind the
    client -> rehydrate -> ``ready.set()``. Mutating routes refuse to run until
    ``ready`` is set; if the ids never show up it never is.
    """

    def __init__(self, client: OpenFGAClient, store: DomainStore, settings: Settings) -> None:
        self._client = client
        self._store = store
        self._settings = settings
        self.ready = threading.Event()
        self.report: RehydrationReport | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="fga-startup", daemon=True)
        self._thread.start()

    def run(self) -> bool:
        if not self._client.is_bound:
            config = self._resolve_config()
            if config is None:
                logger.error("OpenFGA store/model unavailable; mutating endpoints stay disabled")
                return False
            self._client.bind(config.store_id, config.model_id)

        self.report = Rehydrator(
            self._store,
            self._client,
            batch_size=self._settings.rehydrate_batch_size,
            prune_orphans=self._settings.rehydrate_prune_orphans,
        ).run()
        self.ready.set()
        logger.info("Tuple store ready")
        return True

    def _resolve_config(self) -> StoreConfig | None:
        if self._settings.fga_bootstrap:
            return self._bootstrap()
        return wait_for_store_config(
            Path(self._settings.fga_store_config_path),
            attempts=self._settings.fga_startup_attempts,
            interval_seconds=self._settings.fga_startup_interval_seconds,
        )

    def _bootstrap(self) -> StoreConfig | None:
        """Create (or reuse) the store and write the authorization model ourselves."""

        model = load_authorization_model(self._settings.resolved_authorization_model_path())
        attempts = self._settings.fga_startup_attempts
        for attempt in range(1, attempts + 1):
            if self._client.health():
                try:
                    store_id = self._client.find_or_create_store(self._settings.fga_store_name)
                    model_id = self._client.write_authorization_model(store_id, model.to_api())
                    logger.info("Authorization model written store=%s model=%s", store_id, model_id)
                    return StoreConfig(store_id=store_id, model_id=model_id)
                except TupleStoreError as exc:
                    logger.warning("OpenFGA bootstrap failed: %s", exc)
            logger.info("Waiting for OpenFGA... (%d/%d)", attempt, attempts)
            if attempt < attempts:
                time.sleep(self._settings.fga_startup_interval_seconds)
        return None
