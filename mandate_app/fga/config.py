"""Store/model identifiers published by the OpenFGA init container."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreConfig:
    store_id: str
    model_id: str

    @classmethod
    def from_file(cls, path: Path) -> StoreConfig | None:
        """
        Parse ``{"storeId": ..., "modelId": ...}``.

        Returns None when the file is missing, unparseable or incomplete, so the
        caller can keep polling.
        """
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to parse OpenFGA store config %s: %s", path, exc)
            return None

        store_id = _strip_or_none(raw.get("storeId")) if isinstance(raw, dict) else None
        model_id = _strip_or_none(raw.get("modelId")) if isinstance(raw, dict) else None
        if not store_id or not model_id:
            return None
        return cls(store_id=store_id, model_id=model_id)


def wait_for_store_config(path: Path, *, attempts: int, interval_seconds: float) -> StoreConfig | None:
    """Poll ``path`` with a fixed backoff. Returns None after ``attempts`` misses."""

    for attempt in range(1, attempts + 1):
        config = StoreConfig.from_file(path)
        if config is not None:
            logger.info("Loaded OpenFGA config: store=%s model=%s", config.store_id, config.model_id)
            return config
        logger.info("Waiting for OpenFGA config (%d/%d)...", attempt, attempts)
        if attempt < attempts:
            time.sleep(interval_seconds)

    logger.warning("Could not load OpenFGA config from %s after %d attempts", path, attempts)
    return None


def _strip_or_none(s: object) -> str | None:
    if not isinstance(s, str):
        return None
    t = s.strip()
    return t if t else None
