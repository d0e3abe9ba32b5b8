"""
Local mutation + tuple delta, with rollback.

Every authorization-bearing change goes through ``apply_change``:

    lock -> validate, snapshot, mutate -> unlock
    -> write tuples (network, no lock held)
    -> on failure: lock -> undo -> unlock, raise SyncFailed
    -> on success: persist

``mutate`` runs under the exclusive lock and may raise domain errors before it
touches anything; it returns a ``Change`` describing the tuple delta and how to
undo the local part.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from mandate_app.errors import SyncFailed
from mandate_app.fga.client import OpenFGAClient, TupleStoreError
from mandate_app.fga.tuples import TupleKey
from mandate_app.store.domain_store import DomainStore
from mandate_app.store.models import StoreSnapshot

logger = logging.getLogger(__name__)


@dataclass
class Change:
    writes: list[TupleKey] = field(default_factory=list)
    deletes: list[TupleKey] = field(default_factory=list)
    undo: Callable[[StoreSnapshot], None] | None = None
    result: Any = None

    @property
    def is_empty(self) -> bool:
        return not self.writes and not self.deletes


def apply_change(
    store: DomainStore,
    client: OpenFGAClient,
    mutate: Callable[[StoreSnapshot], Change],
    *,
    description: str,
) -> Change:
    with store.write() as data:
        change = mutate(data)

    if not change.is_empty:
        try:
            client.write(change.writes, change.deletes)
        except TupleStoreError as exc:
            logger.warning("Tuple write failed for %s; rolling back local change: %s", description, exc)
            if change.undo is not None:
                with store.write() as data:
                    change.undo(data)
            raise SyncFailed(f"Failed to sync {description}: {exc}") from exc

    store.save()
    return change
