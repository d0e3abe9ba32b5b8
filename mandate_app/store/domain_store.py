from __future__ import annotations

import json
import logging
import os
import secrets
import string
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from mandate_app.store.models import StoreSnapshot
from mandate_app.store.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_LENGTH = 8


class DomainStore:
    """
    In-memory domain state plus its JSON flat-file persistence.

    Callers take ``read()`` for lookups and ``write()`` for mutations and keep
    the critical section minimal. Never hold either across a tuple-store call.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.data = StoreSnapshot()
        self._lock = ReadWriteLock()
        self._save_lock = threading.Lock()

    @contextmanager
    def read(self) -> Iterator[StoreSnapshot]:
        with self._lock.shared():
            yield self.data

    @contextmanager
    def write(self) -> Iterator[StoreSnapshot]:
        with self._lock.exclusive():
            yield self.data

    def load(self) -> None:
        """
        Best-effort load.

        A missing file leaves the empty defaults. A corrupt file is logged and
        the current in-memory state is kept.
        """

        try:
            raw_text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No data file at %s; starting empty", self.path)
            return

        try:
            snapshot = StoreSnapshot.model_validate(json.loads(raw_text))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Failed to load data file %s: %s", self.path, exc)
            return

        with self.write():
            self.data = snapshot
        logger.info(
            "Loaded data file %s (dossiers=%d organizations=%d guardianship_requests=%d)",
            self.path,
            len(snapshot.dossiers),
            len(snapshot.organizations),
            len(snapshot.guardianship_requests),
        )

    def save(self) -> None:
        """
        Write the full snapshot, replacing the previous file.

        Saves are serialized: each one snapshots under the save lock, so the
        last save to finish always carries the newest state.
        """

        with self._save_lock:
            with self.read() as data:
                payload = data.model_dump(mode="json", by_alias=True, exclude_none=True)

            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)

    def new_id(self) -> str:
        """Random id, unique across dossiers, organizations and requests. Call under write()."""

        taken = set(self.data.dossiers) | set(self.data.organizations)
        taken.update(r.id for r in self.data.guardianship_requests)
        while True:
            candidate = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))
            if candidate not in taken:
                return candidate

    def collect_users(self) -> list[str]:
        """Every subject referenced anywhere in the store, sorted."""

        users: set[str] = set()
        with self.read() as data:
            for dossier in data.dossiers.values():
                users.add(dossier.owner)
                users.update(r.user for r in dossier.relations)
                users.update(dossier.blocked_users)
            for ward, guardians in data.guardianships.items():
                users.add(ward)
                users.update(guardians)
            for request in data.guardianship_requests:
                users.update((request.from_, request.to))
            for org in data.organizations.values():
                users.update(org.members)
                users.update(org.admins)
        return sorted(users)
