"""
Rebuild OpenFGA tuples from the persisted domain snapshot.

Local state is the source of truth. ``derive_tuples`` lists every tuple the
snapshot implies; the rehydrator diffs that against what the store holds,
writes what is missing and (optionally) prunes tuples on our object types
that nothing local explains any more, e.g. leftovers of a dossier whose
best-effort tuple cleanup failed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from mandate_app.fga.client import OpenFGAClient, TupleStoreError
from mandate_app.fga.tuples import (
    TupleKey,
    admin_tuple,
    blocked_tuple,
    dossier_relation_tuple,
    guardian_tuple,
    member_tuple,
    org_parent_tuple,
    owner_tuple,
    public_tuple,
)
from mandate_app.store.domain_store import DomainStore
from mandate_app.store.models import Dossier, Organization, StoreSnapshot

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

_MANAGED_OBJECT_PREFIXES = ("dossier:", "organization:")


def dossier_tuples(dossier: Dossier) -> list[TupleKey]:
    """Every tuple a dossier causes to exist."""

    out = [owner_tuple(dossier.owner, dossier.id)]
    for rel in dossier.relations:
        out.append(dossier_relation_tuple(rel.user, rel.relation, dossier.id))
    if dossier.org_id:
        out.append(org_parent_tuple(dossier.org_id, dossier.id))
    if dossier.public:
        out.append(public_tuple(dossier.id))
    for blocked in dossier.blocked_users:
        out.append(blocked_tuple(blocked, dossier.id))
    return out


def organization_tuples(org: Organization) -> list[TupleKey]:
    out = [member_tuple(member, org.id) for member in org.members]
    out.extend(admin_tuple(admin, org.id) for admin in org.admins)
    return out


def derive_tuples(snapshot: StoreSnapshot) -> list[TupleKey]:
    """Every tuple implied by ``snapshot``, deduplicated, in a stable order."""

    out: list[TupleKey] = []
    for dossier_id in sorted(snapshot.dossiers):
        out.extend(dossier_tuples(snapshot.dossiers[dossier_id]))

    for ward in sorted(snapshot.guardianships):
        for guardian in snapshot.guardianships[ward]:
            out.append(guardian_tuple(guardian, ward))

    for org_id in sorted(snapshot.organizations):
        out.extend(organization_tuples(snapshot.organizations[org_id]))

    return list(dict.fromkeys(out))


def is_managed(t: TupleKey) -> bool:
    """Tuples this service owns and may therefore prune."""
    return t.object.startswith(_MANAGED_OBJECT_PREFIXES) or t.relation == "guardian"


@dataclass
class RehydrationReport:
    derived: int = 0
    written: int = 0
    deleted: int = 0
    failed_batches: int = 0


class Rehydrator:
    def __init__(
        self,
        store: DomainStore,
        client: OpenFGAClient,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        prune_orphans: bool = True,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._store = store
        self._client = client
        self._batch_size = batch_size
        self._prune_orphans = prune_orphans

    def run(self) -> RehydrationReport:
        with self._store.read() as data:
            desired = derive_tuples(data)

        report = RehydrationReport(derived=len(desired))

        try:
            existing: set[TupleKey] | None = set(self._client.read_tuples())
        except TupleStoreError as exc:
            logger.warning("Could not read existing tuples (%s); replaying all %d derived tuples", exc, len(desired))
            existing = None

        if existing is None:
            to_write = desired
            to_delete: list[TupleKey] = []
        else:
            desired_set = set(desired)
            to_write = [t for t in desired if t not in existing]
            to_delete = []
            if self._prune_orphans:
                to_delete = sorted(
                    (t for t in existing if is_managed(t) and t not in desired_set),
                    key=lambda t: (t.object, t.relation, t.user),
                )

        report.written, failed = self._replay(to_write, deleting=False)
        report.failed_batches += failed
        report.deleted, failed = self._replay(to_delete, deleting=True)
        report.failed_batches += failed

        logger.info(
            "Rehydrated tuples: derived=%d written=%d pruned=%d failed_batches=%d",
            report.derived,
            report.written,
            report.deleted,
            report.failed_batches,
        )
        return report

    def _replay(self, tuples: Sequence[TupleKey], *, deleting: bool) -> tuple[int, int]:
        done = failed = 0
        for start in range(0, len(tuples), self._batch_size):
            batch = list(tuples[start : start + self._batch_size])
            try:
                if deleting:
                    self._client.write(deletes=batch)
                else:
                    self._client.write(writes=batch)
            except TupleStoreError as exc:
                failed += 1
                logger.warning("Rehydrate batch error (offset=%d size=%d): %s", start, len(batch), exc)
                continue
            done += len(batch)
        return done, failed
