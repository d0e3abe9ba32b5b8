from __future__ import annotations

import logging
from dataclasses import dataclass

from mandate_app.errors import Conflict, Forbidden, NotFound, ValidationFailed
from mandate_app.fga.client import OpenFGAClient
from mandate_app.fga.tuples import guardian_tuple
from mandate_app.security.context import Caller
from mandate_app.services.authz import require_manager_admin
from mandate_app.services.changes import Change, apply_change
from mandate_app.store.domain_store import DomainStore
from mandate_app.store.models import GuardianshipRequest, StoreSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardianshipOverview:
    guardians: list[str]
    wards: list[str]
    incoming: list[GuardianshipRequest]
    outgoing: list[GuardianshipRequest]


class GuardianshipService:
    """
    Request -> accept/deny workflow for guardianships.

    Accepting ``from -> to`` makes ``from`` a guardian of ``to``: the edge is
    stored under ``guardianships[to]`` and mirrored as
    ``user:{from} guardian user:{to}``. Requests and denials are local only.
    """

    def __init__(self, store: DomainStore, client: OpenFGAClient) -> None:
        self._store = store
        self._client = client

    def overview(self, caller: Caller) -> GuardianshipOverview:
        user = caller.user
        with self._store.read() as data:
            guardians = list(data.guardians_of(user))
            wards = [ward for ward, gs in data.guardianships.items() if ward != user and user in gs]
            incoming = [r.model_copy() for r in data.guardianship_requests if r.to == user and r.status == "pending"]
            outgoing = [r.model_copy() for r in data.guardianship_requests if r.from_ == user and r.status == "pending"]
        return GuardianshipOverview(guardians=guardians, wards=sorted(wards), incoming=incoming, outgoing=outgoing)

    def list_all(self, caller: Caller) -> dict[str, list[str]]:
        require_manager_admin(caller, "guardianship.list_all")
        with self._store.read() as data:
            return {ward: list(gs) for ward, gs in data.guardianships.items() if gs}

    def request(self, caller: Caller, to: str) -> GuardianshipRequest:
        to = (to or "").strip()
        if not to or to == caller.user:
            raise ValidationFailed("Invalid target user")

        with self._store.write() as data:
            if data.in_guardianship(caller.user, to):
                raise Conflict(f"A guardianship already exists between you and {to}")
            if any(r.status == "pending" and r.involves(caller.user, to) for r in data.guardianship_requests):
                raise Conflict("Request already pending")

            req = GuardianshipRequest(id=self._store.new_id(), from_=caller.user, to=to)
            data.guardianship_requests.append(req)
            result = req.model_copy()

        self._store.save()
        logger.info("Guardianship requested id=%s from=%s to=%s", result.id, caller.user, to)
        return result

    def accept(self, caller: Caller, request_id: str) -> None:
        def mutate(data: StoreSnapshot) -> Change:
            req = _pending_addressed_to(data, request_id, caller, "accept")
            guardian, ward = req.from_, req.to

            req.status = "accepted"
            guardians = data.guardianships.setdefault(ward, [])
            added = guardian not in guardians
            if added:
                guardians.append(guardian)

            def undo(d: StoreSnapshot) -> None:
                req.status = "pending"
                if added:
                    _drop_guardian(d, ward, guardian)

            return Change(writes=[guardian_tuple(guardian, ward)] if added else [], undo=undo)

        apply_change(self._store, self._client, mutate, description="guardianship acceptance")
        logger.info("Guardianship accepted id=%s by=%s", request_id, caller.user)

    def deny(self, caller: Caller, request_id: str) -> None:
        with self._store.write() as data:
            req = _pending_addressed_to(data, request_id, caller, "deny")
            req.status = "denied"
        self._store.save()

    def remove(self, caller: Caller, other_user: str) -> int:
        """
        Drop the guardianship between the caller and ``other_user``, whichever
        direction(s) it runs. Returns the number of edges removed (0 is fine).
        """

        other_user = (other_user or "").strip()
        if not other_user:
            raise ValidationFailed("Invalid target user")
        me = caller.user

        def mutate(data: StoreSnapshot) -> Change:
            removed: list[tuple[str, str]] = []  # (ward, guardian)
            for ward, guardian in ((me, other_user), (other_user, me)):
                if guardian in data.guardians_of(ward):
                    _drop_guardian(data, ward, guardian)
                    removed.append((ward, guardian))

            def undo(d: StoreSnapshot) -> None:
                for ward, guardian in removed:
                    gs = d.guardianships.setdefault(ward, [])
                    if guardian not in gs:
                        gs.append(guardian)

            return Change(
                deletes=[guardian_tuple(guardian, ward) for ward, guardian in removed],
                undo=undo,
                result=len(removed),
            )

        removed = apply_change(self._store, self._client, mutate, description="guardianship removal").result
        if removed:
            logger.info("Guardianship removed between %s and %s (edges=%d)", me, other_user, removed)
        return removed


def _pending_addressed_to(data: StoreSnapshot, request_id: str, caller: Caller, verb: str) -> GuardianshipRequest:
    req = next((r for r in data.guardianship_requests if r.id == request_id), None)
    if req is None:
        raise NotFound("Request not found")
    if req.to != caller.user:
        raise Forbidden(f"Not your request to {verb}")
    if req.status != "pending":
        raise Conflict("Request already handled")
    return req


def _drop_guardian(data: StoreSnapshot, ward: str, guardian: str) -> None:
    remaining = [g for g in data.guardians_of(ward) if g != guardian]
    if remaining:
        data.guardianships[ward] = remaining
    else:
        data.guardianships.pop(ward, None)
