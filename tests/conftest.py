"""
Pytest fixtures for the test suite.

Service and API tests run against ``FakeTupleStore``: an in-memory tuple set
that answers checks by evaluating config/authorization_model.yaml by hand,
so visibility and deny-override behave as they would against OpenFGA.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence

import pytest

from mandate_app.fga.client import TupleStoreError
from mandate_app.fga.tuples import WILDCARD_USER, TupleKey
from mandate_app.security.context import Caller
from mandate_app.services.dossiers import DossierService
from mandate_app.services.guardianships import GuardianshipService
from mandate_app.services.organizations import OrganizationService
from mandate_app.store.domain_store import DomainStore


def evaluate(tuples: set[TupleKey], user: str, relation: str, obj: str) -> bool:
    def direct(rel: str, target: str = obj) -> bool:
        return TupleKey(user, rel, target) in tuples or TupleKey(WILDCARD_USER, rel, target) in tuples

    type_name = obj.split(":", 1)[0]
    if type_name == "organization" and relation == "can_manage":
        return direct("admin")
    if type_name == "dossier":
        if relation == "editor":
            return direct("editor") or direct("owner") or direct("mandate_holder")
        if relation == "viewer":
            return evaluate(tuples, user, "can_view", obj) and not direct("blocked")
        if relation == "can_view":
            if any(direct(rel) for rel in ("can_view", "owner", "mandate_holder", "public")):
                return True
            for t in tuples:
                if t.object != obj:
                    continue
                if t.relation == "owner" and direct("guardian", t.user):
                    return True
                if t.relation == "org_parent" and direct("member", t.user):
                    return True
            return False
    return direct(relation)


class FakeTupleStore:
    """Stands in for OpenFGAClient; records every write call."""

    def __init__(self, *, bound: bool = True) -> None:
        self.tuples: set[TupleKey] = set()
        self.write_calls: list[tuple[list[TupleKey], list[TupleKey]]] = []
        self.fail_writes = False
        self.fail_reads = False
        self.store_id = "store-1" if bound else None
        self.model_id = "model-1" if bound else None

    @property
    def is_bound(self) -> bool:
        return bool(self.store_id and self.model_id)

    def bind(self, store_id: str, model_id: str) -> None:
        self.store_id, self.model_id = store_id, model_id

    def write(self, writes: Iterable[TupleKey] = (), deletes: Iterable[TupleKey] = ()) -> None:
        writes, deletes = list(writes), list(deletes)
        if not writes and not deletes:
            return
        if self.fail_writes:
            raise TupleStoreError("simulated outage", status_code=503)
        self.write_calls.append((writes, deletes))
        self.tuples.update(writes)
        self.tuples.difference_update(deletes)

    def read_tuples(self) -> list[TupleKey]:
        if self.fail_reads:
            raise TupleStoreError("simulated outage", status_code=503)
        return sorted(self.tuples, key=lambda t: (t.object, t.relation, t.user))

    def check(self, user: str, relation: str, object_: str) -> bool:
        return evaluate(self.tuples, user, relation, object_)

    def check_with_context(
        self, user: str, relation: str, object_: str, contextual_tuples: Sequence[TupleKey]
    ) -> bool:
        return evaluate(self.tuples | set(contextual_tuples), user, relation, object_)

    def list_objects(self, user: str, relation: str, type_name: str) -> list[str]:
        objects = {t.object for t in self.tuples if t.object.startswith(f"{type_name}:")}
        return sorted(o for o in objects if self.check(user, relation, o))

    def written(self) -> list[TupleKey]:
        return [t for writes, _ in self.write_calls for t in writes]

    def deleted(self) -> list[TupleKey]:
        return [t for _, deletes in self.write_calls for t in deletes]


@pytest.fixture
def fga() -> FakeTupleStore:
    return FakeTupleStore()


@pytest.fixture
def store(tmp_path) -> DomainStore:
    return DomainStore(tmp_path / "store.json")


@pytest.fixture
def dossiers(store, fga) -> DossierService:
    return DossierService(store, fga)


@pytest.fixture
def guardianships(store, fga) -> GuardianshipService:
    return GuardianshipService(store, fga)


@pytest.fixture
def organizations(store, fga) -> OrganizationService:
    return OrganizationService(store, fga)


@pytest.fixture
def make_guardian(guardianships):
    """Make ``guardian`` a guardian of ``ward`` through the normal request/accept flow."""

    def _make(guardian: str, ward: str) -> None:
        req = guardianships.request(Caller(guardian), ward)
        guardianships.accept(Caller(ward), req.id)

    return _make
