"""Tests for dossier lifecycle and relation management."""

import threading

import pytest
from fastapi import HTTPException

from mandate_app.errors import SyncFailed
from mandate_app.fga.tuples import (
    blocked_tuple,
    dossier_relation_tuple,
    org_parent_tuple,
    owner_tuple,
    public_tuple,
)
from mandate_app.security.context import Caller

alice = Caller("alice")
bob = Caller("bob")
carol = Caller("carol")
ops = Caller("ops", is_manager_admin=True)


def _status(exc_info) -> int:
    return exc_info.value.status_code


def _assert_owner_never_related(store):
    for dossier in store.data.dossiers.values():
        assert dossier.owner not in {r.user for r in dossier.relations}
        assert dossier.owner not in dossier.blocked_users


def test_create_writes_exactly_the_owner_tuple(dossiers, fga, store):
    dossier = dossiers.create(alice, title="Tax Return 2024", type_="tax")

    assert dossier.owner == "alice"
    assert dossier.type == "tax"
    assert fga.write_calls == [([owner_tuple("alice", dossier.id)], [])]
    assert store.path.exists()


def test_create_with_org_and_public_writes_one_batch(dossiers, organizations, fga):
    org = organizations.create(alice, "Acme")
    fga.write_calls.clear()

    dossier = dossiers.create(alice, title="Shared", type_="general", org_id=org.id, public=True)

    assert fga.write_calls == [
        ([owner_tuple("alice", dossier.id), org_parent_tuple(org.id, dossier.id), public_tuple(dossier.id)], [])
    ]


@pytest.mark.parametrize(
    "kwargs, status",
    [
        ({"title": "", "type_": "tax"}, 400),
        ({"title": "   ", "type_": "tax"}, 400),
        ({"title": "x", "type_": "secret"}, 400),
        ({"title": "x", "type_": "tax", "org_id": "missing"}, 404),
    ],
)
def test_create_validation(dossiers, store, fga, kwargs, status):
    with pytest.raises(HTTPException) as exc_info:
        dossiers.create(alice, **kwargs)
    assert _status(exc_info) == status
    assert store.data.dossiers == {}
    assert fga.write_calls == []


def test_create_rolls_back_when_tuple_write_fails(dossiers, fga, store):
    fga.fail_writes = True
    with pytest.raises(SyncFailed):
        dossiers.create(alice, title="Tax Return 2024", type_="tax")
    assert store.data.dossiers == {}


def test_list_visible_uses_viewer_and_reports_can_edit(dossiers, make_guardian):
    own = dossiers.create(alice, title="Mine", type_="tax")
    dossiers.create(carol, title="Carol's", type_="general")
    make_guardian("bob", "alice")

    alice_view = dossiers.list_visible(alice)
    assert [(v.dossier.id, v.can_edit) for v in alice_view] == [(own.id, True)]

    # A guardian of the owner can view but not edit.
    bob_view = dossiers.list_visible(bob)
    assert [(v.dossier.id, v.can_edit) for v in bob_view] == [(own.id, False)]


def test_list_visible_is_empty_when_the_tuple_store_errors(dossiers, fga, monkeypatch):
    dossiers.create(alice, title="Mine", type_="tax")
    monkeypatch.setattr(fga, "list_objects", lambda *args: [])
    assert dossiers.list_visible(alice) == []


def test_list_all_requires_admin_channel(dossiers):
    dossiers.create(alice, title="Mine", type_="tax")
    with pytest.raises(HTTPException) as exc_info:
        dossiers.list_all(alice)
    assert _status(exc_info) == 403
    assert len(dossiers.list_all(ops)) == 1


def test_update_requires_editor(dossiers):
    dossier = dossiers.create(alice, title="Mine", type_="tax")

    with pytest.raises(HTTPException) as exc_info:
        dossiers.update(bob, dossier.id, title="Hijacked")
    assert _status(exc_info) == 403

    updated = dossiers.update(alice, dossier.id, content="notes", type_="health")
    assert (updated.title, updated.content, updated.type) == ("Mine", "notes", "health")


def test_update_validation_and_missing(dossiers):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    with pytest.raises(HTTPException) as exc_info:
        dossiers.update(alice, dossier.id, type_="secret")
    assert _status(exc_info) == 400
    with pytest.raises(HTTPException) as exc_info:
        dossiers.update(alice, "missing", title="x")
    assert _status(exc_info) == 404


def test_update_by_mandate_holder(dossiers, make_guardian):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    make_guardian("bob", "alice")
    dossiers.add_mandate(alice, dossier.id, "bob")

    assert dossiers.update(bob, dossier.id, title="Reviewed").title == "Reviewed"


def test_delete_removes_every_derived_tuple(dossiers, fga, store, make_guardian):
    dossier = dossiers.create(alice, title="Mine", type_="tax", public=True)
    make_guardian("bob", "alice")
    dossiers.add_mandate(alice, dossier.id, "bob")
    dossiers.block(alice, dossier.id, "carol")

    dossiers.delete(alice, dossier.id)

    assert dossier.id not in store.data.dossiers
    assert not [t for t in fga.tuples if t.object == f"dossier:{dossier.id}"]


def test_delete_removes_record_even_if_tuple_cleanup_fails(dossiers, fga, store, caplog):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    fga.fail_writes = True

    dossiers.delete(alice, dossier.id)

    assert dossier.id not in store.data.dossiers
    assert "Tuple cleanup failed" in caplog.text


def test_add_mandate_requires_guardianship(dossiers, fga):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    with pytest.raises(HTTPException) as exc_info:
        dossiers.add_mandate(alice, dossier.id, "bob")
    assert _status(exc_info) == 400
    assert "not in a guardianship" in exc_info.value.detail
    assert dossier_relation_tuple("bob", "mandate_holder", dossier.id) not in fga.tuples


def test_add_mandate_works_for_ward_direction(dossiers, fga, make_guardian):
    # alice guards bob: alice may still delegate to her ward.
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    make_guardian("alice", "bob")

    dossiers.add_mandate(alice, dossier.id, "bob")

    assert dossier_relation_tuple("bob", "mandate_holder", dossier.id) in fga.tuples
    assert [r.user for r in dossiers.get_relations(alice, dossier.id)] == ["bob"]


def test_add_mandate_rejects_owner_and_duplicates(dossiers, make_guardian, store):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    make_guardian("bob", "alice")

    with pytest.raises(HTTPException) as exc_info:
        dossiers.add_mandate(alice, dossier.id, "alice")
    assert _status(exc_info) == 400

    dossiers.add_mandate(alice, dossier.id, "bob")
    with pytest.raises(HTTPException) as exc_info:
        dossiers.add_mandate(alice, dossier.id, "bob")
    assert _status(exc_info) == 409
    _assert_owner_never_related(store)


def test_admin_channel_may_delegate_outside_guardianship(dossiers, fga):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    dossiers.add_mandate(ops, dossier.id, "carol")
    assert dossier_relation_tuple("carol", "mandate_holder", dossier.id) in fga.tuples


def test_add_mandate_rolls_back_on_write_failure(dossiers, fga, store, make_guardian):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    make_guardian("bob", "alice")
    fga.fail_writes = True

    with pytest.raises(SyncFailed):
        dossiers.add_mandate(alice, dossier.id, "bob")
    assert store.data.dossiers[dossier.id].relations == []


def test_remove_relation(dossiers, fga, make_guardian):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    make_guardian("bob", "alice")
    dossiers.add_mandate(alice, dossier.id, "bob")

    dossiers.remove_relation(alice, dossier.id, "bob")
    assert dossier_relation_tuple("bob", "mandate_holder", dossier.id) not in fga.tuples

    with pytest.raises(HTTPException) as exc_info:
        dossiers.remove_relation(alice, dossier.id, "bob")
    assert _status(exc_info) == 404


def test_get_relations_requires_editor(dossiers):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    with pytest.raises(HTTPException) as exc_info:
        dossiers.get_relations(bob, dossier.id)
    assert _status(exc_info) == 403


def test_assign_organization_swaps_org_parent(dossiers, organizations, fga):
    first = organizations.create(alice, "First")
    second = organizations.create(alice, "Second")
    dossier = dossiers.create(alice, title="Mine", type_="tax", org_id=first.id)

    moved = dossiers.assign_organization(alice, dossier.id, second.id)
    assert moved.org_id == second.id
    assert org_parent_tuple(first.id, dossier.id) not in fga.tuples
    assert org_parent_tuple(second.id, dossier.id) in fga.tuples

    calls = len(fga.write_calls)
    dossiers.assign_organization(alice, dossier.id, second.id)
    assert len(fga.write_calls) == calls

    cleared = dossiers.assign_organization(alice, dossier.id, None)
    assert cleared.org_id is None
    assert org_parent_tuple(second.id, dossier.id) not in fga.tuples


def test_assign_organization_unknown_org(dossiers):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    with pytest.raises(HTTPException) as exc_info:
        dossiers.assign_organization(alice, dossier.id, "missing")
    assert _status(exc_info) == 404


def test_org_members_can_view_org_dossiers(dossiers, organizations, fga):
    org = organizations.create(alice, "Acme", members=["carol"])
    dossier = dossiers.create(alice, title="Shared", type_="general", org_id=org.id)

    assert fga.check("user:carol", "viewer", f"dossier:{dossier.id}")
    assert not fga.check("user:carol", "editor", f"dossier:{dossier.id}")


def test_toggle_public_twice_restores_visibility_and_tuples(dossiers, fga):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    before = set(fga.tuples)
    obj = f"dossier:{dossier.id}"
    assert not fga.check("user:bob", "viewer", obj)

    assert dossiers.toggle_public(alice, dossier.id) is True
    assert public_tuple(dossier.id) in fga.tuples
    assert fga.check("user:bob", "viewer", obj)

    assert dossiers.toggle_public(alice, dossier.id) is False
    assert fga.tuples == before
    assert not fga.check("user:bob", "viewer", obj)


def test_toggle_public_owner_only_and_rollback(dossiers, fga, store):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    with pytest.raises(HTTPException) as exc_info:
        dossiers.toggle_public(bob, dossier.id)
    assert _status(exc_info) == 403

    fga.fail_writes = True
    with pytest.raises(SyncFailed):
        dossiers.toggle_public(alice, dossier.id)
    assert store.data.dossiers[dossier.id].public is False


def test_block_overrides_org_membership(dossiers, organizations, fga):
    org = organizations.create(alice, "Acme", members=["bob"])
    dossier = dossiers.create(alice, title="Shared", type_="general", org_id=org.id)
    obj = f"dossier:{dossier.id}"
    assert fga.check("user:bob", "viewer", obj)

    dossiers.block(alice, dossier.id, "bob")
    assert blocked_tuple("bob", dossier.id) in fga.tuples
    assert not fga.check("user:bob", "viewer", obj)
    assert dossiers.list_visible(bob) == []

    dossiers.unblock(alice, dossier.id, "bob")
    assert fga.check("user:bob", "viewer", obj)


def test_block_guards(dossiers, store):
    dossier = dossiers.create(alice, title="Mine", type_="tax")

    with pytest.raises(HTTPException) as exc_info:
        dossiers.block(alice, dossier.id, "alice")
    assert _status(exc_info) == 400

    with pytest.raises(HTTPException) as exc_info:
        dossiers.block(bob, dossier.id, "carol")
    assert _status(exc_info) == 403

    dossiers.block(alice, dossier.id, "carol")
    with pytest.raises(HTTPException) as exc_info:
        dossiers.block(alice, dossier.id, "carol")
    assert _status(exc_info) == 409

    with pytest.raises(HTTPException) as exc_info:
        dossiers.unblock(alice, dossier.id, "bob")
    assert _status(exc_info) == 404
    _assert_owner_never_related(store)


def test_unblock_rolls_back_on_write_failure(dossiers, fga, store):
    dossier = dossiers.create(alice, title="Mine", type_="tax")
    dossiers.block(alice, dossier.id, "carol")
    fga.fail_writes = True

    with pytest.raises(SyncFailed):
        dossiers.unblock(alice, dossier.id, "carol")
    assert store.data.dossiers[dossier.id].blocked_users == ["carol"]


def test_emergency_check_never_persists(dossiers, fga, store):
    dossier = dossiers.create(alice, title="Mine", type_="health")
    obj = f"dossier:{dossier.id}"
    tuples_before = set(fga.tuples)
    calls_before = len(fga.write_calls)

    before = fga.check("user:medic", "viewer", obj)
    assert dossiers.emergency_check(dossier.id, "medic") is True
    after = fga.check("user:medic", "viewer", obj)

    assert before is False and after is False
    assert fga.tuples == tuples_before
    assert len(fga.write_calls) == calls_before


def test_emergency_check_respects_block_and_relation(dossiers):
    dossier = dossiers.create(alice, title="Mine", type_="health")
    dossiers.block(alice, dossier.id, "medic")

    assert dossiers.emergency_check(dossier.id, "medic", "viewer") is False
    assert dossiers.emergency_check(dossier.id, "medic", "can_view") is True
    assert dossiers.emergency_check(dossier.id, "medic", "editor") is False

    with pytest.raises(HTTPException) as exc_info:
        dossiers.emergency_check(dossier.id, "medic", "owner")
    assert _status(exc_info) == 400
    with pytest.raises(HTTPException) as exc_info:
        dossiers.emergency_check("missing", "medic")
    assert _status(exc_info) == 404


def test_concurrent_creates_never_report_failure_for_committed_changes(dossiers, store, fga):
    errors = []

    def worker():
        for _ in range(20):
            try:
                dossiers.create(alice, title="Parallel", type_="general")
            except Exception as exc:
                errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(store.data.dossiers) == 160
    assert len([t for t in fga.written() if t.relation == "owner"]) == 160
