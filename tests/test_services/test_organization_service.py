"""Tests for organization membership and adminship."""

import pytest
from fastapi import HTTPException

from mandate_app.errors import SyncFailed
from mandate_app.fga.tuples import admin_tuple, member_tuple, org_parent_tuple
from mandate_app.security.context import Caller

alice = Caller("alice")
bob = Caller("bob")
carol = Caller("carol")
ops = Caller("ops", is_manager_admin=True)


def _assert_org_invariants(store):
    for org in store.data.organizations.values():
        assert set(org.admins) <= set(org.members)
        assert len(org.admins) >= 1


def test_create_adds_creator_and_writes_one_batch(organizations, fga):
    org = organizations.create(alice, "Acme", members=["bob", "bob", " ", "carol"])

    assert org.members == ["bob", "carol", "alice"]
    assert org.admins == ["alice"]
    assert fga.write_calls == [
        (
            [
                member_tuple("bob", org.id),
                member_tuple("carol", org.id),
                member_tuple("alice", org.id),
                admin_tuple("alice", org.id),
            ],
            [],
        )
    ]


def test_create_requires_name(organizations):
    with pytest.raises(HTTPException) as exc_info:
        organizations.create(alice, "  ")
    assert exc_info.value.status_code == 400


def test_create_rolls_back_on_write_failure(organizations, fga, store):
    fga.fail_writes = True
    with pytest.raises(SyncFailed):
        organizations.create(alice, "Acme")
    assert store.data.organizations == {}


def test_mutations_check_existence_then_can_manage(organizations):
    org = organizations.create(alice, "Acme", members=["bob"])

    with pytest.raises(HTTPException) as exc_info:
        organizations.add_member(bob, "missing", "carol")
    assert exc_info.value.status_code == 404

    for call in (
        lambda: organizations.add_member(bob, org.id, "carol"),
        lambda: organizations.remove_member(bob, org.id, "alice"),
        lambda: organizations.add_admin(bob, org.id, "bob"),
        lambda: organizations.remove_admin(bob, org.id, "alice"),
        lambda: organizations.delete(bob, org.id),
    ):
        with pytest.raises(HTTPException) as exc_info:
            call()
        assert exc_info.value.status_code == 403


def test_add_member(organizations, fga, store):
    org = organizations.create(alice, "Acme")
    organizations.add_member(alice, org.id, "bob")

    assert store.data.organizations[org.id].members == ["alice", "bob"]
    assert member_tuple("bob", org.id) in fga.tuples

    with pytest.raises(HTTPException) as exc_info:
        organizations.add_member(alice, org.id, "bob")
    assert exc_info.value.status_code == 409


def test_add_member_rolls_back(organizations, fga, store):
    org = organizations.create(alice, "Acme")
    fga.fail_writes = True
    with pytest.raises(SyncFailed):
        organizations.add_member(alice, org.id, "bob")
    assert store.data.organizations[org.id].members == ["alice"]


def test_remove_member_cascades_admin_role(organizations, fga, store):
    org = organizations.create(alice, "Acme", members=["bob"])
    organizations.add_admin(alice, org.id, "bob")

    organizations.remove_member(alice, org.id, "bob")

    saved = store.data.organizations[org.id]
    assert "bob" not in saved.members and "bob" not in saved.admins
    assert member_tuple("bob", org.id) not in fga.tuples
    assert admin_tuple("bob", org.id) not in fga.tuples
    _assert_org_invariants(store)


def test_remove_member_guards(organizations, store):
    org = organizations.create(alice, "Acme")

    with pytest.raises(HTTPException) as exc_info:
        organizations.remove_member(alice, org.id, "bob")
    assert exc_info.value.status_code == 404

    with pytest.raises(HTTPException) as exc_info:
        organizations.remove_member(alice, org.id, "alice")
    assert exc_info.value.status_code == 409
    _assert_org_invariants(store)


def test_add_admin_adds_membership_in_one_batch(organizations, fga, store):
    org = organizations.create(alice, "Acme")
    fga.write_calls.clear()

    organizations.add_admin(alice, org.id, "carol")

    assert fga.write_calls == [([admin_tuple("carol", org.id), member_tuple("carol", org.id)], [])]
    saved = store.data.organizations[org.id]
    assert saved.admins == ["alice", "carol"]
    assert saved.members == ["alice", "carol"]

    with pytest.raises(HTTPException) as exc_info:
        organizations.add_admin(alice, org.id, "carol")
    assert exc_info.value.status_code == 409


def test_new_admin_can_manage(organizations):
    org = organizations.create(alice, "Acme")
    organizations.add_admin(alice, org.id, "bob")
    organizations.add_member(bob, org.id, "carol")


def test_remove_admin_keeps_membership(organizations, fga, store):
    org = organizations.create(alice, "Acme")
    organizations.add_admin(alice, org.id, "bob")

    organizations.remove_admin(bob, org.id, "alice")

    saved = store.data.organizations[org.id]
    assert saved.admins == ["bob"]
    assert "alice" in saved.members
    assert member_tuple("alice", org.id) in fga.tuples
    assert admin_tuple("alice", org.id) not in fga.tuples


def test_remove_admin_guards(organizations):
    org = organizations.create(alice, "Acme", members=["bob"])

    with pytest.raises(HTTPException) as exc_info:
        organizations.remove_admin(alice, org.id, "bob")
    assert exc_info.value.status_code == 404

    with pytest.raises(HTTPException) as exc_info:
        organizations.remove_admin(alice, org.id, "alice")
    assert exc_info.value.status_code == 409
    assert "last admin" in exc_info.value.detail


def test_delete_cascades_to_dossiers(organizations, dossiers, fga, store):
    org = organizations.create(alice, "Acme", members=["bob"])
    d1 = dossiers.create(alice, title="Shared", type_="general", org_id=org.id)

    organizations.delete(alice, org.id)

    assert org.id not in store.data.organizations
    assert store.data.dossiers[d1.id].org_id is None
    assert org_parent_tuple(org.id, d1.id) not in fga.tuples
    assert not [t for t in fga.tuples if t.object == f"organization:{org.id}"]
    assert not fga.check("user:bob", "viewer", f"dossier:{d1.id}")


def test_delete_restores_everything_on_write_failure(organizations, dossiers, fga, store):
    org = organizations.create(alice, "Acme", members=["bob"])
    d1 = dossiers.create(alice, title="Shared", type_="general", org_id=org.id)
    fga.fail_writes = True

    with pytest.raises(SyncFailed):
        organizations.delete(alice, org.id)

    assert store.data.organizations[org.id].members == ["bob", "alice"]
    assert store.data.dossiers[d1.id].org_id == org.id


def test_admin_channel_bypasses_can_manage(organizations, store):
    org = organizations.create(alice, "Acme")
    organizations.add_member(ops, org.id, "bob")
    assert store.data.organizations[org.id].members == ["alice", "bob"]


def test_list_returns_copies(organizations, store):
    org = organizations.create(alice, "Acme")
    listed = organizations.list_all()
    listed[0].members.append("mallory")
    assert store.data.organizations[org.id].members == ["alice"]
