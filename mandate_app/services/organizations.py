from __future__ import annotations

import logging
from collections.abc import Iterable

from mandate_app.errors import Conflict, NotFound, ValidationFailed
from mandate_app.fga.client import OpenFGAClient
from mandate_app.fga.tuples import admin_tuple, member_tuple, org_parent_tuple, organization_ref
from mandate_app.security.context import Caller
from mandate_app.services.authz import require_relation
from mandate_app.services.changes import Change, apply_change
from mandate_app.store.domain_store import DomainStore
from mandate_app.store.models import Organization, StoreSnapshot
from mandate_app.sync.rehydrate import organization_tuples

logger = logging.getLogger(__name__)

LAST_ADMIN_ERROR = "Cannot remove the last admin. Add another admin first or delete the organization."


class OrganizationService:
    """
    Organization membership and adminship.

    Mutations are gated by ``can_manage`` on the organization, which the model
    defines as ``admin``: admins manage admins. Invariants kept here:
    admins is a subset of members, and there is always at least one admin.
    """

    def __init__(self, store: DomainStore, client: OpenFGAClient) -> None:
        self._store = store
        self._client = client

    def list_all(self) -> list[Organization]:
        with self._store.read() as data:
            return [org.model_copy(deep=True) for org in data.organizations.values()]

    def create(self, caller: Caller, name: str, members: Iterable[str] = ()) -> Organization:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Name is required")

        creator = caller.user
        member_list = list(dict.fromkeys(m.strip() for m in members if m and m.strip()))
        if creator not in member_list:
            member_list.append(creator)

        def mutate(data: StoreSnapshot) -> Change:
            org = Organization(id=self._store.new_id(), name=name, members=member_list, admins=[creator])
            data.organizations[org.id] = org

            def undo(d: StoreSnapshot) -> None:
                d.organizations.pop(org.id, None)

            return Change(writes=organization_tuples(org), undo=undo, result=org.model_copy(deep=True))

        org = apply_change(self._store, self._client, mutate, description="organization create").result
        logger.info("Organization created id=%s name=%s by=%s", org.id, name, creator)
        return org

    def add_member(self, caller: Caller, org_id: str, member: str) -> None:
        member = _required(member, "member is required")
        self._require_manage(caller, org_id, "organization.add_member", "Forbidden: only admins can manage members")

        def mutate(data: StoreSnapshot) -> Change:
            org = _get(data, org_id)
            if member in org.members:
                raise Conflict("Already a member")
            org.members.append(member)

            def undo(_: StoreSnapshot) -> None:
                org.members = [m for m in org.members if m != member]

            return Change(writes=[member_tuple(member, org_id)], undo=undo)

        apply_change(self._store, self._client, mutate, description="member add")

    def remove_member(self, caller: Caller, org_id: str, member: str) -> None:
        """Removing an admin's membership drops the admin role too, unless they are the last admin."""

        member = _required(member, "member is required")
        self._require_manage(caller, org_id, "organization.remove_member", "Forbidden: only admins can manage members")

        def mutate(data: StoreSnapshot) -> Change:
            org = _get(data, org_id)
            if member not in org.members:
                raise NotFound("Not a member")
            is_admin = member in org.admins
            if is_admin and len(org.admins) == 1:
                raise Conflict(LAST_ADMIN_ERROR)

            previous_members, previous_admins = list(org.members), list(org.admins)
            org.members = [m for m in org.members if m != member]
            deletes = [member_tuple(member, org_id)]
            if is_admin:
                org.admins = [a for a in org.admins if a != member]
                deletes.append(admin_tuple(member, org_id))

            def undo(_: StoreSnapshot) -> None:
                org.members, org.admins = previous_members, previous_admins

            return Change(deletes=deletes, undo=undo)

        apply_change(self._store, self._client, mutate, description="member removal")

    def add_admin(self, caller: Caller, org_id: str, user: str) -> None:
        user = _required(user, "user is required")
        self._require_manage(caller, org_id, "organization.add_admin", "Forbidden: only admins can manage admins")

        def mutate(data: StoreSnapshot) -> Change:
            org = _get(data, org_id)
            if user in org.admins:
                raise Conflict("Already an admin")

            previous_members, previous_admins = list(org.members), list(org.admins)
            writes = [admin_tuple(user, org_id)]
            org.admins.append(user)
            if user not in org.members:
                org.members.append(user)
                writes.append(member_tuple(user, org_id))

            def undo(_: StoreSnapshot) -> None:
                org.members, org.admins = previous_members, previous_admins

            return Change(writes=writes, undo=undo)

        apply_change(self._store, self._client, mutate, description="admin add")

    def remove_admin(self, caller: Caller, org_id: str, user: str) -> None:
        user = _required(user, "user is required")
        self._require_manage(caller, org_id, "organization.remove_admin", "Forbidden: only admins can manage admins")

        def mutate(data: StoreSnapshot) -> Change:
            org = _get(data, org_id)
            if user not in org.admins:
                raise NotFound("Not an admin")
            if len(org.admins) == 1:
                raise Conflict(LAST_ADMIN_ERROR)

            previous_admins = list(org.admins)
            org.admins = [a for a in org.admins if a != user]

            def undo(_: StoreSnapshot) -> None:
                org.admins = previous_admins

            return Change(deletes=[admin_tuple(user, org_id)], undo=undo)

        apply_change(self._store, self._client, mutate, description="admin removal")

    def delete(self, caller: Caller, org_id: str) -> None:
        """
        Delete the organization and detach every dossier that referenced it.

        All member/admin/org_parent tuples go in one write; if it fails the
        organization and the dossier references are restored.
        """

        self._require_manage(caller, org_id, "organization.delete", "Forbidden: only admins can delete organizations")

        def mutate(data: StoreSnapshot) -> Change:
            org = _get(data, org_id)
            affected = [d.id for d in data.dossiers.values() if d.org_id == org_id]
            for dossier_id in affected:
                data.dossiers[dossier_id].org_id = None
            del data.organizations[org_id]

            deletes = organization_tuples(org)
            deletes.extend(org_parent_tuple(org_id, dossier_id) for dossier_id in affected)

            def undo(d: StoreSnapshot) -> None:
                d.organizations[org_id] = org
                for dossier_id in affected:
                    dossier = d.dossiers.get(dossier_id)
                    if dossier is not None and dossier.org_id is None:
                        dossier.org_id = org_id

            return Change(deletes=deletes, undo=undo, result=len(affected))

        detached = apply_change(self._store, self._client, mutate, description="organization delete").result
        logger.info("Organization deleted id=%s by=%s detached_dossiers=%d", org_id, caller.user, detached)

    def _require_manage(self, caller: Caller, org_id: str, action: str, detail: str) -> None:
        with self._store.read() as data:
            _get(data, org_id)
        require_relation(self._client, caller, "can_manage", organization_ref(org_id), action=action, detail=detail)


def _get(data: StoreSnapshot, org_id: str) -> Organization:
    org = data.organizations.get(org_id)
    if org is None:
        raise NotFound("Organization not found")
    return org


def _required(value: str | None, detail: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationFailed(detail)
    return value
