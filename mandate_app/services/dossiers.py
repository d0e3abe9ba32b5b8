from __future__ import annotations

import logging
from dataclasses import dataclass

from mandate_app.errors import Conflict, Forbidden, NotFound, ValidationFailed
from mandate_app.fga.client import OpenFGAClient, TupleStoreError
from mandate_app.fga.tuples import (
    blocked_tuple,
    dossier_ref,
    dossier_relation_tuple,
    emergency_tuple,
    org_parent_tuple,
    owner_tuple,
    public_tuple,
    user_ref,
)
from mandate_app.security.context import Caller
from mandate_app.services.authz import manager_admin_bypass, require_manager_admin, require_relation
from mandate_app.services.changes import Change, apply_change
from mandate_app.store.domain_store import DomainStore
from mandate_app.store.models import DOSSIER_TYPES, MANDATE_RELATION, Dossier, Relation, StoreSnapshot
from mandate_app.sync.rehydrate import dossier_tuples

logger = logging.getLogger(__name__)

EMERGENCY_CHECK_RELATIONS = frozenset({"viewer", "can_view", "editor"})

_TYPE_ERROR = f"Type must be one of: {', '.join(DOSSIER_TYPES)}"


@dataclass(frozen=True)
class DossierView:
    dossier: Dossier
    can_edit: bool


class DossierService:
    """
    Dossier CRUD and per-dossier relation management.

    Authority rules:
    - update / delete / relations / org assignment: ``editor`` (owner or
      mandate holder) or the manager-admin channel
    - toggle public / block / unblock: owner or the manager-admin channel
    """

    def __init__(self, store: DomainStore, client: OpenFGAClient) -> None:
        self._store = store
        self._client = client

    # ---- queries ----

    def list_visible(self, caller: Caller) -> list[DossierView]:
        """Dossiers the caller is a ``viewer`` of. A tuple-store error yields an empty list."""

        objects = self._client.list_objects(user_ref(caller.user), "viewer", "dossier")
        ids = [o.removeprefix("dossier:") for o in objects if o.startswith("dossier:")]

        with self._store.read() as data:
            dossiers = [data.dossiers[i].model_copy(deep=True) for i in ids if i in data.dossiers]

        subject = user_ref(caller.user)
        return [DossierView(d, self._client.check(subject, "editor", dossier_ref(d.id))) for d in dossiers]

    def list_all(self, caller: Caller) -> list[Dossier]:
        require_manager_admin(caller, "dossier.list_all")
        with self._store.read() as data:
            return [d.model_copy(deep=True) for d in data.dossiers.values()]

    def get_relations(self, caller: Caller, dossier_id: str) -> list[Relation]:
        self._require_editor(caller, dossier_id, "dossier.relations", "Not authorized")
        with self._store.read() as data:
            return [r.model_copy() for r in _get(data, dossier_id).relations]

    def emergency_check(self, dossier_id: str, target_user: str, relation: str | None = None) -> bool:
        """
        Would ``target_user`` get ``relation`` if break-glass ``can_view`` were granted?

        The grant is a contextual tuple on a single check; nothing is written.
        """

        target_user = _required(target_user, "user is required")
        relation = relation or "viewer"
        if relation not in EMERGENCY_CHECK_RELATIONS:
            raise ValidationFailed(f"relation must be one of: {', '.join(sorted(EMERGENCY_CHECK_RELATIONS))}")

        with self._store.read() as data:
            _get(data, dossier_id)

        allowed = self._client.check_with_context(
            user_ref(target_user),
            relation,
            dossier_ref(dossier_id),
            [emergency_tuple(target_user, dossier_id)],
        )
        logger.info("Emergency check dossier=%s user=%s relation=%s allowed=%s", dossier_id, target_user, relation, allowed)
        return allowed

    # ---- lifecycle ----

    def create(
        self,
        caller: Caller,
        *,
        title: str,
        content: str = "",
        type_: str,
        org_id: str | None = None,
        public: bool = False,
    ) -> Dossier:
        title = _required(title, "Title is required")
        if type_ not in DOSSIER_TYPES:
            raise ValidationFailed(_TYPE_ERROR)
        org_id = org_id or None

        def mutate(data: StoreSnapshot) -> Change:
            if org_id and org_id not in data.organizations:
                raise NotFound("Organization not found")

            dossier = Dossier(
                id=self._store.new_id(),
                title=title,
                content=content,
                type=type_,
                owner=caller.user,
                org_id=org_id,
                public=public,
            )
            data.dossiers[dossier.id] = dossier

            writes = [owner_tuple(caller.user, dossier.id)]
            if org_id:
                writes.append(org_parent_tuple(org_id, dossier.id))
            if public:
                writes.append(public_tuple(dossier.id))

            def undo(d: StoreSnapshot) -> None:
                d.dossiers.pop(dossier.id, None)

            return Change(writes=writes, undo=undo, result=dossier.model_copy(deep=True))

        change = apply_change(self._store, self._client, mutate, description="dossier create")
        logger.info("Dossier created id=%s owner=%s type=%s", change.result.id, caller.user, type_)
        return change.result

    def update(
        self,
        caller: Caller,
        dossier_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        type_: str | None = None,
    ) -> Dossier:
        if title is not None and not title.strip():
            raise ValidationFailed("Title cannot be empty")
        if type_ is not None and type_ not in DOSSIER_TYPES:
            raise ValidationFailed(_TYPE_ERROR)

        self._require_editor(caller, dossier_id, "dossier.update", "Not authorized to edit this dossier")

        # No authorization-bearing field changes here, so no tuple delta.
        with self._store.write() as data:
            dossier = _get(data, dossier_id)
            if title is not None:
                dossier.title = title.strip()
            if content is not None:
                dossier.content = content
            if type_ is not None:
                dossier.type = type_
            result = dossier.model_copy(deep=True)

        self._store.save()
        return result

    def delete(self, caller: Caller, dossier_id: str) -> None:
        """
        Remove every tuple the dossier accumulated, then the record.

        Tuple cleanup is best-effort: the record goes regardless, and whatever
        the store still holds is pruned by the next rehydration.
        """

        self._require_editor(caller, dossier_id, "dossier.delete", "Not authorized to delete this dossier")

        with self._store.read() as data:
            deletes = dossier_tuples(_get(data, dossier_id))

        try:
            self._client.write(deletes=deletes)
        except TupleStoreError as exc:
            logger.warning("Tuple cleanup failed for dossier=%s; removing record anyway: %s", dossier_id, exc)

        with self._store.write() as data:
            data.dossiers.pop(dossier_id, None)
        self._store.save()
        logger.info("Dossier deleted id=%s by=%s", dossier_id, caller.user)

    # ---- relations ----

    def add_mandate(self, caller: Caller, dossier_id: str, target_user: str) -> None:
        target_user = _required(target_user, "targetUser is required")
        self._require_editor(
            caller, dossier_id, "dossier.add_relation", "Not authorized to manage relations on this dossier"
        )

        def mutate(data: StoreSnapshot) -> Change:
            dossier = _get(data, dossier_id)
            if target_user == dossier.owner:
                raise ValidationFailed("The owner cannot hold a mandate on their own dossier")
            # The management channel may delegate to anyone; end users only within a guardianship.
            if not caller.is_manager_admin and not data.in_guardianship(caller.user, target_user):
                raise ValidationFailed(
                    f"{target_user} is not in a guardianship with you. "
                    "You can only grant mandates to guardians or wards."
                )
            if dossier.has_relation(target_user, MANDATE_RELATION):
                raise Conflict("Mandate already exists")

            rel = Relation(user=target_user, relation=MANDATE_RELATION)
            dossier.relations.append(rel)

            def undo(_: StoreSnapshot) -> None:
                dossier.relations = [r for r in dossier.relations if r is not rel]

            return Change(writes=[dossier_relation_tuple(target_user, MANDATE_RELATION, dossier_id)], undo=undo)

        apply_change(self._store, self._client, mutate, description="mandate grant")
        logger.info("Mandate granted dossier=%s to=%s by=%s", dossier_id, target_user, caller.user)

    def remove_relation(
        self,
        caller: Caller,
        dossier_id: str,
        target_user: str,
        relation: str = MANDATE_RELATION,
    ) -> None:
        target_user = _required(target_user, "targetUser is required")
        relation = relation or MANDATE_RELATION
        self._require_editor(caller, dossier_id, "dossier.remove_relation", "Not authorized")

        def mutate(data: StoreSnapshot) -> Change:
            dossier = _get(data, dossier_id)
            index = next(
                (i for i, r in enumerate(dossier.relations) if r.user == target_user and r.relation == relation),
                None,
            )
            if index is None:
                raise NotFound("Relation not found")
            removed = dossier.relations.pop(index)

            def undo(_: StoreSnapshot) -> None:
                if not dossier.has_relation(removed.user, removed.relation):
                    dossier.relations.insert(min(index, len(dossier.relations)), removed)

            return Change(deletes=[dossier_relation_tuple(target_user, relation, dossier_id)], undo=undo)

        apply_change(self._store, self._client, mutate, description="relation removal")

    def assign_organization(self, caller: Caller, dossier_id: str, org_id: str | None) -> Dossier:
        """Move the dossier under ``org_id`` (or detach it with None), swapping org_parent tuples."""

        org_id = org_id or None
        self._require_editor(caller, dossier_id, "dossier.assign_org", "Not authorized to edit this dossier")

        def mutate(data: StoreSnapshot) -> Change:
            dossier = _get(data, dossier_id)
            if org_id and org_id not in data.organizations:
                raise NotFound("Organization not found")
            previous = dossier.org_id
            if previous == org_id:
                return Change(result=dossier.model_copy(deep=True))

            dossier.org_id = org_id

            def undo(_: StoreSnapshot) -> None:
                dossier.org_id = previous

            return Change(
                writes=[org_parent_tuple(org_id, dossier_id)] if org_id else [],
                deletes=[org_parent_tuple(previous, dossier_id)] if previous else [],
                undo=undo,
                result=dossier.model_copy(deep=True),
            )

        return apply_change(self._store, self._client, mutate, description="organization assignment").result

    def toggle_public(self, caller: Caller, dossier_id: str) -> bool:
        def mutate(data: StoreSnapshot) -> Change:
            dossier = _get(data, dossier_id)
            _require_owner(caller, dossier, "dossier.toggle_public", "Only the owner can toggle public status")

            was_public = dossier.public
            dossier.public = not was_public
            wildcard = public_tuple(dossier_id)

            def undo(_: StoreSnapshot) -> None:
                dossier.public = was_public

            if was_public:
                return Change(deletes=[wildcard], undo=undo, result=False)
            return Change(writes=[wildcard], undo=undo, result=True)

        return apply_change(self._store, self._client, mutate, description="public toggle").result

    def block(self, caller: Caller, dossier_id: str, target_user: str) -> None:
        target_user = _required(target_user, "targetUser is required")

        def mutate(data: StoreSnapshot) -> Change:
            dossier = _get(data, dossier_id)
            _require_owner(caller, dossier, "dossier.block", "Only the owner can block users")
            if target_user == dossier.owner:
                raise ValidationFailed("The owner cannot be blocked")
            if target_user in dossier.blocked_users:
                raise Conflict("User already blocked")

            previous = list(dossier.blocked_users)
            dossier.blocked_users.append(target_user)

            def undo(_: StoreSnapshot) -> None:
                dossier.blocked_users = previous

            return Change(writes=[blocked_tuple(target_user, dossier_id)], undo=undo)

        apply_change(self._store, self._client, mutate, description="block")
        logger.info("User blocked dossier=%s user=%s", dossier_id, target_user)

    def unblock(self, caller: Caller, dossier_id: str, target_user: str) -> None:
        target_user = _required(target_user, "targetUser is required")

        def mutate(data: StoreSnapshot) -> Change:
            dossier = _get(data, dossier_id)
            _require_owner(caller, dossier, "dossier.unblock", "Only the owner can unblock users")
            if target_user not in dossier.blocked_users:
                raise NotFound("User is not blocked")

            previous = list(dossier.blocked_users)
            dossier.blocked_users = [b for b in previous if b != target_user]

            def undo(_: StoreSnapshot) -> None:
                dossier.blocked_users = previous

            return Change(deletes=[blocked_tuple(target_user, dossier_id)], undo=undo)

        apply_change(self._store, self._client, mutate, description="unblock")

    # ---- helpers ----

    def _require_editor(self, caller: Caller, dossier_id: str, action: str, detail: str) -> None:
        with self._store.read() as data:
            _get(data, dossier_id)
        require_relation(self._client, caller, "editor", dossier_ref(dossier_id), action=action, detail=detail)


def _get(data: StoreSnapshot, dossier_id: str) -> Dossier:
    dossier = data.dossiers.get(dossier_id)
    if dossier is None:
        raise NotFound("Dossier not found")
    return dossier


def _require_owner(caller: Caller, dossier: Dossier, action: str, detail: str) -> None:
    if dossier.owner == caller.user:
        return
    if not manager_admin_bypass(caller, action, dossier_ref(dossier.id)):
        raise Forbidden(detail)


def _required(value: str | None, detail: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationFailed(detail)
    return value
