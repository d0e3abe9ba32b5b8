"""
Thin OpenFGA HTTP client.

Background for newcomers:
    OpenFGA stores relationship tuples (``user:bob guardian user:alice``) and
    evaluates checks against an authorization model. This service never walks
    the graph itself: every "may U do R on O" question is a ``/check`` call,
    and every change to an authorization-bearing field is a ``/write`` call.

Failure policy:
    - ``write`` raises ``TupleStoreError`` so callers can roll back.
    - ``check`` / ``check_with_context`` fail closed (``False``).
    - ``list_objects`` returns ``[]`` on error, which callers treat like "no access".
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

import requests

from .audit import AuditDispatcher, AuditRecord
from .tuples import TupleKey

logger = logging.getLogger(__name__)

READ_PAGE_SIZE = 100

# OpenFGA rejects a whole write when one tuple already exists (or, for deletes,
# is already gone). Both are benign outcomes of concurrent requests.
_BENIGN_WRITE_MARKERS = ("already exist", "did not exist", "does not exist")


class TupleStoreError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class DuplicateTupleError(TupleStoreError):
    """Write rejected because a tuple already existed or a delete target was missing."""


class OpenFGAClient:
    def __init__(self, api_url: str, *, audit: AuditDispatcher | None = None, timeout: float = 10.0) -> None:
        self._api_url = api_url.rstrip("/")
        self._audit_dispatcher = audit
        self._timeout = timeout
        self.store_id: str | None = None
        self.model_id: str | None = None

    # ---- binding / bootstrap ----

    def bind(self, store_id: str, model_id: str) -> None:
        self.store_id = store_id
        self.model_id = model_id
        logger.info("OpenFGA client bound store=%s model=%s", store_id, model_id)

    @property
    def is_bound(self) -> bool:
        return bool(self.store_id and self.model_id)

    def health(self) -> bool:
        try:
            resp = requests.get(f"{self._api_url}/healthz", timeout=self._timeout)
        except requests.RequestException:
            return False
        return resp.status_code == 200

    def find_or_create_store(self, name: str) -> str:
        listing = self._get("/stores")
        for entry in listing.get("stores") or []:
            if entry.get("name") == name:
                logger.info("Found existing OpenFGA store name=%s id=%s", name, entry.get("id"))
                return str(entry["id"])

        created = self._post("/stores", {"name": name})
        store_id = created.get("id")
        if not store_id:
            raise TupleStoreError("No id in OpenFGA create-store response")
        logger.info("Created OpenFGA store name=%s id=%s", name, store_id)
        return str(store_id)

    def write_authorization_model(self, store_id: str, model: dict[str, Any]) -> str:
        created = self._post(f"/stores/{store_id}/authorization-models", model)
        model_id = created.get("authorization_model_id")
        if not model_id:
            raise TupleStoreError("No authorization_model_id in OpenFGA response")
        return str(model_id)

    # ---- tuples ----

    def write(self, writes: Iterable[TupleKey] = (), deletes: Iterable[TupleKey] = ()) -> None:
        writes, deletes = list(writes), list(deletes)
        if not writes and not deletes:
            return

        try:
            self._write_batch(writes, deletes)
        except DuplicateTupleError as exc:
            logger.info("Tuple batch hit a benign conflict (%s); replaying one by one", exc)
            self._write_each(writes, deletes)
            return

        self._audit_writes(writes, deletes)

    def read_tuples(self) -> list[TupleKey]:
        """All tuples in the store, following continuation tokens."""

        out: list[TupleKey] = []
        token = ""
        path = self._store_path("/read")
        while True:
            body: dict[str, Any] = {"page_size": READ_PAGE_SIZE}
            if token:
                body["continuation_token"] = token
            result = self._post(path, body)
            for entry in result.get("tuples") or []:
                key = entry.get("key")
                if key:
                    out.append(TupleKey.from_dict(key))
            token = result.get("continuation_token") or ""
            if not token:
                return out

    # ---- queries ----

    def check(self, user: str, relation: str, object_: str) -> bool:
        return self._check(user, relation, object_, ())

    def check_with_context(
        self,
        user: str,
        relation: str,
        object_: str,
        contextual_tuples: Sequence[TupleKey],
    ) -> bool:
        """Check as if ``contextual_tuples`` existed; they are not persisted."""
        return self._check(user, relation, object_, contextual_tuples)

    def list_objects(self, user: str, relation: str, type_name: str) -> list[str]:
        resource = f"{type_name}:*"
        try:
            body = {
                "user": user,
                "relation": relation,
                "type": type_name,
                "authorization_model_id": self.model_id,
            }
            result = self._post(self._store_path("/list-objects"), body)
        except TupleStoreError as exc:
            logger.warning("list-objects failed user=%s relation=%s type=%s: %s", user, relation, type_name, exc)
            self._audit("deny", user, relation, resource, "LIST", f"Error: {exc}")
            return []

        objects = [o for o in result.get("objects") or [] if isinstance(o, str)]
        self._audit("allow", user, relation, resource, "LIST", f"Listed {len(objects)} {type_name} objects")
        return objects

    # ---- internals ----

    def _check(self, user: str, relation: str, object_: str, contextual: Sequence[TupleKey]) -> bool:
        body: dict[str, Any] = {
            "tuple_key": TupleKey(user, relation, object_).to_dict(),
            "authorization_model_id": self.model_id,
        }
        if contextual:
            body["contextual_tuples"] = {"tuple_keys": [t.to_dict() for t in contextual]}

        try:
            result = self._post(self._store_path("/check"), body)
        except TupleStoreError as exc:
            logger.warning("check failed closed user=%s relation=%s object=%s: %s", user, relation, object_, exc)
            self._audit("deny", user, relation, object_, "CHECK", f"Error: {exc}")
            return False

        allowed = result.get("allowed") is True
        if allowed:
            decision, reason = "allow", f"{user} has {relation} on {object_}"
        else:
            decision, reason = "deny", f"{user} does not have {relation} on {object_}"
        if contextual:
            reason += " (contextual)"
        logger.debug("check %s user=%s relation=%s object=%s", decision, user, relation, object_)
        self._audit(decision, user, relation, object_, "CHECK", reason)
        return allowed

    def _write_batch(self, writes: list[TupleKey], deletes: list[TupleKey]) -> None:
        body: dict[str, Any] = {"authorization_model_id": self.model_id}
        if writes:
            body["writes"] = {"tuple_keys": [t.to_dict() for t in writes]}
        if deletes:
            body["deletes"] = {"tuple_keys": [t.to_dict() for t in deletes]}
        self._post(self._store_path("/write"), body)

    def _write_each(self, writes: list[TupleKey], deletes: list[TupleKey]) -> None:
        applied_writes: list[TupleKey] = []
        applied_deletes: list[TupleKey] = []
        try:
            for t in writes:
                try:
                    self._write_batch([t], [])
                    applied_writes.append(t)
                except DuplicateTupleError:
                    logger.info("Tuple already present: %s", t)
            for t in deletes:
                try:
                    self._write_batch([], [t])
                    applied_deletes.append(t)
                except DuplicateTupleError:
                    logger.info("Tuple already absent: %s", t)
        except TupleStoreError:
            self._audit_writes(applied_writes, applied_deletes)
            self._revert(applied_writes, applied_deletes)
            raise
        self._audit_writes(applied_writes, applied_deletes)

    def _revert(self, applied_writes: list[TupleKey], applied_deletes: list[TupleKey]) -> None:
        """Best-effort undo of a partially replayed batch; leftovers are reconciled by rehydration."""

        reverted_writes: list[TupleKey] = []
        reverted_deletes: list[TupleKey] = []
        for t in applied_writes:
            try:
                self._write_batch([], [t])
                reverted_writes.append(t)
            except TupleStoreError as exc:
                logger.error("Could not revert written tuple %s: %s", t, exc)
        for t in applied_deletes:
            try:
                self._write_batch([t], [])
                reverted_deletes.append(t)
            except TupleStoreError as exc:
                logger.error("Could not restore deleted tuple %s: %s", t, exc)
        self._audit_writes(reverted_deletes, reverted_writes)

    def _audit_writes(self, writes: list[TupleKey], deletes: list[TupleKey]) -> None:
        for t in writes:
            self._audit("write", t.user, t.relation, t.object, "WRITE", f"Tuple added: {t}")
        for t in deletes:
            self._audit("delete", t.user, t.relation, t.object, "WRITE", f"Tuple deleted: {t}")

    def _audit(self, decision: str, user: str, relation: str, resource: str, method: str, reason: str) -> None:
        if self._audit_dispatcher is None:
            return
        self._audit_dispatcher.emit(
            AuditRecord(
                source="OpenFGA",
                decision=decision,
                user=user,
                relation=relation,
                resource=resource,
                method=method,
                reason=reason,
            )
        )

    def _store_path(self, suffix: str) -> str:
        if not self.is_bound:
            raise TupleStoreError("OpenFGA store/model not configured")
        return f"/stores/{self.store_id}{suffix}"

    def _get(self, path: str) -> dict[str, Any]:
        try:
            resp = requests.get(f"{self._api_url}{path}", timeout=self._timeout)
        except requests.RequestException as exc:
            raise TupleStoreError(f"OpenFGA request failed: {type(exc).__name__}") from exc
        return _decode(resp)

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = requests.post(f"{self._api_url}{path}", json=body, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TupleStoreError(f"OpenFGA request failed: {type(exc).__name__}") from exc
        return _decode(resp)


def _decode(resp: requests.Response) -> dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError as exc:
        raise TupleStoreError("Failed to decode OpenFGA response", status_code=resp.status_code) from exc
    if not isinstance(payload, dict):
        raise TupleStoreError("Unexpected OpenFGA response shape", status_code=resp.status_code)

    if resp.status_code >= 400:
        message = str(payload.get("message") or f"OpenFGA returned status={resp.status_code}")
        code = payload.get("code")
        if resp.status_code == 400 and any(marker in message for marker in _BENIGN_WRITE_MARKERS):
            raise DuplicateTupleError(message, status_code=resp.status_code, code=code)
        raise TupleStoreError(message, status_code=resp.status_code, code=code)
    return payload
