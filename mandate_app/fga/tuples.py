"""Tuple keys and the builders that map domain fields onto them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

WILDCARD_USER = "user:*"


@dataclass(frozen=True)
class TupleKey:
    user: str
    relation: str
    object: str

    def to_dict(self) -> dict[str, str]:
        return {"user": self.user, "relation": self.relation, "object": self.object}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TupleKey:
        return cls(user=str(raw["user"]), relation=str(raw["relation"]), object=str(raw["object"]))

    def __str__(self) -> str:
        return f"{self.user} {self.relation} {self.object}"


def user_ref(user_id: str) -> str:
    return f"user:{user_id}"


def dossier_ref(dossier_id: str) -> str:
    return f"dossier:{dossier_id}"


def organization_ref(org_id: str) -> str:
    return f"organization:{org_id}"


def owner_tuple(owner: str, dossier_id: str) -> TupleKey:
    return TupleKey(user_ref(owner), "owner", dossier_ref(dossier_id))


def dossier_relation_tuple(user: str, relation: str, dossier_id: str) -> TupleKey:
    return TupleKey(user_ref(user), relation, dossier_ref(dossier_id))


def org_parent_tuple(org_id: str, dossier_id: str) -> TupleKey:
    return TupleKey(organization_ref(org_id), "org_parent", dossier_ref(dossier_id))


def public_tuple(dossier_id: str) -> TupleKey:
    return TupleKey(WILDCARD_USER, "public", dossier_ref(dossier_id))


def blocked_tuple(user: str, dossier_id: str) -> TupleKey:
    return TupleKey(user_ref(user), "blocked", dossier_ref(dossier_id))


def emergency_tuple(user: str, dossier_id: str) -> TupleKey:
    """Contextual only; never written."""
    return TupleKey(user_ref(user), "can_view", dossier_ref(dossier_id))


def guardian_tuple(guardian: str, ward: str) -> TupleKey:
    return TupleKey(user_ref(guardian), "guardian", user_ref(ward))


def member_tuple(user: str, org_id: str) -> TupleKey:
    return TupleKey(user_ref(user), "member", organization_ref(org_id))


def admin_tuple(user: str, org_id: str) -> TupleKey:
    return TupleKey(user_ref(user), "admin", organization_ref(org_id))
