from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DossierType = Literal["tax", "health", "general"]
DOSSIER_TYPES: tuple[str, ...] = ("tax", "health", "general")

RequestStatus = Literal["pending", "accepted", "denied"]

MANDATE_RELATION = "mandate_holder"


class _Record(BaseModel):
    # Persisted with camelCase keys; populate_by_name lets code use snake_case.
    model_config = ConfigDict(populate_by_name=True)


class Relation(_Record):
    user: str
    relation: str


class Dossier(_Record):
    id: str
    title: str
    content: str = ""
    type: DossierType
    owner: str
    relations: list[Relation] = Field(default_factory=list)
    org_id: str | None = Field(default=None, alias="orgId")
    public: bool = False
    blocked_users: list[str] = Field(default_factory=list, alias="blockedUsers")

    def has_relation(self, user: str, relation: str) -> bool:
        return any(r.user == user and r.relation == relation for r in self.relations)


class Organization(_Record):
    id: str
    name: str
    members: list[str] = Field(default_factory=list)
    admins: list[str] = Field(default_factory=list)


class GuardianshipRequest(_Record):
    id: str
    from_: str = Field(alias="from")
    to: str
    status: RequestStatus = "pending"

    def involves(self, a: str, b: str) -> bool:
        return {self.from_, self.to} == {a, b}


class StoreSnapshot(_Record):
    """Everything the service persists, in the on-disk JSON layout."""

    dossiers: dict[str, Dossier] = Field(default_factory=dict)
    guardianship_requests: list[GuardianshipRequest] = Field(default_factory=list, alias="guardianshipRequests")
    # ward -> guardians of that ward
    guardianships: dict[str, list[str]] = Field(default_factory=dict)
    organizations: dict[str, Organization] = Field(default_factory=dict)

    def guardians_of(self, user: str) -> list[str]:
        return self.guardianships.get(user, [])

    def in_guardianship(self, a: str, b: str) -> bool:
        """True when either subject guards the other."""
        return b in self.guardians_of(a) or a in self.guardians_of(b)
