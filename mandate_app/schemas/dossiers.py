from __future__ import annotations

from pydantic import AliasChoices, Field

from mandate_app.schemas.common import ApiModel, SubjectId
from mandate_app.store.models import MANDATE_RELATION, Dossier, Relation


class DossierCreate(ApiModel):
    title: str = ""
    content: str = ""
    type: str = ""
    org_id: str | None = Field(default=None, alias="orgId")
    public: bool = Field(default=False, validation_alias=AliasChoices("public", "isPublic"))


class DossierUpdate(ApiModel):
    title: str | None = None
    content: str | None = None
    type: str | None = None


class TargetUserIn(ApiModel):
    target_user: SubjectId = Field(default="", alias="targetUser")


class RelationRemove(TargetUserIn):
    relation: str = MANDATE_RELATION


class OrgAssign(ApiModel):
    org_id: str | None = Field(default=None, alias="orgId")


class EmergencyCheckIn(ApiModel):
    user: SubjectId = ""
    relation: str | None = None


class RelationOut(ApiModel):
    user: str
    relation: str


class DossierOut(ApiModel):
    id: str
    title: str
    content: str
    type: str
    owner: str
    relations: list[RelationOut] = Field(default_factory=list)
    org_id: str | None = Field(default=None, alias="orgId")
    is_public: bool = Field(default=False, alias="isPublic")
    blocked_users: list[str] = Field(default_factory=list, alias="blockedUsers")
    can_edit: bool | None = Field(default=None, alias="canEdit")

    @classmethod
    def from_dossier(cls, dossier: Dossier, *, can_edit: bool | None = None) -> DossierOut:
        return cls(
            id=dossier.id,
            title=dossier.title,
            content=dossier.content,
            type=dossier.type,
            owner=dossier.owner,
            relations=[RelationOut(user=r.user, relation=r.relation) for r in dossier.relations],
            org_id=dossier.org_id,
            is_public=dossier.public,
            blocked_users=list(dossier.blocked_users),
            can_edit=can_edit,
        )


class DossiersOut(ApiModel):
    dossiers: list[DossierOut]


class RelationsOut(ApiModel):
    relations: list[RelationOut]

    @classmethod
    def from_relations(cls, relations: list[Relation]) -> RelationsOut:
        return cls(relations=[RelationOut(user=r.user, relation=r.relation) for r in relations])


class TogglePublicOut(ApiModel):
    success: bool = True
    is_public: bool = Field(alias="isPublic")


class EmergencyCheckOut(ApiModel):
    allowed: bool
    user: str
    relation: str
    dossier: str
    contextual: bool = True
