from __future__ import annotations

from mandate_app.schemas.common import ApiModel, SubjectId


class OrganizationCreate(ApiModel):
    name: str = ""
    members: list[SubjectId] = []


class MemberIn(ApiModel):
    member: SubjectId = ""


class AdminIn(ApiModel):
    user: SubjectId = ""


class OrganizationOut(ApiModel):
    id: str
    name: str
    members: list[str]
    admins: list[str]


class OrganizationsOut(ApiModel):
    organizations: list[OrganizationOut]
