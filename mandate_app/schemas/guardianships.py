from __future__ import annotations

from pydantic import Field

from mandate_app.schemas.common import ApiModel, SubjectId


class GuardianshipRequestIn(ApiModel):
    to: SubjectId = ""


class GuardianshipRequestOut(ApiModel):
    id: str
    from_: str = Field(alias="from")
    to: str
    status: str


class GuardianshipsOut(ApiModel):
    guardians: list[str]
    wards: list[str]
    incoming: list[GuardianshipRequestOut]
    outgoing: list[GuardianshipRequestOut]


class RequestCreatedOut(ApiModel):
    success: bool = True
    id: str


class GuardianshipEntryOut(ApiModel):
    user: str
    guardians: list[str]


class GuardianshipsAllOut(ApiModel):
    guardianships: list[GuardianshipEntryOut]
