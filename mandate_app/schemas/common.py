from __future__ import annotations

from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

# Subject ids become the ``id`` half of ``user:{id}``; these characters would change the tuple's meaning.
_RESERVED = frozenset(" \t\r\n:#*")


def check_subject_id(value: str) -> str:
    value = value.strip()
    if any(ch in _RESERVED for ch in value):
        raise ValueError("subject ids may not contain whitespace, ':', '#' or '*'")
    return value


# Empty is allowed through; the services report missing values as 400.
SubjectId = Annotated[str, AfterValidator(check_subject_id)]


class ApiModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(populate_by_name=True)


class SuccessOut(ApiModel):
    success: bool = True


class TupleOut(ApiModel):
    user: str
    relation: str
    object: str


class TuplesOut(ApiModel):
    tuples: list[TupleOut]


class UsersOut(ApiModel):
    users: list[str]


class HealthOut(ApiModel):
    status: str
    service: str
    uptime: float
    fga_ready: bool = Field(alias="fgaReady")
