from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class TypeDefinition(BaseModel):
    type: str
    relations: dict[str, dict[str, Any]] = Field(default_factory=dict)
    metadata: dict[str, Any] | None = None


class AuthorizationModel(BaseModel):
    """OpenFGA authorization model in its JSON (API) form."""

    schema_version: str = "1.1"
    type_definitions: list[TypeDefinition]

    def relations_of(self, type_name: str) -> frozenset[str]:
        for definition in self.type_definitions:
            if definition.type == type_name:
                return frozenset(definition.relations)
        return frozenset()

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def load_authorization_model(path: Path) -> AuthorizationModel:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "authorization_model" not in raw:
        raise ValueError(f"Missing top-level 'authorization_model' key in model file: {path}")

    return AuthorizationModel.model_validate(raw["authorization_model"])
