from __future__ import annotations

from fastapi import APIRouter, Depends

from mandate_app.schemas.common import SuccessOut
from mandate_app.schemas.dossiers import (
    DossierCreate,
    DossierOut,
    DossiersOut,
    DossierUpdate,
    EmergencyCheckIn,
    EmergencyCheckOut,
    OrgAssign,
    RelationRemove,
    RelationsOut,
    TargetUserIn,
    TogglePublicOut,
)
from mandate_app.security.context import Caller
from mandate_app.security.dependencies import get_caller, get_dossier_service, require_tuple_store_ready
from mandate_app.services.dossiers import DossierService

# Every route here either asks OpenFGA or writes to it.
router = APIRouter(prefix="/api/dossiers", tags=["dossiers"], dependencies=[Depends(require_tuple_store_ready)])


@router.get("", response_model=DossiersOut, response_model_exclude_none=True)
def list_dossiers(
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> DossiersOut:
    views = service.list_visible(caller)
    return DossiersOut(dossiers=[DossierOut.from_dossier(v.dossier, can_edit=v.can_edit) for v in views])


@router.post("", response_model=DossierOut, response_model_exclude_none=True)
def create_dossier(
    body: DossierCreate,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> DossierOut:
    dossier = service.create(
        caller,
        title=body.title,
        content=body.content,
        type_=body.type,
        org_id=body.org_id,
        public=body.public,
    )
    return DossierOut.from_dossier(dossier, can_edit=True)


@router.put("/{id}", response_model=DossierOut, response_model_exclude_none=True)
def update_dossier(
    id: str,
    body: DossierUpdate,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> DossierOut:
    dossier = service.update(caller, id, title=body.title, content=body.content, type_=body.type)
    return DossierOut.from_dossier(dossier)


@router.delete("/{id}", response_model=SuccessOut)
def delete_dossier(
    id: str,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> SuccessOut:
    service.delete(caller, id)
    return SuccessOut()


@router.get("/{id}/relations", response_model=RelationsOut)
def get_relations(
    id: str,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> RelationsOut:
    return RelationsOut.from_relations(service.get_relations(caller, id))


@router.post("/{id}/relations", response_model=SuccessOut)
def add_relation(
    id: str,
    body: TargetUserIn,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> SuccessOut:
    service.add_mandate(caller, id, body.target_user)
    return SuccessOut()


@router.delete("/{id}/relations", response_model=SuccessOut)
def remove_relation(
    id: str,
    body: RelationRemove,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> SuccessOut:
    service.remove_relation(caller, id, body.target_user, body.relation)
    return SuccessOut()


@router.put("/{id}/organization", response_model=DossierOut, response_model_exclude_none=True)
def assign_organization(
    id: str,
    body: OrgAssign,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> DossierOut:
    return DossierOut.from_dossier(service.assign_organization(caller, id, body.org_id))


@router.post("/{id}/toggle-public", response_model=TogglePublicOut)
def toggle_public(
    id: str,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> TogglePublicOut:
    return TogglePublicOut(is_public=service.toggle_public(caller, id))


@router.post("/{id}/block", response_model=SuccessOut)
def block_user(
    id: str,
    body: TargetUserIn,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> SuccessOut:
    service.block(caller, id, body.target_user)
    return SuccessOut()


@router.post("/{id}/unblock", response_model=SuccessOut)
def unblock_user(
    id: str,
    body: TargetUserIn,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> SuccessOut:
    service.unblock(caller, id, body.target_user)
    return SuccessOut()


@router.post("/{id}/emergency-check", response_model=EmergencyCheckOut)
def emergency_check(
    id: str,
    body: EmergencyCheckIn,
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> EmergencyCheckOut:
    # Any authenticated caller may ask; the answer is computed, never granted.
    relation = body.relation or "viewer"
    allowed = service.emergency_check(id, body.user, relation)
    return EmergencyCheckOut(allowed=allowed, user=body.user, relation=relation, dossier=id)
