from __future__ import annotations

from fastapi import APIRouter, Depends

from mandate_app.schemas.common import SuccessOut
from mandate_app.schemas.organizations import (
    AdminIn,
    MemberIn,
    OrganizationCreate,
    OrganizationOut,
    OrganizationsOut,
)
from mandate_app.security.context import Caller
from mandate_app.security.dependencies import get_caller, get_organization_service, require_tuple_store_ready
from mandate_app.services.organizations import OrganizationService
from mandate_app.store.models import Organization

router = APIRouter(prefix="/api/organizations", tags=["organizations"])

_ready = [Depends(require_tuple_store_ready)]


def _org_out(org: Organization) -> OrganizationOut:
    return OrganizationOut(id=org.id, name=org.name, members=list(org.members), admins=list(org.admins))


@router.get("", response_model=OrganizationsOut)
def list_organizations(
    caller: Caller = Depends(get_caller),
    service: OrganizationService = Depends(get_organization_service),
) -> OrganizationsOut:
    return OrganizationsOut(organizations=[_org_out(org) for org in service.list_all()])


@router.post("", response_model=OrganizationOut, dependencies=_ready)
def create_organization(
    body: OrganizationCreate,
    caller: Caller = Depends(get_caller),
    service: OrganizationService = Depends(get_organization_service),
) -> OrganizationOut:
    return _org_out(service.create(caller, body.name, body.members))


@router.post("/{id}/members", response_model=SuccessOut, dependencies=_ready)
def add_member(
    id: str,
    body: MemberIn,
    caller: Caller = Depends(get_caller),
    service: OrganizationService = Depends(get_organization_service),
) -> SuccessOut:
    service.add_member(caller, id, body.member)
    return SuccessOut()


@router.delete("/{id}/members", response_model=SuccessOut, dependencies=_ready)
def remove_member(
    id: str,
    body: MemberIn,
    caller: Caller = Depends(get_caller),
    service: OrganizationService = Depends(get_organization_service),
) -> SuccessOut:
    service.remove_member(caller, id, body.member)
    return SuccessOut()


@router.post("/{id}/admins", response_model=SuccessOut, dependencies=_ready)
def add_admin(
    id: str,
    body: AdminIn,
    caller: Caller = Depends(get_caller),
    service: OrganizationService = Depends(get_organization_service),
) -> SuccessOut:
    service.add_admin(caller, id, body.user)
    return SuccessOut()


@router.delete("/{id}/admins", response_model=SuccessOut, dependencies=_ready)
def remove_admin(
    id: str,
    body: AdminIn,
    caller: Caller = Depends(get_caller),
    service: OrganizationService = Depends(get_organization_service),
) -> SuccessOut:
    service.remove_admin(caller, id, body.user)
    return SuccessOut()


@router.delete("/{id}", response_model=SuccessOut, dependencies=_ready)
def delete_organization(
    id: str,
    caller: Caller = Depends(get_caller),
    service: OrganizationService = Depends(get_organization_service),
) -> SuccessOut:
    service.delete(caller, id)
    return SuccessOut()
