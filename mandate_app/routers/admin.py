from __future__ import annotations

from fastapi import APIRouter, Depends

from mandate_app.schemas.common import UsersOut
from mandate_app.schemas.dossiers import DossierOut, DossiersOut
from mandate_app.schemas.guardianships import GuardianshipEntryOut, GuardianshipsAllOut
from mandate_app.security.context import Caller
from mandate_app.security.dependencies import (
    get_caller,
    get_domain_store,
    get_dossier_service,
    get_guardianship_service,
)
from mandate_app.services.authz import require_manager_admin
from mandate_app.services.dossiers import DossierService
from mandate_app.services.guardianships import GuardianshipService
from mandate_app.store.domain_store import DomainStore

# Management-channel listings; each handler requires the trusted admin header.
router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users", response_model=UsersOut)
def list_users(caller: Caller = Depends(get_caller), store: DomainStore = Depends(get_domain_store)) -> UsersOut:
    require_manager_admin(caller, "admin.list_users")
    return UsersOut(users=store.collect_users())


@router.get("/dossiers", response_model=DossiersOut, response_model_exclude_none=True)
def list_all_dossiers(
    caller: Caller = Depends(get_caller),
    service: DossierService = Depends(get_dossier_service),
) -> DossiersOut:
    return DossiersOut(dossiers=[DossierOut.from_dossier(d) for d in service.list_all(caller)])


@router.get("/guardianships", response_model=GuardianshipsAllOut)
def list_all_guardianships(
    caller: Caller = Depends(get_caller),
    service: GuardianshipService = Depends(get_guardianship_service),
) -> GuardianshipsAllOut:
    entries = service.list_all(caller)
    return GuardianshipsAllOut(
        guardianships=[GuardianshipEntryOut(user=ward, guardians=gs) for ward, gs in sorted(entries.items())]
    )
