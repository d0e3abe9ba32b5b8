from __future__ import annotations

from fastapi import APIRouter, Depends

from mandate_app.schemas.common import SuccessOut
from mandate_app.schemas.guardianships import (
    GuardianshipRequestIn,
    GuardianshipRequestOut,
    GuardianshipsOut,
    RequestCreatedOut,
)
from mandate_app.security.context import Caller
from mandate_app.security.dependencies import get_caller, get_guardianship_service, require_tuple_store_ready
from mandate_app.services.guardianships import GuardianshipService
from mandate_app.store.models import GuardianshipRequest

router = APIRouter(prefix="/api/guardianships", tags=["guardianships"])


def _request_out(req: GuardianshipRequest) -> GuardianshipRequestOut:
    return GuardianshipRequestOut(id=req.id, from_=req.from_, to=req.to, status=req.status)


@router.get("", response_model=GuardianshipsOut)
def list_guardianships(
    caller: Caller = Depends(get_caller),
    service: GuardianshipService = Depends(get_guardianship_service),
) -> GuardianshipsOut:
    overview = service.overview(caller)
    return GuardianshipsOut(
        guardians=overview.guardians,
        wards=overview.wards,
        incoming=[_request_out(r) for r in overview.incoming],
        outgoing=[_request_out(r) for r in overview.outgoing],
    )


@router.post("/request", response_model=RequestCreatedOut, dependencies=[Depends(require_tuple_store_ready)])
def request_guardianship(
    body: GuardianshipRequestIn,
    caller: Caller = Depends(get_caller),
    service: GuardianshipService = Depends(get_guardianship_service),
) -> RequestCreatedOut:
    return RequestCreatedOut(id=service.request(caller, body.to).id)


@router.post("/{request_id}/accept", response_model=SuccessOut, dependencies=[Depends(require_tuple_store_ready)])
def accept_request(
    request_id: str,
    caller: Caller = Depends(get_caller),
    service: GuardianshipService = Depends(get_guardianship_service),
) -> SuccessOut:
    service.accept(caller, request_id)
    return SuccessOut()


@router.post("/{request_id}/deny", response_model=SuccessOut, dependencies=[Depends(require_tuple_store_ready)])
def deny_request(
    request_id: str,
    caller: Caller = Depends(get_caller),
    service: GuardianshipService = Depends(get_guardianship_service),
) -> SuccessOut:
    service.deny(caller, request_id)
    return SuccessOut()


@router.delete("/{user_id}", response_model=SuccessOut, dependencies=[Depends(require_tuple_store_ready)])
def remove_guardianship(
    user_id: str,
    caller: Caller = Depends(get_caller),
    service: GuardianshipService = Depends(get_guardianship_service),
) -> SuccessOut:
    service.remove(caller, user_id)
    return SuccessOut()
