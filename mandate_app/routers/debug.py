from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from mandate_app.errors import TupleStoreUnavailable
from mandate_app.fga.client import OpenFGAClient, TupleStoreError
from mandate_app.schemas.common import TupleOut, TuplesOut
from mandate_app.security.context import Caller
from mandate_app.security.dependencies import get_caller, get_tuple_store, require_tuple_store_ready

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/debug", tags=["debug"])


@router.get("/tuples", response_model=TuplesOut, dependencies=[Depends(require_tuple_store_ready)])
def list_tuples(caller: Caller = Depends(get_caller), client: OpenFGAClient = Depends(get_tuple_store)) -> TuplesOut:
    """Dump every tuple in the store. Handy when a check answer looks wrong."""

    try:
        tuples = client.read_tuples()
    except TupleStoreError as exc:
        logger.warning("Tuple dump failed for user=%s: %s", caller.user, exc)
        raise TupleStoreUnavailable(f"Could not read tuples: {exc}") from exc
    return TuplesOut(tuples=[TupleOut(user=t.user, relation=t.relation, object=t.object) for t in tuples])
