from __future__ import annotations

import logging

from mandate_app.errors import Forbidden
from mandate_app.fga.client import OpenFGAClient
from mandate_app.fga.tuples import user_ref
from mandate_app.security.context import Caller

logger = logging.getLogger(__name__)


def manager_admin_bypass(caller: Caller, action: str, resource: str) -> bool:
    """True when the management channel skips the check. Every bypass is logged."""

    if not caller.is_manager_admin:
        return False
    logger.info("Manager-admin channel bypass user=%s action=%s resource=%s", caller.user, action, resource)
    return True


def require_manager_admin(caller: Caller, action: str) -> None:
    if not manager_admin_bypass(caller, action, "*"):
        raise Forbidden("Admin access required")


def require_relation(
    client: OpenFGAClient,
    caller: Caller,
    relation: str,
    object_: str,
    *,
    action: str,
    detail: str,
) -> None:
    """Fail-closed ``check``: any tuple-store error is a 403, same as a deny."""

    if manager_admin_bypass(caller, action, object_):
        return
    if not client.check(user_ref(caller.user), relation, object_):
        raise Forbidden(detail)
