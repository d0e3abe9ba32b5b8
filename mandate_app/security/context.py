from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Caller:
    """
    Per-request subject identity.

    Both fields come from headers set by the upstream proxy, which strips any
    client-supplied copies. Nothing here is verified by this service:

    - ``user``: the authenticated username (``x-current-user``)
    - ``is_manager_admin``: request arrived on the internal management channel
      (``x-manager-admin: true``); bypasses per-object authorization checks.
    """

    user: str
    is_manager_admin: bool = False
