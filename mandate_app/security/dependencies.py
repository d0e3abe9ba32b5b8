from __future__ import annotations

import logging

from fastapi import Depends, Request

from mandate_app.errors import AuthenticationRequired, TupleStoreUnavailable, ValidationFailed
from mandate_app.fga.client import OpenFGAClient
from mandate_app.schemas.common import check_subject_id
from mandate_app.security.context import Caller
from mandate_app.services.dossiers import DossierService
from mandate_app.services.guardianships import GuardianshipService
from mandate_app.services.organizations import OrganizationService
from mandate_app.settings import Settings
from mandate_app.store.domain_store import DomainStore
from mandate_app.sync.startup import TupleStoreStartup

logger = logging.getLogger(__name__)


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"app.state.{name} not set. Did app startup run?")
    return value


def get_app_settings(request: Request) -> Settings:
    return _state(request, "settings")


def get_domain_store(request: Request) -> DomainStore:
    return _state(request, "store")


def get_tuple_store(request: Request) -> OpenFGAClient:
    return _state(request, "tuple_store")


def get_dossier_service(request: Request) -> DossierService:
    return _state(request, "dossier_service")


def get_guardianship_service(request: Request) -> GuardianshipService:
    return _state(request, "guardianship_service")


def get_organization_service(request: Request) -> OrganizationService:
    return _state(request, "organization_service")


def get_caller(request: Request, settings: Settings = Depends(get_app_settings)) -> Caller:
    """
    Resolve the subject from proxy-asserted headers.

    The manager-admin header is only honoured when the deployment says the proxy
    strips client copies of it (``APP_TRUST_MANAGER_ADMIN_HEADER``).
    """

    raw_user = (request.headers.get(settings.user_header) or "").strip()
    if not raw_user:
        raise AuthenticationRequired()
    try:
        user = check_subject_id(raw_user)
    except ValueError as exc:
        raise ValidationFailed(f"Invalid {settings.user_header} header: {exc}") from exc

    wants_admin = (request.headers.get(settings.manager_admin_header) or "").strip().lower() == "true"
    if wants_admin and not settings.trust_manager_admin_header:
        logger.warning("Ignoring %s header from user=%s (not trusted)", settings.manager_admin_header, user)
        wants_admin = False

    return Caller(user=user, is_manager_admin=wants_admin)


def require_tuple_store_ready(request: Request) -> None:
    startup: TupleStoreStartup = _state(request, "startup")
    if not startup.ready.is_set():
        raise TupleStoreUnavailable()
