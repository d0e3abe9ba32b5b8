from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mandate_app.fga.audit import AuditDispatcher
from mandate_app.fga.client import OpenFGAClient
from mandate_app.logging_config import configure_app_logging
from mandate_app.routers import admin, debug, dossiers, guardianships, health, organizations
from mandate_app.services.dossiers import DossierService
from mandate_app.services.guardianships import GuardianshipService
from mandate_app.services.organizations import OrganizationService
from mandate_app.settings import Settings, get_settings
from mandate_app.store.domain_store import DomainStore
from mandate_app.sync.startup import TupleStoreStartup

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, *, tuple_store: OpenFGAClient | None = None) -> FastAPI:
    """
    Build the app. ``settings`` and ``tuple_store`` are injectable for tests;
    by default they come from ``APP_*`` env vars and a real OpenFGA client.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        cfg = settings or get_settings()
        configure_app_logging(cfg.log_level)
        logger.info("App startup beginning")

        store = DomainStore(cfg.resolved_data_file())
        store.load()

        audit = AuditDispatcher(cfg.audit_url, maxsize=cfg.audit_queue_size, timeout=cfg.audit_timeout_seconds)
        audit.start()

        client = tuple_store
        if client is None:
            client = OpenFGAClient(cfg.openfga_url, audit=audit, timeout=cfg.fga_request_timeout_seconds)

        startup = TupleStoreStartup(client, store, cfg)

        app.state.settings = cfg
        app.state.started_at = time.monotonic()
        app.state.store = store
        app.state.tuple_store = client
        app.state.startup = startup
        app.state.dossier_service = DossierService(store, client)
        app.state.guardianship_service = GuardianshipService(store, client)
        app.state.organization_service = OrganizationService(store, client)

        if cfg.fga_startup_in_background:
            startup.start()
        else:
            startup.run()

        yield
        # Shutdown
        audit.close()
        logger.info("App shutdown complete")

    app = FastAPI(title="mandate-app", lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(dossiers.router)
    app.include_router(guardianships.router)
    app.include_router(organizations.router)
    app.include_router(admin.router)
    app.include_router(debug.router)

    return app


app = create_app()
