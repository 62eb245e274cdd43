"""
ServiceDesk Core - Main Application
===================================

Ticket lifecycle automation: workflow, SLA deadlines, delayed jobs,
escalation, notifications and CSAT surveys.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, state machine
- Infrastructure: Database, policy file, outbound channels, tick loop
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from servicedesk.bootstrap import ServiceDeskCore, build_core
from servicedesk.config import Settings, get_settings
from servicedesk.core import ApplicationException
from servicedesk.infrastructure.database import (
    check_database,
    close_database,
    create_tables,
    init_database,
)
from servicedesk.scheduler.interfaces import router as jobs_router
from servicedesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from servicedesk.shared.infrastructure.logging import get_logger, setup_logging
from servicedesk.sla.infrastructure import SLAPolicyManager
from servicedesk.surveys.interfaces import router as csat_router
from servicedesk.tickets.interfaces import router as tickets_router

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    core: Optional[ServiceDeskCore] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Defaults to the cached environment settings
        core: Pre-built core (tests); built from settings on startup otherwise
    """
    settings = settings or (core.settings if core else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan manager.

        STARTUP:
        1. Setup structured logging
        2. Initialize database (when enabled)
        3. Build the core and load the SLA policy
        4. Resync breach checks for open tickets
        5. Start the tick loop

        SHUTDOWN:
        1. Stop the tick loop
        2. Stop the policy file watcher
        3. Close outbound channel and database
        """
        # === STARTUP ===
        setup_logging(settings.log_level, settings.environment)
        logger.info("Starting ServiceDesk core", extra={
            "version": settings.app_version,
            "environment": settings.environment
        })

        database_started = False
        service_core = core
        if service_core is None:
            if settings.use_database:
                logger.info("Initializing database")
                init_database()
                await create_tables()
                database_started = True
            service_core = build_core(settings)

        app.state.core = service_core

        policy_provider = service_core.policy_provider
        if isinstance(policy_provider, SLAPolicyManager):
            policy_provider.start_watching()

        await service_core.breach_service.resync_open_tickets()

        if settings.scheduler_enabled:
            await service_core.tick_loop.start()

        logger.info("ServiceDesk core started")

        yield  # Application runs here

        # === SHUTDOWN ===
        logger.info("Shutting down ServiceDesk core")

        await service_core.tick_loop.stop()

        if isinstance(policy_provider, SLAPolicyManager):
            policy_provider.stop_watching()

        close = getattr(service_core.channel, "close", None)
        if close is not None:
            await close()

        if database_started:
            await close_database()

        logger.info("ServiceDesk core shutdown complete")

    app = FastAPI(
        title="ServiceDesk Core API",
        description="""
    ## Ticket Lifecycle Automation

    - `POST /tickets` - Create a ticket (SLA deadline and breach checks scheduled)
    - `PATCH /tickets/{id}/status` - Validated status transition (409 lists valid transitions)
    - `PATCH /tickets/{id}/assignee`, `PATCH /tickets/{id}/priority`, `PATCH /tickets/{id}/approval`
    - `GET /tickets/{id}/transitions`, `GET /tickets/{id}/events`
    - `GET /jobs`, `GET /jobs/dead-letters` - Scheduler introspection
    - `POST /csat/{token}` - Survey response, `GET /csat/metrics` - CSAT metrics

    **SLA resolution targets (minutes):** P1 240, P2 480, P3 2880, P4 7200, P5 14400
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(tickets_router)
    app.include_router(jobs_router)
    app.include_router(csat_router)

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "sla_policy": "loaded",
                            "database": "connected",
                            "scheduler": "running",
                            "pending_jobs": 12,
                            "dead_letters": 0
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports database reachability, scheduler state and dead-letter count.
        `degraded` while dead letters exist or the database is unreachable.
        """
        service_core: Optional[ServiceDeskCore] = getattr(request.app.state, "core", None)
        if service_core is None:
            return {"status": "starting", "version": settings.app_version}

        dead_letters = len(service_core.scheduler.dead_letters)
        database = await check_database()
        healthy = dead_letters == 0 and database != "unreachable"
        return {
            "status": "healthy" if healthy else "degraded",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {
                "sla_policy": "loaded",
                "database": database,
                "scheduler": "running" if service_core.tick_loop.is_running else "stopped",
                "pending_jobs": len(service_core.scheduler.pending_jobs()),
                "dead_letters": dead_letters,
            }
        }

    return app


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "servicedesk.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
