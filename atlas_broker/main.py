"""
Main FastAPI application entry point.
Open Service Broker for MongoDB Atlas clusters.
"""
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import sentry_sdk
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from atlas_broker.api.v1 import catalog, health, service_instances
from atlas_broker.config.credentials import load_credentials
from atlas_broker.config.database import Database
from atlas_broker.config.logging import configure_logging, get_logger
from atlas_broker.config.settings import settings
from atlas_broker.core.catalog import build_catalog
from atlas_broker.core.orchestrator import LifecycleOrchestrator
from atlas_broker.core.plan_resolver import PlanResolver
from atlas_broker.core.templates import load_templates
from atlas_broker.exceptions import BrokerException
from atlas_broker.repositories.models import InstanceDocument
from atlas_broker.services.atlas_client import AtlasClientFactory
from atlas_broker.services.instance_store import MemoryInstanceStore, MongoInstanceStore

configure_logging()
logger = get_logger(__name__)

# Initialize Sentry for error tracking (production)
if settings.sentry_dsn and settings.is_production:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        environment=settings.environment,
        release=settings.app_version,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    Startup builds, in order: credentials, plan templates, the catalog and its
    template registry, the instance store, Atlas clients and the orchestrator.
    """
    logger.info(
        "application_starting",
        version=settings.app_version,
        environment=settings.environment,
    )

    try:
        credentials = load_credentials(settings.credentials_file)
        injected = {"credentials": credentials.template_context()}

        templates = load_templates(settings.template_dir)
        app.state.catalog = build_catalog(templates, settings, injected)

        if settings.state_backend == "mongodb":
            await Database.connect_db([InstanceDocument])
            store = MongoInstanceStore()
        else:
            logger.warning("using_memory_instance_store")
            store = MemoryInstanceStore()

        clients = AtlasClientFactory(credentials)
        app.state.orchestrator = LifecycleOrchestrator(
            resolver=PlanResolver(app.state.catalog.templates),
            store=store,
            clients=clients,
            credentials=credentials,
            dashboard_base_url=settings.atlas_base_url,
        )

        logger.info(
            "application_started",
            version=settings.app_version,
            plans=len(app.state.catalog.plans),
            orgs=credentials.org_ids(),
            state_backend=settings.state_backend,
        )

    except Exception as e:
        logger.error("application_startup_failed", error=str(e))
        raise

    yield

    logger.info("application_shutting_down")

    try:
        await clients.close()
    except Exception as e:
        logger.error("atlas_client_close_error", error=str(e))

    await Database.close_db()
    logger.info("application_shutdown_complete")


async def broker_exception_handler(request: Request, exc: BrokerException) -> JSONResponse:
    """Render broker errors in the Open Service Broker error format."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "broker_exception",
        error=exc.message,
        error_code=exc.error_code,
        status_code=exc.status_code,
        details=exc.details,
    )

    content = {"description": exc.message}
    if exc.error_code:
        content["error"] = exc.error_code

    return JSONResponse(status_code=exc.status_code, content=content)


def _describe_validation_errors(errors) -> list[str]:
    """One ``location: message`` line per invalid field of the request."""
    described = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        described.append(f"{location}: {error.get('msg', 'invalid value')}" if location else error.get("msg", ""))
    return described


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed OSB requests are a 400 without an error code."""
    details = _describe_validation_errors(exc.errors())
    logger.warning("invalid_broker_request", details=details)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"description": "invalid request", "details": details},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", error=str(exc), exc_info=True)

    description = "Internal server error"
    if not settings.is_production:
        description = f"{description}: {exc}"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"description": description},
    )


async def log_requests(request: Request, call_next):
    """Bind request fields to every log line emitted while handling the request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        method=request.method,
        path=request.url.path,
    )
    started = time.perf_counter()

    response = await call_next(request)

    logger.info(
        "request_completed",
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
        client=request.client.host if request.client else None,
    )
    return response


def create_app() -> FastAPI:
    """Create the FastAPI application with routers, handlers and middleware."""
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Open Service Broker for MongoDB Atlas clusters driven by plan templates",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    application.add_exception_handler(BrokerException, broker_exception_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.add_exception_handler(Exception, general_exception_handler)
    application.middleware("http")(log_requests)

    if settings.prometheus_enabled:
        Instrumentator().instrument(application).expose(application, endpoint="/metrics")

    application.include_router(health.router, prefix="/health", tags=["Health"])
    application.include_router(catalog.router, prefix="/v2", tags=["Catalog"])
    application.include_router(
        service_instances.router,
        prefix="/v2/service_instances",
        tags=["Service Instances"],
    )

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "atlas_broker.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
