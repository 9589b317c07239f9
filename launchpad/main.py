import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from launchpad.api import badges, federated_submissions, federation, health, submissions, v1
from launchpad.api.middleware import V1_PREFIX, v1_gate
from launchpad.config import Settings, settings
from launchpad.db.connection import run_migrations
from launchpad.errors import ErrorKind, ServiceError, error_envelope
from launchpad.repositories.badge_repository import BadgeRepository
from launchpad.repositories.federation_repository import FederationRepository
from launchpad.repositories.submission_repository import ProfileRepository, SubmissionRepository
from launchpad.services.ai_rewriter import create_ai_rewriter
from launchpad.services.auth_service import AuthService
from launchpad.services.badge_service import BadgeService
from launchpad.services.federated_submission_service import FederatedSubmissionService
from launchpad.services.federation_discovery_service import FederationDiscoveryService
from launchpad.services.health_service import HealthService
from launchpad.services.metadata_fetcher import MetadataFetcher
from launchpad.services.rate_limiter import MovingWindowRateLimitStore, RateLimiter
from launchpad.services.submission_service import SubmissionService


def _configure_logging(config: Settings) -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def wire_services(app: FastAPI, config: Settings) -> None:
    """Build repositories and services on app.state."""
    submission_repository = SubmissionRepository(config.DB_PATH)
    profile_repository = ProfileRepository(config.DB_PATH)
    federation_repository = FederationRepository(config.DB_PATH)

    app.state.submission_repository = submission_repository
    app.state.profile_repository = profile_repository
    app.state.federation_repository = federation_repository

    app.state.rate_limiter = RateLimiter(MovingWindowRateLimitStore(config.RATE_LIMIT_STORAGE_URI))
    app.state.auth_service = AuthService(
        federation_repository,
        profile_repository,
        secret=config.JWT_SECRET,
        partner_token_ttl=config.PARTNER_TOKEN_TTL_SECONDS,
    )
    app.state.metadata_fetcher = MetadataFetcher(
        timeout=config.METADATA_TIMEOUT,
        max_retries=config.METADATA_MAX_RETRIES,
        retry_delay=config.METADATA_RETRY_DELAY,
        allow_private_urls=config.ALLOW_PRIVATE_URLS,
        cache_enabled=config.METADATA_CACHE_ENABLED,
        cache_max_age=config.METADATA_CACHE_MAX_AGE,
    )
    app.state.submission_service = SubmissionService(
        submission_repository,
        profile_repository,
        app.state.metadata_fetcher,
        create_ai_rewriter(config),
    )
    app.state.federation_discovery_service = FederationDiscoveryService(federation_repository, config)
    app.state.federated_submission_service = FederatedSubmissionService(
        federation_repository,
        submission_repository,
        source_instance=config.INSTANCE_NAME.lower(),
        timeout=config.FEDERATION_TIMEOUT,
        concurrency=config.FEDERATION_CONCURRENCY,
    )
    app.state.badge_service = BadgeService(BadgeRepository(config.DB_PATH), profile_repository)
    app.state.health_service = HealthService(config, started_at=time.monotonic())


def _is_v1(request: Request) -> bool:
    return request.url.path.startswith(V1_PREFIX)


def create_app(config: Settings = settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _configure_logging(config)
        logger = logging.getLogger(__name__)
        logger.info("Launchpad starting | db=%s | port=%s", config.DB_PATH, config.PORT)
        run_migrations(config.DB_PATH)
        wire_services(app, config)
        yield
        logger.info("Launchpad shutting down")

    app = FastAPI(title="Launchpad", version=config.VERSION, lifespan=lifespan)
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.middleware("http")(v1_gate)

    app.include_router(health.router)
    app.include_router(submissions.router)
    app.include_router(federated_submissions.router)
    app.include_router(federation.router, prefix="/api/federation")
    app.include_router(federation.router, prefix="/api/v1/federation")
    app.include_router(v1.router)
    app.include_router(badges.router)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        if _is_v1(request):
            content = error_envelope(exc.kind, exc.message)
        else:
            content = {"error": exc.message}
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        kind = ErrorKind.VALIDATION_ERROR
        content = error_envelope(kind, message) if _is_v1(request) else {"error": message}
        return JSONResponse(status_code=kind.status_code, content=content)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logging.getLogger(__name__).exception("Unhandled exception")
        kind = ErrorKind.INTERNAL_ERROR
        content = error_envelope(kind, "Internal server error") if _is_v1(request) else {"error": "Internal server error"}
        return JSONResponse(status_code=kind.status_code, content=content)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("launchpad.main:app", host="0.0.0.0", port=settings.PORT, log_level=settings.LOG_LEVEL)
