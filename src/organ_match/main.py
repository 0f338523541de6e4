"""
Organ Match Service - donor/recipient compatibility matching
Controller/Service/Repository Pattern
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .core.clock import utcnow
from .core.config import ApplicationConfig, get_config, setup_logging
from .core.database import DatabaseManager
from .core.exceptions import OrganMatchError, ValidationError
from .core.locking import LocalMatchingLock, RedisManager, RedisMatchingLock

# Import domain controllers
from .domains.registry.controllers.registry_controller import donor_router, recipient_router
from .domains.matching.controllers.matching_controller import router as matching_router

from .domains.registry.repositories.participant_repository import (
    InMemoryDonorRepository,
    InMemoryRecipientRepository,
    MongoDonorRepository,
    MongoRecipientRepository,
)
from .domains.matching.repositories.match_repository import InMemoryMatchRepository, MongoMatchRepository
from .domains.matching.services.matching_service import MatchingService
from .domains.matching.services.query_service import QueryService
from .domains.registry.services.registration_service import RegistrationService

logger = logging.getLogger(__name__)


class ServiceContext:
    """Centralized service context for dependency injection"""

    def __init__(self, config: Optional[ApplicationConfig] = None):
        self.config = config or get_config()
        self.db_manager: Optional[DatabaseManager] = None
        self.redis_manager: Optional[RedisManager] = None
        self.lock = None
        self.donor_repository = None
        self.recipient_repository = None
        self.match_repository = None
        self.matching_service: Optional[MatchingService] = None
        self.query_service: Optional[QueryService] = None
        self.registration_service: Optional[RegistrationService] = None
        self.start_time = utcnow()
        self._initialized = False

    async def initialize(self):
        """Initialize storage, locking and services"""
        if self._initialized:
            return

        logger.info("Initializing Organ Match Service Context...")

        await self._init_repositories()
        await self._init_lock()

        self.matching_service = MatchingService(
            self.match_repository,
            self.donor_repository,
            self.recipient_repository,
            lock=self.lock
        )
        self.query_service = QueryService(
            self.match_repository,
            self.donor_repository,
            self.recipient_repository,
            config=self.config.matching
        )
        self.registration_service = RegistrationService(
            self.donor_repository,
            self.recipient_repository,
            self.matching_service,
            config=self.config.matching
        )

        self._initialized = True
        logger.info("Organ Match Service Context initialized successfully")

    async def _init_repositories(self):
        backend = self.config.database.backend
        logger.info(f"Initializing {backend} storage backend")

        if backend == "mongodb":
            self.db_manager = DatabaseManager(self.config.database)
            await self.db_manager.initialize()
            self.donor_repository = MongoDonorRepository(self.db_manager)
            self.recipient_repository = MongoRecipientRepository(self.db_manager)
            self.match_repository = MongoMatchRepository(self.db_manager)
        else:
            self.donor_repository = InMemoryDonorRepository()
            self.recipient_repository = InMemoryRecipientRepository()
            self.match_repository = InMemoryMatchRepository()

    async def _init_lock(self):
        if self.config.redis.lock_enabled:
            self.redis_manager = RedisManager(self.config.redis)
            await self.redis_manager.initialize()
            self.lock = RedisMatchingLock(self.redis_manager, self.config.redis)
            logger.info("Using distributed Redis matching lock")
        else:
            self.lock = LocalMatchingLock()

    async def health(self):
        """Component health summary"""
        components = {"storage": {"status": "healthy", "backend": self.config.database.backend}}
        if self.db_manager:
            components["storage"].update(await self.db_manager.health_check())
        if self.redis_manager:
            components["redis"] = await self.redis_manager.health_check()

        healthy = all(component.get("status") == "healthy" for component in components.values())
        return {
            "status": "healthy" if healthy else "degraded",
            "components": components
        }

    async def cleanup(self):
        """Cleanup all connections"""
        logger.info("Cleaning up Organ Match Service Context...")

        if self.redis_manager:
            await self.redis_manager.cleanup()

        if self.db_manager:
            await self.db_manager.cleanup()

        self._initialized = False
        logger.info("Cleanup complete")


# FastAPI application with lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle"""
    # Startup
    logger.info("Starting Organ Match Service...")
    app.state.context = ServiceContext(app.state.config)
    await app.state.context.initialize()
    logger.info("Organ Match Service started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Organ Match Service...")
    await app.state.context.cleanup()
    logger.info("Organ Match Service shutdown complete")


async def organ_match_error_handler(request: Request, exc: OrganMatchError):
    """Render domain errors as {"error": {...}}"""
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")

    return ORJSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters use the validation error shape"""
    error = ValidationError("Invalid request", detail=jsonable_encoder(exc.errors()))
    return await organ_match_error_handler(request, error)


def create_app(config: Optional[ApplicationConfig] = None) -> FastAPI:
    """Build the FastAPI application"""
    config = config or get_config()

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Donor/recipient compatibility matching engine",
        debug=config.debug,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.config = config

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=config.security.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(OrganMatchError, organ_match_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    # Include domain routers
    app.include_router(donor_router)
    app.include_router(recipient_router)
    app.include_router(matching_router)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        context = request.app.state.context
        health = await context.health()
        return {
            **health,
            "version": config.app_version,
            "uptime_seconds": (utcnow() - context.start_time).total_seconds(),
            "timestamp": utcnow()
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/")
    async def root():
        """Root endpoint with service information"""
        return {
            "service": config.app_name,
            "version": config.app_version,
            "environment": config.environment,
            "pattern": "Controller/Service/Repository",
            "documentation": "/docs",
            "health": "/health"
        }

    return app


app = create_app()


def run():
    """Console entry point"""
    import uvicorn

    config = get_config()
    setup_logging(config.logging)

    uvicorn.run(
        "organ_match.main:app",
        host=config.host,
        port=config.port,
        workers=config.workers,
        loop="uvloop",
        log_level=config.logging.level.lower(),
        access_log=False,
        reload=False
    )


if __name__ == "__main__":
    run()
