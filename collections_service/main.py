"""Main FastAPI application for the Collections Follow-up Service."""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from collections_service.api.authorizations import router as authorizations_router
from collections_service.api.follow_ups import router as follow_ups_router
from collections_service.api.health import router as health_router
from collections_service.api.rules import router as rules_router
from collections_service.core.config import get_settings
from collections_service.core.dependencies import get_repository
from collections_service.core.exceptions import BaseAPIException
from collections_service.core.logging import get_logger, setup_logging
from collections_service.core.middleware import CorrelationIDMiddleware

# Get settings
settings = get_settings()

# Initialize logging
setup_logging(settings.log_level)
logger = get_logger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Collections Follow-up Service",
    description="Records debtor follow-ups and routes debt state changes through configurable rules",
    version=settings.service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(CorrelationIDMiddleware)

# CORS middleware
if settings.enable_cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Include API routers
app.include_router(follow_ups_router, prefix=settings.api_prefix)
app.include_router(authorizations_router, prefix=settings.api_prefix)
app.include_router(rules_router, prefix=settings.api_prefix)
app.include_router(health_router, prefix=settings.api_prefix, tags=["health"])


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException) -> JSONResponse:
    """Render service errors with their code and correlation ID."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request rejected",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict()),
        headers=exc.headers,
    )


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info("Starting Collections Follow-up Service", version=settings.service_version)

    repository = get_repository()
    db_healthy = await repository.health_check()
    if not db_healthy:
        logger.warning("Database health check failed on startup")

    logger.info(
        "Service startup complete",
        database_healthy=db_healthy,
        repository=type(repository).__name__,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down Collections Follow-up Service")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "collections_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
