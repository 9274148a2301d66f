"""
InternLink - Application Workflow Service

FastAPI backend with:
- Application submission, review and withdrawal
- Live application views over WebSocket (students and companies)
- MongoDB for application documents (or in-memory for development)
- PostgreSQL for posting and profile lookups (read only)
- JWT bearer tokens from the identity service

Run: uvicorn internlink.main:app --reload
"""

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from internlink.api.deps import Services, get_services
from internlink.api.responses import error_response
from internlink.api.routes import api_router
from internlink.core.config import get_settings
from internlink.core.errors import ApplicationError
from internlink.core.log_config import setup_logging

settings = get_settings()
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="InternLink Application Workflow",
    description="""
    Internship application workflow with real-time synchronization.

    ## Features
    - **Students**: Submit or resubmit applications with a resume, withdraw at any time
    - **Companies**: Review applications (status + notes), audited status overrides
    - **Live views**: WebSocket streams per application, student, posting and company
    - **Tallies**: Per-status counts that ignore the active list filter

    ## Concurrency
    Every application carries a `last_updated` version that writes may pass
    back as `expected_version`. If the application changed since that
    version, the write is re-checked once against the current application:
    it is applied if still valid, rejected with 400 if no longer valid
    (e.g. the status is already set), and answered with 409 only if a
    second concurrent change lands during the retry.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.exception_handler(ApplicationError)
async def application_error_handler(request: Request, exc: ApplicationError):
    """Map the workflow error taxonomy to HTTP responses."""
    logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc).model_dump(),
    )


# Startup event
@app.on_event("startup")
async def startup_event():
    """Build services; create MongoDB indexes when the mongo backend is used."""
    services = get_services()
    if services.settings.store_backend == "mongo":
        from internlink.db.mongodb import init_mongo_indexes
        await init_mongo_indexes(services.store.collection)
    logger.info("InternLink started with %s store", services.settings.store_backend)


@app.on_event("shutdown")
async def shutdown_event():
    """Release live subscriptions and the MongoDB client."""
    services = get_services()
    services.bus.close_all()
    if services.settings.store_backend == "mongo":
        from internlink.db.mongodb import close_mongo_client
        await close_mongo_client()


@app.get("/health", tags=["Health"])
async def health_check(services: Services = Depends(get_services)):
    """Detailed health check."""
    result = {
        "status": "healthy",
        "store_backend": services.settings.store_backend,
        "live_subscriptions": services.bus.subscription_count,
    }
    if services.settings.store_backend == "mongo":
        from internlink.db.mongodb import test_mongo_connection
        result["mongodb"] = "connected" if await test_mongo_connection() else "disconnected"
    return result
