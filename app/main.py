# app/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.core.config import Settings, settings as default_settings
from app.core.dependencies import build_container
from app.core.exceptions import AutoClaimException
from app.core.logging import get_logger

logger = get_logger(__name__)


# ===================
# Error Handlers
# ===================

async def handle_app_exception(request: Request, exc: AutoClaimException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.message, "details": exc.details},
    )


async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc) or None
    return JSONResponse(
        status_code=400,
        content={
            "error": "VALIDATION_ERROR",
            "message": f"{field}: {first.get('msg')}" if field else "Invalid request",
            "details": {"field": field} if field else {},
        },
    )


# ===================
# Application Setup
# ===================

def create_app(config: Optional[Settings] = None, **overrides) -> FastAPI:
    """
    Build the application.

    `overrides` may supply any collaborator accepted by build_container
    (claim_store, user_store, object_store, analyzer, notifier).
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application startup and shutdown."""
        logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}")
        app.state.container = build_container(config, **overrides)
        yield
        logger.info("Shutting down...")
        await app.state.container.claim_service.close()

    app = FastAPI(
        title=config.APP_NAME,
        description="Vehicle insurance claim intake with AI damage triage",
        version=config.APP_VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AutoClaimException, handle_app_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation)

    # ===================
    # Include Routers
    # ===================

    from app.api.v1.claims import router as claims_router
    from app.api.v1.users import router as users_router
    from app.api.v1.admin import router as admin_router

    app.include_router(claims_router, prefix=f"{config.API_PREFIX}/claims", tags=["claims"])
    app.include_router(users_router, prefix=f"{config.API_PREFIX}/users", tags=["users"])
    app.include_router(admin_router, prefix=f"{config.API_PREFIX}/admin", tags=["admin"])

    if config.OBJECT_STORE_BACKEND.lower() == "local" and "object_store" not in overrides:
        app.mount(
            "/uploads",
            StaticFiles(directory=config.UPLOAD_DIR, check_dir=False),
            name="uploads"
        )

    # ===================
    # Root Endpoints
    # ===================

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": config.APP_NAME,
            "version": config.APP_VERSION,
            "status": "running",
            "docs": "/docs",
            "endpoints": {
                "claims": f"{config.API_PREFIX}/claims",
                "users": f"{config.API_PREFIX}/users",
                "admin": f"{config.API_PREFIX}/admin",
            }
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": config.APP_VERSION}

    return app


app = create_app()
