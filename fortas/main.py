"""
FORTAS Identity Service

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from fortas.config import get_settings
from fortas.api.v1 import router as api_v1_router
from fortas.api.middleware.rate_limit import RateLimitMiddleware
from fortas.api.middleware.request_id import RequestIdMiddleware
from fortas.kernel.identity.kernel import IdentityKernel
from fortas.schemas.common import HealthResponse
from fortas.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Opens the identity kernel on startup and closes it on shutdown.
    """
    kernel: IdentityKernel = app.state.kernel
    settings = kernel.settings
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await kernel.init()

    yield

    logger.info("Shutting down...")
    await kernel.close()


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def create_app(kernel: Optional[IdentityKernel] = None) -> FastAPI:
    """
    Build the application around an identity kernel.

    Tests pass an already-initialized kernel; the lifespan is not run by
    in-process transports.
    """
    kernel = kernel or IdentityKernel(get_settings())
    settings = kernel.settings

    app = FastAPI(
        title=settings.project_name,
        description="""
    FORTAS Identity Service

    Registration, login, one-time passwords, session tokens, profiles and
    Free/Premium entitlement for the FORTAS assistant.
    """,
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.kernel = kernel

    def live_token(token: str) -> bool:
        return kernel.identity.sessions.validate(token) is not None

    # LAST added = OUTERMOST; CORS wraps everything
    app.add_middleware(RateLimitMiddleware, settings=settings, token_validator=live_token)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",  # Vite default
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        headers = dict(exc.headers or {})
        req_id = _request_id(request)
        if req_id:
            headers["X-Request-ID"] = req_id
        content = {"detail": exc.detail}
        if req_id and exc.status_code >= 500:
            content["request_id"] = req_id
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })
        content = {"detail": "Validation error", "errors": errors}
        req_id = _request_id(request)
        if req_id:
            content["request_id"] = req_id
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=content,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception: %s", exc)
        req_id = _request_id(request)
        if settings.debug:
            content = {"detail": str(exc), "type": type(exc).__name__, "request_id": req_id}
        else:
            content = {"detail": "Internal server error", "request_id": req_id}
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=content,
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Check application health."""
        return HealthResponse(version=settings.version)

    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fortas.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug,
    )
