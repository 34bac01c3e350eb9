"""
Crediário API Application Factory
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import CrediarioSystem, get_system
from .session import router as session_router
from .admin import router as admin_router
from .merchant import router as merchant_router
from .cashier import router as cashier_router
from .. import __version__
from ..errors import (
    AccessDeniedError,
    AuthenticationError,
    ConfirmationRequiredError,
    NotFoundError
)
from ..config import get_config
from ..logging_config import get_logger, log_action, setup_logging


logger = get_logger("crediario.api")

# Domain error -> HTTP status
ERROR_STATUS = [
    (NotFoundError, 404),
    (AuthenticationError, 401),
    (AccessDeniedError, 403),
    (ConfirmationRequiredError, 409),
    (ValueError, 422),  # ValidationError and unparseable amounts
]


def _register_error_handlers(app: FastAPI) -> None:
    for error_class, status_code in ERROR_STATUS:
        def handler(request: Request, exc: Exception, status_code: int = status_code):
            log_action(logger, "warning" if status_code < 500 else "error", str(exc),
                       action="http_error", resource=request.url.path,
                       extra={"status_code": status_code, "error": type(exc).__name__})
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})
        app.add_exception_handler(error_class, handler)


def create_app(system: Optional[CrediarioSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Service container to serve; the global one when omitted
    """
    app = FastAPI(
        title="Crediário API",
        description="Store-credit administration for merchants, cashiers and administrators",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if system is not None:
        app.dependency_overrides[get_system] = lambda: system

    _register_error_handlers(app)

    # Include routers
    app.include_router(session_router, prefix="/session", tags=["Session"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])
    app.include_router(merchant_router, prefix="/merchant", tags=["Merchant"])
    app.include_router(cashier_router, prefix="/cashier", tags=["Cashier"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "crediario_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Crediário API",
            "version": __version__,
            "description": "Store-credit administration",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "session": "/session",
                "admin": "/admin",
                "merchant": "/merchant",
                "cashier": "/cashier",
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server with uvicorn"""
    config = get_config()
    setup_logging(level=config.log_level, log_format=config.log_format, log_file=config.log_file)
    uvicorn.run(
        "crediario.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        workers=None if debug else config.api_workers,
        reload=debug,
        log_level=config.log_level.lower()
    )


# Application instance served by uvicorn
app = create_app()
