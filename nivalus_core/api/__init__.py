"""
Nivalus Banking API Application Factory
"""

from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .accounts import router as accounts_router
from .audit import router as audit_router
from .auth import router as auth_router
from .errors import register_exception_handlers
from .settings import router as settings_router
from .transactions import router as transactions_router
from .. import __version__
from ..config import NivalusConfig, get_config
from ..rate_limit import RateLimiter
from ..system import BankingCore


def create_app(
    core: Optional[BankingCore] = None,
    rate_limiter: Optional[RateLimiter] = None,
    config: Optional[NivalusConfig] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        core: Banking core to serve; built from config when omitted
        rate_limiter: Per-client limiter; built from config when omitted and
            rate limiting is enabled
        config: Configuration, the global one when omitted
    """
    config = config or (core.config if core is not None else get_config())
    if core is None:
        core = BankingCore(config)
    if rate_limiter is None and config.enable_rate_limiting:
        rate_limiter = RateLimiter(
            max_requests=config.rate_limit_requests,
            window_seconds=config.rate_limit_window_seconds,
            max_keys=config.rate_limit_max_keys
        )

    app = FastAPI(
        title="Nivalus Banking Core API",
        description="Transaction and balance consistency core",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.core = core
    app.state.rate_limiter = rate_limiter

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        limiter = request.app.state.rate_limiter
        if limiter is not None and request.url.path != "/health":
            client = request.client.host if request.client else "unknown"
            if not limiter.allow(client):
                return JSONResponse(
                    status_code=429,
                    content={"error": "rate_limited", "message": "Rate limit exceeded"}
                )
        return await call_next(request)

    register_exception_handlers(app)

    # Include routers
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(settings_router, prefix="/settings", tags=["Settings"])
    app.include_router(audit_router, prefix="/audit", tags=["Audit"])
    app.include_router(auth_router, prefix="/login", tags=["Auth"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "nivalus_core_api",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    return app
