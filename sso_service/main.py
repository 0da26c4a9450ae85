"""Main FastAPI application"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sso_service.api.error_handlers import register_exception_handlers
from sso_service.api.v1 import admin, auth, jwks, oauth, two_factor
from sso_service.core.config import Settings, logger
from sso_service.core.config import settings as default_settings
from sso_service.core.container import ServiceContainer
from sso_service.middleware.logging import StructuredLoggingMiddleware
from sso_service.middleware.rate_limit import RateLimitMiddleware


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """
    Build the application

    Args:
        settings: Settings to build the services from (defaults to the environment)
        container: Pre-built service container, mainly for tests

    Returns:
        FastAPI application with ``app.state.container`` set
    """
    settings = settings or (container.settings if container else default_settings)
    container = container or ServiceContainer(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info("Starting SSO Service...")
        logger.info(f"Environment: {settings.environment}")
        logger.info(f"Version: {settings.version}")

        try:
            await container.startup()
            logger.info("RSA keys loaded, database initialized")
        except Exception as e:
            logger.error(f"Failed to initialize: {e}")
            raise

        yield

        logger.info("Shutting down SSO Service...")
        await container.shutdown()

    app = FastAPI(
        title="SSO Service",
        description="Identity backend: password login, token lifecycle, OAuth2 and two-factor authentication",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.container = container

    register_exception_handlers(app)

    # Innermost first: rate limiting runs inside the logging scope
    app.add_middleware(RateLimitMiddleware, limiter=container.rate_limiter, settings=settings)
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return JSONResponse(
            content={
                "status": "healthy",
                "version": settings.version,
                "environment": settings.environment,
            }
        )

    @app.get("/")
    async def root():
        """Root endpoint"""
        return JSONResponse(
            content={
                "service": "SSO Service",
                "version": settings.version,
                "docs": "/docs" if settings.is_development else None,
            }
        )

    app.include_router(auth.router, prefix="/auth", tags=["Auth"])
    app.include_router(two_factor.router, prefix="/auth/2fa", tags=["Two-Factor"])
    app.include_router(oauth.router, prefix="/oauth2", tags=["OAuth2"])
    app.include_router(admin.router, prefix="/admin", tags=["Admin"])
    app.include_router(jwks.router, prefix="/.well-known", tags=["JWKS"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sso_service.main:app",
        host="0.0.0.0",
        port=default_settings.port,
        reload=default_settings.is_development,
        log_level=default_settings.log_level.lower(),
    )
