"""FastAPI Application Entry Point"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1.errors import register_exception_handlers
from .api.v1.router import api_router
from .config import Settings, settings as default_settings
from .core.accounting import PortfolioAccountingService
from .core.logging import setup_logging
from .core.store_setup import init_store, shutdown_store


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        # Startup
        setup_logging(settings.log_level, settings.log_format)
        store = await init_store(settings)
        service = PortfolioAccountingService(store, settings)
        await service.activate()
        app.state.accounting = service
        yield
        # Shutdown
        await shutdown_store(store)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include API router
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "version": "0.1.0", "mode": settings.backing_mode.value}

    return app


app = create_app()
