"""
FastAPI application for availability and booking

Bookings commit here; calendar mirroring happens in workers
"""
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from contextlib import asynccontextmanager

from app.config.settings import get_settings
from app.core.errors import SchedulingError, status_code_for
from app.core.middleware import correlation_id_middleware, request_logging_middleware
from app.core.monitoring import health_router
from app.api.v1.router import api_v1_router
from app.utils.my_logging import setup_logging

settings = get_settings()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    setup_logging()
    print("🚀 Booking Scheduler API starting up...")
    print(f"📅 Scheduling API available at /api/v1/")
    print(f"❤️  Health check at /health")

    routes_list = []
    for route in app.routes:
        if isinstance(route, APIRoute):
            for method in route.methods:
                routes_list.append((method, route.path, route.name))
    routes_list.sort(key=lambda x: (x[1], x[0]))

    print("\n📋 REGISTERED ROUTES:")
    for method, path, name in routes_list:
        print(f"  {method:8} {path:60} ({name})")
    print(f"✅ Total routes registered: {len(routes_list)}\n")

    yield

    # Shutdown
    print("🛑 Booking Scheduler API shutting down...")


async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Map engine errors to status codes so conflicts and outages stay distinct"""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": exc.code,
            "detail": exc.message,
            "correlation_id": getattr(request.state, "correlation_id", None),
        }
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title="Booking Scheduler API",
        description="Availability, conflict-free booking and external calendar sync",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    # Add custom middleware
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(correlation_id_middleware)

    app.add_exception_handler(SchedulingError, scheduling_error_handler)

    # Include routers
    app.include_router(health_router, prefix="/health", tags=["monitoring"])
    app.include_router(api_v1_router, prefix="/api/v1", tags=["api"])

    @app.get("/")
    async def root():
        return {
            "service": "Booking Scheduler API",
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "api": "/api/v1/",
                "health": "/health",
                "docs": "/docs" if settings.DEBUG else "disabled"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
