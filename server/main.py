"""
FastAPI service hosting the validation optimization layer.

Starts the memory monitor and cleanup scheduler for the lifetime of the
process and exposes their diagnostics.
"""

from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.health import set_startup_time, get_health_status
from core.logging import configure_logging, get_logger
from routers import validation

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting validation services")
    set_startup_time()

    memory_monitor = container.memory_monitor()
    cleanup_scheduler = container.cleanup_scheduler()

    if settings.memory_monitor_enabled:
        await memory_monitor.start()
    if settings.cleanup_enabled:
        await cleanup_scheduler.start()

    logger.info("Services started successfully",
                memory_monitor=memory_monitor.is_running,
                cleanup_scheduler=cleanup_scheduler.is_running)
    yield

    # Shutdown
    await cleanup_scheduler.stop()
    await memory_monitor.stop()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Validation Guard",
    version="1.0.0",
    description="Debouncing, caching and self-monitoring in front of expensive validations",
    lifespan=lifespan,
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )

app.add_middleware(CatchAllExceptionsMiddleware)

# Include routers
app.include_router(validation.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return {
        **get_health_status(container.memory_monitor(), container.cleanup_scheduler()),
        "service": "validation-guard",
        "version": "1.0.0",
        "environment": "development" if settings.is_development else "production",
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting validation services",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
