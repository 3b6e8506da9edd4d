"""
OrderBridge - Order Lifecycle & Multi-Destination Sync
FastAPI Application Entry Point
"""
import uvicorn
from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from orderbridge.core import settings, engine, Base
from orderbridge.core.logging import configure_logging
from orderbridge.api.router import api_router
from orderbridge.jobs import ReconcileScheduler

logger = logging.getLogger(__name__)


# Lifespan for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Create tables if not exist
    configure_logging("orderbridge")
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} starting on port {settings.APP_PORT}")

    scheduler = ReconcileScheduler(destinations=getattr(app.state, "destinations", None))
    app.state.scheduler = scheduler

    # Start background reconciliation for every active connection
    if settings.SCHEDULER_ENABLED:
        try:
            scheduler.start()
            scheduler.load_from_connections()
        except Exception as e:
            logger.warning(f"Could not start scheduler: {e}")

    yield

    # Shutdown
    scheduler.stop()
    logger.info(f"{settings.APP_NAME} shutting down")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Order lifecycle with marketplace, ERP, workflow and notification sync",
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(api_router, prefix="/api")


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.APP_NAME}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.APP_PORT,
        reload=settings.DEBUG,
    )
