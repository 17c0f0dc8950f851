"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db, close_db
from .routers import resources_router, status_router
from .services.resource_manager import resource_manager
from .services.schedule_registry import schedule_registry

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting Resource Tracker")

    await init_db()
    logger.info("Database initialized")

    schedule_registry.start()
    await resource_manager.schedule_all_resources()

    yield

    schedule_registry.shutdown()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Resource Tracker",
        description="Scheduled checks of web pages, JSON APIs, and mailer endpoints with Telegram alerts",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(resources_router)
    app.include_router(status_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler_running": schedule_registry.running,
            "scheduled_checks": len(schedule_registry.job_ids()),
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
