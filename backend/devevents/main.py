"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from devevents.config import settings
from devevents.database import Base, connection_manager
from devevents.error_handlers import register_error_handlers
from devevents.services.image_store import get_image_store

# Import routers
from devevents.routers import events, bookings

# Import all models so Base.metadata knows about them
from devevents.models.event import Event, EventTag  # noqa: F401
from devevents.models.booking import Booking        # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables in SQLite dev mode; release the pool and image client on shutdown."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=connection_manager.acquire())
    yield
    connection_manager.shutdown()
    if get_image_store.cache_info().currsize:
        get_image_store().close()
        get_image_store.cache_clear()


app = FastAPI(
    title="Dev Event Platform",
    description="Create, browse, edit, delete and book developer events",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Register routers
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(bookings.router, prefix="/api/bookings", tags=["Bookings"])


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
