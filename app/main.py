"""
City Registry API - Main application entry point.

CRUD and query actions over city records stored in MongoDB.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.database import Database
from app.core.dependencies import get_city_store
from app.core.exceptions import register_exception_handlers
from app.core.logging_config import configure_logging
from app.core.middleware import MaxBodySizeMiddleware
from app.cities.views import router as cities_router

settings = get_settings()
configure_logging(settings.LOG_LEVEL)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    if settings.STORE_BACKEND == "mongo":
        await Database.connect()
    yield
    # Shutdown
    await Database.disconnect()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## City Registry API

Manage city records (name, population, area).

### Features

- **CRUD**: create, read, update and delete cities by id, name or in batches
- **Query actions**: filter, search, sort, project and paginate in one request
- **Search probe**: check whether any city starts or ends with a term
- **Statistics**: population totals, minimum and average
    """,
    lifespan=lifespan,
    docs_url=f"{API_PREFIX}/docs",
    redoc_url=f"{API_PREFIX}/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(MaxBodySizeMiddleware)

register_exception_handlers(app)

app.include_router(cities_router, prefix=API_PREFIX)


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    if settings.STORE_BACKEND == "memory":
        database = "in-memory"
    elif Database.db is None:
        database = "disconnected"
    else:
        database = "connected" if await get_city_store().ping() else "unreachable"
    return {
        "status": "healthy",
        "database": database,
        "backend": settings.STORE_BACKEND,
        "version": settings.APP_VERSION,
    }
