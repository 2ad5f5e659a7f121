"""SessionGuard - device session exclusivity and login anomaly review API."""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sessionguard.api.errors import install_error_handlers
from sessionguard.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: Create tables
    from sessionguard.database import Base, engine
    
    # Import all models so they're registered with Base
    from sessionguard import models  # noqa: F401
    
    Base.metadata.create_all(bind=engine)

    if settings.geo_cache_backend == "database":
        from sessionguard.database import SessionLocal
        from sessionguard.services.geolocation import DatabaseGeoCache

        removed = DatabaseGeoCache(SessionLocal).purge_expired()
        logger.info(f"Purged {removed} expired geo cache entries")

    yield


app = FastAPI(
    title=settings.app_name,
    description="Track device sessions, surface login conflicts and review location anomalies",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Import and include routers
from sessionguard.api import security, sessions  # noqa: E402

app.include_router(sessions.router, prefix="/api")
app.include_router(security.router, prefix="/api")
