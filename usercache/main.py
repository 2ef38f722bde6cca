import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from usercache.cache import cache
from usercache.middleware import TimingMiddleware
from usercache.routers import users, metrics
from usercache.config import settings

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        await cache.connect()
    except Exception as exc:
        # Reads fall through to the database without Redis.
        logger.warning("Cache unavailable, serving from the database only: %s", exc)
    yield
    # Shutdown
    await cache.disconnect()

app = FastAPI(
    title="User Cache Service",
    description="User records behind a read-through / write-invalidate Redis cache",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)

# Routers
app.include_router(users.router)
app.include_router(metrics.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
