from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
from starlette.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
from order_engine.api import disputes, offers, orders, reviews
from order_engine.core.config import settings
from order_engine.core.exceptions import OrderEngineError
from order_engine.core.redis import init_redis, close_redis, redis_healthy
from order_engine.core.metrics import request_count, request_duration, db_connected, redis_connected, get_metrics_text
from order_engine.db.session import engine, init_db
import time
import logging

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception:
            endpoint = request.url.path
            request_count.labels(method=request.method, endpoint=endpoint, status=500).inc()
            request_duration.labels(method=request.method, endpoint=endpoint).observe(time.time() - start_time)
            raise

        # templated path keeps label cardinality bounded
        route = request.scope.get("route")
        endpoint = route.path if route else request.url.path
        request_count.labels(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()
        request_duration.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(time.time() - start_time)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting...")

    try:
        await init_db()
        db_connected.set(1)
        logger.info("Database connected")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        db_connected.set(0)
        raise

    try:
        await init_redis()
        redis_connected.set(1)
    except Exception as e:
        # rate limiting and idempotency replay are skipped without redis
        logger.error(f"Redis connection failed: {e}")
        redis_connected.set(0)

    yield

    logger.info("Application shutting down...")
    await close_redis()
    redis_connected.set(0)
    await engine.dispose()
    db_connected.set(0)
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    lifespan=lifespan
)

app.add_middleware(MetricsMiddleware)

app.include_router(offers.router)
app.include_router(orders.router)
app.include_router(disputes.router)
app.include_router(reviews.router)


@app.exception_handler(OrderEngineError)
async def order_engine_error_handler(request: Request, exc: OrderEngineError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{exc.kind} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/metrics", tags=["monitoring"])
async def metrics():
    return Response(
        content=get_metrics_text(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )


@app.get("/health", tags=["monitoring"])
async def health_check():
    redis_ok = await redis_healthy()
    redis_connected.set(1 if redis_ok else 0)

    return {
        "status": "healthy",
        "service": settings.API_TITLE,
        "version": settings.API_VERSION,
        "dependencies": {
            "redis": "connected" if redis_ok else "disconnected",
            "database": "connected"
        }
    }


@app.get("/readiness", tags=["monitoring"])
async def readiness_check():
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness probe failed: {e}")
        db_connected.set(0)
        return JSONResponse(status_code=503, content={"ready": False, "reason": "Database not available"})

    db_connected.set(1)
    return {
        "ready": True,
        "service": settings.API_TITLE
    }


@app.get("/", tags=["root"])
async def root():
    return {
        "message": settings.API_TITLE,
        "version": settings.API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics"
    }
