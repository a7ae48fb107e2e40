"""
Geomatch Coordination API - Main Application Entry Point

Real-time matching of seekers and providers:
- Connection identities with role-scoped presence sharing over websockets
- Booking request state machine with compare-and-swap transitions
- Structured logging with request/connection correlation
- Prometheus metrics and a health endpoint
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from geomatch.api.middleware import RequestLoggingMiddleware
from geomatch.api.router import api_router
from geomatch.api.routes import realtime
from geomatch.core.config import get_settings
from geomatch.core.exceptions import CoordinationError
from geomatch.core.logging import get_logger, setup_logging
from geomatch.core.metrics import metrics_endpoint
from geomatch.db.session import create_engine_from_settings, create_sessionmaker, init_models
from geomatch.infrastructure.redis_client import close_redis, get_redis, get_redis_stats
from geomatch.infrastructure.store import CoordinationStore
from geomatch.realtime.dispatcher import EventDispatcher
from geomatch.realtime.hub import WebSocketHub
from geomatch.services.expiry_service import RequestExpiryMonitor
from geomatch.services.presence_service import PresenceBroadcaster
from geomatch.services.registry_service import ConnectionRegistry
from geomatch.services.request_service import RequestCoordinator
from geomatch.services.strategy_factory import get_location_throttle

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    settings = get_settings()
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        booking_enabled=settings.BOOKING_ENABLED,
    )

    engine = create_engine_from_settings(settings)
    if settings.DB_CREATE_ALL:
        await init_models(engine)

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    elif settings.LOCATION_THROTTLE == "redis":
        logger.warning("redis_unavailable", message="Location throttle fails open")

    store = CoordinationStore(create_sessionmaker(engine))
    hub = WebSocketHub(send_timeout=settings.WS_SEND_TIMEOUT_SECONDS)
    registry = ConnectionRegistry(store)
    presence = PresenceBroadcaster(
        registry,
        hub,
        throttle=get_location_throttle(settings),
        offline_scope=settings.OFFLINE_BROADCAST_SCOPE,
    )
    coordinator = RequestCoordinator(store, registry, hub) if settings.BOOKING_ENABLED else None

    monitor = None
    if coordinator is not None and settings.REQUEST_EXPIRY_SECONDS > 0:
        monitor = RequestExpiryMonitor(
            coordinator,
            settings.REQUEST_EXPIRY_SECONDS,
            settings.REQUEST_EXPIRY_INTERVAL_SECONDS,
        )
        monitor.start()

    app.state.store = store
    app.state.hub = hub
    app.state.dispatcher = EventDispatcher(registry, presence, hub, coordinator)

    yield

    # Cleanup
    if monitor is not None:
        await monitor.stop()
    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Real-time seeker/provider matching with concurrency-safe booking requests",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)
app.include_router(realtime.router)


@app.exception_handler(CoordinationError)
async def coordination_error_handler(request: Request, exc: CoordinationError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "reason": exc.reason},
    )


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint for Docker and load balancers."""
    database_ok = await request.app.state.store.ping()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok else "degraded",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": "connected" if database_ok else "unavailable",
            "redis": await get_redis_stats(),
            "connections": request.app.state.hub.count(),
            "booking_enabled": request.app.state.dispatcher.booking_enabled,
        },
    )


@app.get("/metrics", tags=["Health"])
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "websocket": "/ws",
    }
