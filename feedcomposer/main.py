"""
Feed Composer API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Create the content store engine + session factory
  3. Create tables if not present
  4. Wire stores, filter resolver and feed pipeline onto app.state
  5. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from feedcomposer.config import settings
from feedcomposer.database import create_engine, create_session_factory, init_db
from feedcomposer.engine.pipeline import create_pipeline
from feedcomposer.routers import feed
from feedcomposer.stores.content import SqlSourceStore
from feedcomposer.stores.feed_config import SqlMembershipStore
from feedcomposer.telemetry import instrument_app, instrument_engine, setup_tracing

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of the content store connection."""
    logger.info("Starting Feed Composer API (env=%s)", settings.environment)

    engine = create_engine(settings)
    instrument_engine(engine)
    await init_db(engine)

    sessions = create_session_factory(engine)
    app.state.pipeline = create_pipeline(sessions, settings)
    app.state.sources = SqlSourceStore(sessions)
    app.state.memberships = SqlMembershipStore(sessions)

    logger.info("Content store connected. API ready.")
    yield

    logger.info("Shutting down...")
    await engine.dispose()


app = FastAPI(
    title="Feed Composer API",
    description=(
        "Composes personal, tag, source, bookmark and curated feeds over one "
        "content store with uniform visibility rules and cursor pagination."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(feed.router, prefix="/feed", tags=["Feed"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Mounted at /metrics, scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
