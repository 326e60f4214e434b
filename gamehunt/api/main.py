"""
gamehunt.api.main — FastAPI application entry point
====================================================

Run with::

    uvicorn gamehunt.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from gamehunt import __version__  # noqa: E402
from gamehunt.api.deps import get_config, get_engine  # noqa: E402
from gamehunt.api.rate_limit import configure_rate_limiter  # noqa: E402
from gamehunt.api.routes.admin import router as admin_router  # noqa: E402
from gamehunt.api.routes.badges import router as badges_router  # noqa: E402
from gamehunt.api.routes.community import router as community_router  # noqa: E402
from gamehunt.api.routes.notifications import router as notifications_router  # noqa: E402
from gamehunt.api.routes.xp import router as xp_router  # noqa: E402
from gamehunt.database.engine import init_db, run_db  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Origins allowed to call the API from a browser.

    ``CORS_ALLOW_ORIGINS`` (comma-separated) wins over ``FRONTEND_URL``.
    Neither set means no cross-origin access.
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS") or os.getenv("FRONTEND_URL") or ""
    origins = (part.strip().rstrip("/") for part in raw.split(","))
    return [origin for origin in origins if origin]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — tables, badge catalog, rate limiter."""
    cfg = get_config()
    engine = get_engine()
    await run_db(init_db, engine)
    configure_rate_limiter(
        engine=engine,
        max_requests=cfg.rate_limit_requests,
        window_seconds=cfg.rate_limit_window_seconds,
    )
    logger.info("%s API started — engine ready (%s)", cfg.site_name, engine.url.database)
    yield
    logger.info("%s API shutting down", cfg.site_name)


app = FastAPI(
    title="Game Hunt Gamification API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
)

# Mount routers
app.include_router(xp_router, prefix="/api")
app.include_router(badges_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(community_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
