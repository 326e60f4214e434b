"""
gamehunt.__main__ — Entry point for ``python -m gamehunt``
==========================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine, ensure tables exist, seed the badge catalog.
4. Serve the FastAPI app with uvicorn (blocking).

Run with::

    uv run python -m gamehunt
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from dotenv import load_dotenv

from gamehunt.config import load_config
from gamehunt.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("gamehunt")


def main() -> None:
    """Bootstrap and serve the Game Hunt API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except FileNotFoundError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    except KeyError as exc:
        logger.critical("config.yaml is missing required key %s", exc)
        sys.exit(1)
    logger.info("Loaded config for %s", cfg.site_name)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    init_db(engine)
    engine.dispose()

    # 4. API server.
    logger.info("Serving on %s:%d", cfg.api_host, cfg.api_port)
    uvicorn.run("gamehunt.api.main:app", host=cfg.api_host, port=cfg.api_port)


if __name__ == "__main__":
    main()
