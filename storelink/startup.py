"""
startup.py — Idempotent schema bootstrap

Tables and indexes are defined in the ORM models and created with
Base.metadata.create_all(checkfirst=True). Alembic owns changes after the
baseline; this only makes a fresh database usable.

Called by: main.py lifespan
Depends on: database.py (engine), models
"""

import os

from loguru import logger

from .database import engine


def run_startup_migrations() -> None:
    """Safe to call on every app boot."""
    if os.environ.get("TESTING"):
        logger.info("TESTING mode — skipping startup migrations")
        return

    from .models import Base

    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("ORM schema sync complete (create_all checkfirst=True)")
