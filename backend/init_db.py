#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script.

Creates every table registered on the declarative Base. Schema migrations
are not managed; rerunning only creates tables that are missing.

Usage:
    cd backend && python init_db.py
"""
import logging

from app.database import create_tables
from app.utils import setup_logging

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables defined in models."""
    logger.info("Creating database tables...")
    create_tables()
    logger.info("Tables created successfully!")


if __name__ == "__main__":
    setup_logging()
    init_db()
