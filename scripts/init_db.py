#!/usr/bin/env python3
"""
Initialize the Lesson Library curation database.

Creates the lesson, archive, duplicate review and user profile tables.
Works against PostgreSQL in production or any SQLAlchemy URL given in
DATABASE_URL.

Usage:
    python scripts/init_db.py [--drop]

Options:
    --drop  Drop existing tables before creating (USE WITH CAUTION!)
"""

import sys
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger
from sqlalchemy import inspect, text

from curation.config import settings
from curation.database import engine, Base, SessionLocal


def server_version(session) -> str | None:
    """PostgreSQL server version, or None on other backends."""
    if settings.database.is_sqlite:
        return None
    return session.execute(text("SHOW server_version;")).scalar()


def main():
    parser = argparse.ArgumentParser(description="Initialize the Lesson Library curation database")
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing tables before creating (USE WITH CAUTION!)",
    )
    args = parser.parse_args()

    logger.info("=" * 60)
    logger.info("Lesson Library - Database Initialization")
    logger.info("=" * 60)

    session = SessionLocal()

    try:
        version = server_version(session)
        if version:
            logger.info(f"PostgreSQL version: {version}")

        # Drop tables if requested
        if args.drop:
            logger.warning("Dropping all existing tables...")
            confirm = input("Are you sure you want to drop all tables? (yes/no): ")
            if confirm.lower() == "yes":
                Base.metadata.drop_all(engine)
                logger.info("Tables dropped.")
            else:
                logger.info("Drop cancelled.")
                sys.exit(0)

        logger.info("Creating database tables...")
        Base.metadata.create_all(engine)
        logger.info("Tables created successfully!")

        tables = inspect(engine).get_table_names()
        logger.info(f"Tables in database: {tables}")

        logger.info("=" * 60)
        logger.info("Database initialization complete!")
        logger.info("=" * 60)

    except Exception as e:
        logger.error(f"Error during initialization: {e}")
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
