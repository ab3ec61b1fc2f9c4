"""
Database connection for exploration snapshots.

The engine keeps its live state in memory; this table is where a session's
serialized state (visited cells + distance) is parked between app runs.
Any SQLAlchemy URL works (PostgreSQL in production, SQLite locally).
"""
import os
from datetime import datetime, timezone

from dotenv import load_dotenv
from sqlalchemy import create_engine, Column, String, Float, Integer, DateTime, JSON
from sqlalchemy.orm import declarative_base, sessionmaker

# Load environment variables from .env file
load_dotenv()

# Database URL loaded from environment variable
DATABASE_URL = os.getenv("FOGMAP_DATABASE_URL")

# Create engine and session factory
# We only create these if DATABASE_URL is set (allows tests to run without DB)
engine = None
SessionLocal = None

if DATABASE_URL:
    engine = create_engine(DATABASE_URL)
    SessionLocal = sessionmaker(bind=engine)

# Base class for our models
Base = declarative_base()


class ExplorationSnapshot(Base):
    """
    One row per exploration session: the output of serialize_state().

    visited_cells holds [lat_index, lon_index] pairs in insertion order, so
    a capped grid evicts the same cells after a reload.
    """
    __tablename__ = "exploration_snapshots"

    session_id = Column(String(64), primary_key=True)
    visited_cells = Column(JSON, nullable=False)
    visited_cell_count = Column(Integer, nullable=False)
    total_distance_miles = Column(Float, nullable=False, default=0.0)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


def get_db_session():
    """
    Get a database session.

    Returns None if database is not configured (useful for tests).
    """
    if SessionLocal is None:
        return None
    return SessionLocal()


def is_database_configured():
    """Check if database connection is configured."""
    return DATABASE_URL is not None and engine is not None


def create_tables() -> bool:
    """Create the snapshot table if it does not exist yet."""
    if not is_database_configured():
        return False
    Base.metadata.create_all(engine)
    return True
