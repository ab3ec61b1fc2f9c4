"""
Snapshot storage for exploration state.

Stores the payload produced by ExplorationSession.serialize_state() and hands
it back for restore_state(). Every helper degrades to a no-op (False/None)
when no database is configured or the database fails, so tracking keeps
working without storage.
"""
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from .database import get_db_session, ExplorationSnapshot, is_database_configured

log = structlog.get_logger()


def save_snapshot(session_id: str, state: dict) -> bool:
    """
    Insert or update the stored state for a session.

    Args:
        session_id: Exploration session identifier
        state: {"visited_cells": [[lat_index, lon_index], ...], "total_distance_miles": float}

    Returns:
        True if saved successfully, False otherwise
    """
    if not is_database_configured():
        return False

    session = get_db_session()
    if session is None:
        return False

    try:
        cells = [list(pair) for pair in state["visited_cells"]]
        row = session.query(ExplorationSnapshot).filter(
            ExplorationSnapshot.session_id == session_id
        ).first()

        if row is None:
            row = ExplorationSnapshot(session_id=session_id)
            session.add(row)

        row.visited_cells = cells
        row.visited_cell_count = len(cells)
        row.total_distance_miles = float(state["total_distance_miles"])
        row.updated_at = datetime.now(timezone.utc)
        session.commit()
        log.info("snapshot.saved", session_id=session_id, cells=len(cells))
        return True
    except SQLAlchemyError as e:
        session.rollback()
        log.error("snapshot.save_failed", session_id=session_id, error=str(e))
        return False
    finally:
        session.close()


def load_snapshot(session_id: str) -> Optional[dict]:
    """
    Fetch the stored state for a session.

    Returns:
        Dict accepted by restore_state(), or None if missing / no database
    """
    if not is_database_configured():
        return None

    session = get_db_session()
    if session is None:
        return None

    try:
        row = session.query(ExplorationSnapshot).filter(
            ExplorationSnapshot.session_id == session_id
        ).first()

        if row is None:
            return None

        return {
            "visited_cells": [list(pair) for pair in row.visited_cells],
            "total_distance_miles": row.total_distance_miles,
        }
    except SQLAlchemyError as e:
        log.error("snapshot.load_failed", session_id=session_id, error=str(e))
        return None
    finally:
        session.close()


def delete_snapshot(session_id: str) -> bool:
    """Remove a stored snapshot. Returns True if a row was deleted."""
    if not is_database_configured():
        return False

    session = get_db_session()
    if session is None:
        return False

    try:
        deleted = session.query(ExplorationSnapshot).filter(
            ExplorationSnapshot.session_id == session_id
        ).delete()
        session.commit()
        return bool(deleted)
    except SQLAlchemyError as e:
        session.rollback()
        log.error("snapshot.delete_failed", session_id=session_id, error=str(e))
        return False
    finally:
        session.close()
