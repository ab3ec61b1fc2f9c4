"""
Tests for snapshot persistence.

The database layer is mocked; no real connection is opened.
"""
import pytest
from unittest.mock import MagicMock, patch
from sqlalchemy.exc import SQLAlchemyError

from src.fogmap import persistence
from src.fogmap.database import ExplorationSnapshot


STATE = {"visited_cells": [[1, 2], [3, 4]], "total_distance_miles": 1.5}


@pytest.fixture
def db_session():
    """Mock SQLAlchemy session whose query chain returns no row by default."""
    session = MagicMock()
    session.query.return_value.filter.return_value.first.return_value = None
    return session


def configured(db_session):
    return (
        patch("src.fogmap.persistence.is_database_configured", return_value=True),
        patch("src.fogmap.persistence.get_db_session", return_value=db_session),
    )


@pytest.mark.unit
class TestSaveSnapshot:
    """Tests for save_snapshot."""

    def test_no_database(self):
        with patch("src.fogmap.persistence.is_database_configured", return_value=False):
            assert persistence.save_snapshot("s1", STATE) is False

    def test_insert_new_row(self, db_session):
        configured_patch, session_patch = configured(db_session)
        with configured_patch, session_patch:
            assert persistence.save_snapshot("s1", STATE) is True

        row = db_session.add.call_args[0][0]
        assert isinstance(row, ExplorationSnapshot)
        assert row.session_id == "s1"
        assert row.visited_cells == [[1, 2], [3, 4]]
        assert row.visited_cell_count == 2
        assert row.total_distance_miles == 1.5
        db_session.commit.assert_called_once()
        db_session.close.assert_called_once()

    def test_update_existing_row(self, db_session):
        existing = ExplorationSnapshot(session_id="s1", visited_cells=[], visited_cell_count=0)
        db_session.query.return_value.filter.return_value.first.return_value = existing
        configured_patch, session_patch = configured(db_session)
        with configured_patch, session_patch:
            assert persistence.save_snapshot("s1", STATE) is True

        db_session.add.assert_not_called()
        assert existing.visited_cell_count == 2

    def test_database_error_rolls_back(self, db_session):
        db_session.commit.side_effect = SQLAlchemyError("disk full")
        configured_patch, session_patch = configured(db_session)
        with configured_patch, session_patch:
            assert persistence.save_snapshot("s1", STATE) is False

        db_session.rollback.assert_called_once()
        db_session.close.assert_called_once()


@pytest.mark.unit
class TestLoadSnapshot:
    """Tests for load_snapshot."""

    def test_no_database(self):
        with patch("src.fogmap.persistence.is_database_configured", return_value=False):
            assert persistence.load_snapshot("s1") is None

    def test_missing_row(self, db_session):
        configured_patch, session_patch = configured(db_session)
        with configured_patch, session_patch:
            assert persistence.load_snapshot("s1") is None

    def test_existing_row(self, db_session):
        row = ExplorationSnapshot(
            session_id="s1", visited_cells=[[1, 2]], visited_cell_count=1, total_distance_miles=2.5
        )
        db_session.query.return_value.filter.return_value.first.return_value = row
        configured_patch, session_patch = configured(db_session)
        with configured_patch, session_patch:
            state = persistence.load_snapshot("s1")

        assert state == {"visited_cells": [[1, 2]], "total_distance_miles": 2.5}
        db_session.close.assert_called_once()


@pytest.mark.unit
class TestDeleteSnapshot:
    """Tests for delete_snapshot."""

    def test_deleted(self, db_session):
        db_session.query.return_value.filter.return_value.delete.return_value = 1
        configured_patch, session_patch = configured(db_session)
        with configured_patch, session_patch:
            assert persistence.delete_snapshot("s1") is True

    def test_nothing_to_delete(self, db_session):
        db_session.query.return_value.filter.return_value.delete.return_value = 0
        configured_patch, session_patch = configured(db_session)
        with configured_patch, session_patch:
            assert persistence.delete_snapshot("s1") is False
