"""Tests for the MCP server tool functions."""
from unittest.mock import MagicMock, patch

import pytest

from run_rank.db import Database
from run_rank.mcp_server import get_recent_runs, get_title_leaderboard, get_user_stats, get_user_titles
from run_rank.recalc import Recalculator


@pytest.fixture
def real_db(tmp_path):
    db_path = tmp_path / "test.db"
    database = Database(db_path=db_path)
    database.create_user("alice", "Alice")
    recalc = Recalculator(database)
    recalc.log_activity("alice", "2025-09-29", 13.0)
    recalc.log_activity("alice", "2025-09-30", 5.0)
    database.close()
    return db_path


class TestGetUserStats:
    @patch("run_rank.mcp_server._get_db")
    def test_unknown_user(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.get_user.return_value = None
        mock_get_db.return_value = mock_db
        result = get_user_stats("ghost")
        assert "error" in result
        mock_db.close.assert_called_once()

    @patch("run_rank.mcp_server._get_db")
    def test_no_runs(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.get_user.return_value = {"id": "alice", "name": "Alice"}
        mock_db.get_user_aggregate.return_value = None
        mock_get_db.return_value = mock_db
        assert get_user_stats("alice") == {"error": "No runs logged yet."}

    def test_from_database(self, real_db):
        with patch("run_rank.mcp_server._get_db", side_effect=lambda: Database(db_path=real_db)):
            result = get_user_stats("alice")
        assert result["name"] == "Alice"
        assert result["total_runs"] == 2
        assert result["total_distance"] == 18.0
        assert result["level"] >= 2


class TestGetRecentRuns:
    def test_newest_first(self, real_db):
        with patch("run_rank.mcp_server._get_db", side_effect=lambda: Database(db_path=real_db)):
            runs = get_recent_runs("alice", limit=1)
        assert len(runs) == 1
        assert runs[0]["date"] == "2025-09-30"
        assert runs[0]["streak_day"] == 2


class TestTitles:
    def test_leaderboard(self, real_db):
        with patch("run_rank.mcp_server._get_db", side_effect=lambda: Database(db_path=real_db)):
            board = get_title_leaderboard()
        longest = next(t for t in board if t["id"] == "longest_run")
        assert longest["holder"]["user_id"] == "alice"
        assert longest["holder"]["value"] == 13.0

    def test_user_titles(self, real_db):
        with patch("run_rank.mcp_server._get_db", side_effect=lambda: Database(db_path=real_db)):
            titles = get_user_titles("alice")
        assert [t["title_id"] for t in titles] == ["longest_run"]
        assert titles[0]["is_current_holder"] is True
