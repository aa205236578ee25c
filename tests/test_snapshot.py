"""Tests for snapshot assembly and persistence."""

import json
import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from fpl_snapshot.gameweeks import GameweekWindow
from fpl_snapshot.ownership import OwnershipEntry
from fpl_snapshot.player_aggregator import PlayerGameweek, PlayerSummary
from fpl_snapshot.snapshot import (
    DEFAULT_CURRENT_GAMEWEEK, PipelineFailure, Snapshot,
    assemble_snapshot, load_snapshot, write_snapshot,
)
from fpl_snapshot.team_aggregator import TeamGameweek, TeamSummary


def make_team(team_id: int, gameweeks: list[int]) -> TeamSummary:
    return TeamSummary(
        id=team_id, code=team_id * 10, name=f"Team {team_id}", short_name=f"T{team_id}",
        fixtures=[TeamGameweek(gameweek=gw) for gw in gameweeks],
    )


def make_player(player_id: int, team_id: int, gameweeks: list[int]) -> PlayerSummary:
    return PlayerSummary(
        id=player_id, name=f"P{player_id}", full_name=f"Player {player_id}",
        team=f"T{team_id}", team_id=team_id, team_code=team_id * 10, position="MID",
        price=6.5, yellow_cards=1, red_cards=0, selected_by=3.2,
        season_goals=1, season_assists=1, season_minutes=270, season_xg=1.1,
        season_xa=0.4, season_dc=9.0, total_points=30,
        last_matches=[PlayerGameweek(gameweek=gw) for gw in gameweeks],
    )


WINDOW = GameweekWindow(current=3, gameweeks=[1, 2, 3])
UPDATED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestAssembleSnapshot:
    """Test suite for assemble_snapshot."""

    def test_merges_ownership_by_id(self):
        players = [make_player(1, 1, [1, 2, 3]), make_player(2, 1, [1, 2, 3])]
        ownership = {"1": OwnershipEntry(eo10k=55.5, cap10k=20.0)}

        snapshot = assemble_snapshot([make_team(1, [1, 2, 3])], players, ownership, 3, UPDATED_AT)
        data = snapshot.to_dict()

        assert data["players"][0]["eo10k"] == "55.5"
        assert data["players"][0]["cap10k"] == "20.0"
        assert data["players"][0]["eoOverall"] == "0.0"
        assert data["players"][1]["eo10k"] == "0.0"

    def test_document_shape(self):
        snapshot = assemble_snapshot([make_team(1, [1, 2, 3])], [], {}, 3, UPDATED_AT)

        data = snapshot.to_dict()

        assert set(data) == {"updatedAt", "teams", "players", "currentGameweek"}
        assert data["updatedAt"] == "2026-03-01T12:00:00Z"
        assert data["currentGameweek"] == 3

    def test_default_timestamp_is_utc(self):
        snapshot = assemble_snapshot([], [], {}, 0)

        assert snapshot.updated_at.tzinfo is not None


class TestValidate:
    """Test suite for Snapshot.validate."""

    def test_valid(self):
        snapshot = Snapshot(
            updated_at=UPDATED_AT,
            teams=[make_team(1, [1, 2, 3])],
            players=[make_player(1, 1, [1, 2, 3])],
            current_gameweek=3,
        )

        snapshot.validate(WINDOW)

    def test_unknown_team(self):
        snapshot = Snapshot(
            updated_at=UPDATED_AT,
            teams=[make_team(1, [1, 2, 3])],
            players=[make_player(1, 7, [1, 2, 3])],
            current_gameweek=3,
        )

        with pytest.raises(PipelineFailure, match="unknown team"):
            snapshot.validate(WINDOW)

    def test_record_outside_window(self):
        snapshot = Snapshot(
            updated_at=UPDATED_AT,
            teams=[make_team(1, [1, 2, 4])],
            current_gameweek=3,
        )

        with pytest.raises(PipelineFailure, match="outside the window"):
            snapshot.validate(WINDOW)

    def test_window_must_end_at_current(self):
        snapshot = Snapshot(updated_at=UPDATED_AT, current_gameweek=4)

        with pytest.raises(PipelineFailure):
            snapshot.validate(WINDOW)


class TestPersistence:
    """Test suite for write_snapshot and load_snapshot."""

    def test_write_then_load(self, tmp_path):
        path = tmp_path / "public" / "data" / "snapshot.json"
        snapshot = assemble_snapshot([make_team(1, [1, 2, 3])], [make_player(1, 1, [1, 2, 3])], {}, 3, UPDATED_AT)

        write_snapshot(snapshot, path)
        data = load_snapshot(path)

        assert data["currentGameweek"] == 3
        assert len(data["teams"]) == 1
        assert data["players"][0]["teamId"] == 1

    def test_overwrites_previous_file(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text('{"stale": true}')

        write_snapshot(assemble_snapshot([], [], {}, 5, UPDATED_AT), path)

        data = json.loads(path.read_text())
        assert "stale" not in data
        assert data["currentGameweek"] == 5
        # No temporary files left behind
        assert [p.name for p in tmp_path.iterdir()] == ["snapshot.json"]

    def test_load_missing(self, tmp_path):
        assert load_snapshot(tmp_path / "missing.json") is None

    def test_load_corrupt(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text("{not json")

        assert load_snapshot(path) is None

    @pytest.mark.parametrize("document", ["[]", '"snapshot"', "null"])
    def test_load_non_object(self, tmp_path, document):
        path = tmp_path / "snapshot.json"
        path.write_text(document)

        assert load_snapshot(path) is None

    def test_missing_current_gameweek_defaults(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps({"updatedAt": "2026-03-01T12:00:00Z", "teams": [], "players": []}))

        assert load_snapshot(path)["currentGameweek"] == DEFAULT_CURRENT_GAMEWEEK

    def test_stale_snapshot(self, tmp_path):
        path = tmp_path / "snapshot.json"
        old = datetime.now(timezone.utc) - timedelta(days=2)
        path.write_text(json.dumps({"updatedAt": old.isoformat(), "teams": [], "players": []}))

        assert load_snapshot(path, max_age=timedelta(days=1)) is None
        assert load_snapshot(path, max_age=timedelta(days=3)) is not None
