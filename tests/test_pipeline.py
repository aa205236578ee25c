"""End-to-end tests for the snapshot pipeline."""

import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from fpl_snapshot.config import Config
from fpl_snapshot.fetcher import FetchFailure
from fpl_snapshot.fpl_client import (
    Bootstrap, FPLClient, Fixture, Gameweek, Player, PlayerMatch, Team,
)
from fpl_snapshot.ownership import OwnershipEntry, OwnershipExtractor
from fpl_snapshot.pipeline import SnapshotPipeline
from fpl_snapshot.snapshot import PipelineFailure


def make_player(player_id: int, team: int, element_type: int, total_points: int) -> Player:
    return Player(
        id=player_id, web_name=f"P{player_id}", first_name="", second_name=f"P{player_id}",
        team=team, element_type=element_type, now_cost=5.0 + player_id,
        total_points=total_points, selected_by_percent=10.0, minutes=270,
        goals_scored=1, assists=1, expected_goals=1.0, expected_assists=0.5,
        yellow_cards=0, red_cards=0,
    )


BOOTSTRAP = Bootstrap(
    teams=[
        Team(id=1, name="Arsenal", short_name="ARS", code=3),
        Team(id=2, name="Brentford", short_name="BRE", code=94),
    ],
    players=[
        make_player(1, 1, 4, 40),
        make_player(2, 1, 2, 25),
        make_player(3, 2, 3, 30),
        make_player(4, 2, 1, 15),
    ],
    gameweeks=[
        Gameweek(id=1, name="Gameweek 1", is_current=False, finished=True),
        Gameweek(id=2, name="Gameweek 2", is_current=False, finished=True),
        Gameweek(id=3, name="Gameweek 3", is_current=True, finished=True),
        Gameweek(id=4, name="Gameweek 4", is_current=False, finished=False),
    ],
)

FIXTURES = [
    Fixture(id=1, gameweek=1, home_team=1, away_team=2, finished=True, started=True, home_score=2, away_score=1),
    Fixture(id=2, gameweek=2, home_team=2, away_team=1, finished=True, started=True, home_score=0, away_score=0),
    Fixture(id=3, gameweek=3, home_team=1, away_team=2, finished=True, started=True, home_score=1, away_score=1),
    Fixture(id=4, gameweek=4, home_team=2, away_team=1, finished=False, started=False, home_score=None, away_score=None),
]

LIVE = {
    1: {1: {"expected_goals": "1.20"}, 2: {"expected_goals": "0.10"}, 3: {"expected_goals": "0.70"}, 4: {}},
    2: {1: {"expected_goals": "0.40"}, 3: {"expected_goals": "0.90"}},
    3: {1: {"expected_goals": "0.80"}, 3: {"expected_goals": "0.30"}},
}


def history_for(player_id: int) -> list[PlayerMatch]:
    player = next(p for p in BOOTSTRAP.players if p.id == player_id)
    opponent = 2 if player.team == 1 else 1
    return [
        PlayerMatch(
            round=gw, opponent_team=opponent, was_home=True, minutes=90,
            goals_scored=0, assists=0, total_points=2,
            expected_goals=0.3, expected_assists=0.1,
            expected_goal_involvements=0.4, defensive_contribution=3,
        )
        for gw in (1, 2, 3)
    ]


@pytest.fixture
def config():
    return Config(batch_pause=0, player_batch_size=2)


@pytest.fixture
def mock_client(config):
    client = MagicMock(spec=FPLClient)
    client.config = config
    client.get_bootstrap = AsyncMock(return_value=BOOTSTRAP)
    client.get_fixtures = AsyncMock(return_value=FIXTURES)
    client.get_live_stats = AsyncMock(side_effect=lambda gw: LIVE[gw])
    client.get_player_history = AsyncMock(side_effect=history_for)
    return client


@pytest.fixture
def mock_ownership():
    ownership = MagicMock(spec=OwnershipExtractor)
    ownership.fetch = AsyncMock(return_value={"1": OwnershipEntry(eo10k=88.8, cap10k=40.1)})
    return ownership


class TestSnapshotPipeline:
    """Test suite for SnapshotPipeline."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, config, mock_client, mock_ownership):
        snapshot = await SnapshotPipeline(config, mock_client, mock_ownership).run()

        assert snapshot.current_gameweek == 3
        assert len(snapshot.teams) == 2
        assert len(snapshot.players) == 4

        team_ids = {t.id for t in snapshot.teams}
        assert all(p.team_id in team_ids for p in snapshot.players)

        data = snapshot.to_dict()
        assert [p["id"] for p in data["players"]] == [1, 3, 2, 4]
        assert data["players"][0]["eo10k"] == "88.8"
        assert data["players"][1]["eo10k"] == "0.0"

    @pytest.mark.asyncio
    async def test_team_xg_from_live_data(self, config, mock_client, mock_ownership):
        snapshot = await SnapshotPipeline(config, mock_client, mock_ownership).run()
        ars = next(t for t in snapshot.teams if t.id == 1)

        assert [f.gameweek for f in ars.fixtures] == [1, 2, 3]
        assert ars.fixtures[0].xg == pytest.approx(1.3)
        assert ars.fixtures[0].xgc == pytest.approx(0.7)
        assert ars.fixtures[1].is_home is False
        assert ars.total_xg == pytest.approx(2.5)

    @pytest.mark.asyncio
    async def test_player_window(self, config, mock_client, mock_ownership):
        snapshot = await SnapshotPipeline(config, mock_client, mock_ownership).run()
        player = snapshot.players[0]

        assert player.total_minutes == 270
        assert player.total_xgi == pytest.approx(1.2)
        assert player.xgi_per_90 == pytest.approx(0.4)
        assert player.dc_per_90 == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_failed_live_gameweek_is_skipped(self, config, mock_client, mock_ownership):
        def live(gw):
            if gw == 2:
                raise FetchFailure("HTTP 502", status_code=502)
            return LIVE[gw]

        mock_client.get_live_stats = AsyncMock(side_effect=live)

        snapshot = await SnapshotPipeline(config, mock_client, mock_ownership).run()
        ars = next(t for t in snapshot.teams if t.id == 1)

        assert ars.fixtures[1].is_blank is False
        assert ars.fixtures[1].xg == 0

    @pytest.mark.asyncio
    async def test_bootstrap_failure_is_fatal(self, config, mock_client, mock_ownership, tmp_path):
        mock_client.get_bootstrap = AsyncMock(side_effect=FetchFailure("HTTP 500", status_code=500))
        path = tmp_path / "snapshot.json"

        with pytest.raises(PipelineFailure):
            await SnapshotPipeline(config, mock_client, mock_ownership).run_and_save(path)

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_run_and_save(self, config, mock_client, mock_ownership, tmp_path):
        path = tmp_path / "data" / "snapshot.json"

        await SnapshotPipeline(config, mock_client, mock_ownership).run_and_save(path)

        assert path.exists()
        assert '"currentGameweek": 3' in path.read_text()
