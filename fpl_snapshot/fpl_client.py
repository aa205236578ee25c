"""
FPL API client for the public, read-only Fantasy Premier League endpoints.

Wraps the resilient fetcher and turns raw payloads into typed dataclasses.
"""

import logging
import time
from typing import Any, Optional
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum

from .config import Config
from .fetcher import Fetcher, FetchFailure


# =============================================================================
# Helpers
# =============================================================================

def to_float(value: Any) -> float:
    """Parse FPL numeric strings ("0.45") and nulls into floats."""
    try:
        return float(value or 0)
    except (ValueError, TypeError):
        return 0.0


def to_int(value: Any) -> int:
    try:
        return int(float(value or 0))
    except (ValueError, TypeError):
        return 0


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None


# =============================================================================
# Enums
# =============================================================================

class Position(IntEnum):
    """Player positions."""
    GOALKEEPER = 1
    DEFENDER = 2
    MIDFIELDER = 3
    FORWARD = 4

    @property
    def short_name(self) -> str:
        return {1: "GK", 2: "DEF", 3: "MID", 4: "FWD"}[self.value]

    def __str__(self) -> str:
        return self.name.title()


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class Player:
    """An FPL player (bootstrap "element") with season-cumulative stats."""
    id: int
    web_name: str
    first_name: str
    second_name: str
    team: int
    element_type: int  # 1=GK, 2=DEF, 3=MID, 4=FWD
    now_cost: float  # Price in millions
    total_points: int
    selected_by_percent: float
    minutes: int
    goals_scored: int
    assists: int
    expected_goals: float
    expected_assists: float
    yellow_cards: int
    red_cards: int

    @property
    def position(self) -> Optional[Position]:
        try:
            return Position(self.element_type)
        except ValueError:
            return None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.second_name}".strip()

    @classmethod
    def from_api(cls, data: dict) -> "Player":
        """Create Player from API response data."""
        return cls(
            id=data["id"],
            web_name=data["web_name"],
            first_name=data.get("first_name", ""),
            second_name=data.get("second_name", ""),
            team=data["team"],
            element_type=data["element_type"],
            now_cost=data.get("now_cost", 0) / 10,
            total_points=to_int(data.get("total_points")),
            selected_by_percent=to_float(data.get("selected_by_percent")),
            minutes=to_int(data.get("minutes")),
            goals_scored=to_int(data.get("goals_scored")),
            assists=to_int(data.get("assists")),
            expected_goals=to_float(data.get("expected_goals")),
            expected_assists=to_float(data.get("expected_assists")),
            yellow_cards=to_int(data.get("yellow_cards")),
            red_cards=to_int(data.get("red_cards")),
        )


@dataclass
class Team:
    """Represents a Premier League team."""
    id: int
    name: str
    short_name: str
    code: int

    @classmethod
    def from_api(cls, data: dict) -> "Team":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            short_name=data["short_name"],
            code=data.get("code", 0),
        )


@dataclass
class Gameweek:
    """Represents an FPL gameweek/event."""
    id: int
    name: str
    is_current: bool
    finished: bool
    deadline_time: Optional[datetime] = None

    @property
    def is_eligible(self) -> bool:
        """Whether the gameweek has started producing stats."""
        return self.is_current or self.finished

    @classmethod
    def from_api(cls, data: dict) -> "Gameweek":
        return cls(
            id=data["id"],
            name=data.get("name", f"Gameweek {data['id']}"),
            is_current=bool(data.get("is_current", False)),
            finished=bool(data.get("finished", False)),
            deadline_time=_parse_datetime(data.get("deadline_time")),
        )


@dataclass
class Fixture:
    """Represents a Premier League fixture."""
    id: int
    gameweek: Optional[int]
    home_team: int
    away_team: int
    finished: bool
    started: bool
    home_score: Optional[int]
    away_score: Optional[int]

    def involves(self, team_id: int) -> bool:
        return team_id in (self.home_team, self.away_team)

    def is_home(self, team_id: int) -> bool:
        return self.home_team == team_id

    def opponent_of(self, team_id: int) -> int:
        return self.away_team if self.home_team == team_id else self.home_team

    def score_for(self, team_id: int) -> str:
        """Scoreline from the given team's perspective, e.g. '2-1'."""
        home = self.home_score or 0
        away = self.away_score or 0
        if self.is_home(team_id):
            return f"{home}-{away}"
        return f"{away}-{home}"

    @classmethod
    def from_api(cls, data: dict) -> "Fixture":
        return cls(
            id=data["id"],
            gameweek=data.get("event"),
            home_team=data["team_h"],
            away_team=data["team_a"],
            finished=bool(data.get("finished", False)),
            started=bool(data.get("started", False)),
            home_score=data.get("team_h_score"),
            away_score=data.get("team_a_score"),
        )


@dataclass
class PlayerMatch:
    """One match row from a player's element-summary history."""
    round: int
    opponent_team: int
    was_home: bool
    minutes: int
    goals_scored: int
    assists: int
    total_points: int
    expected_goals: float
    expected_assists: float
    expected_goal_involvements: float
    defensive_contribution: float

    @classmethod
    def from_api(cls, data: dict) -> "PlayerMatch":
        return cls(
            round=data["round"],
            opponent_team=data.get("opponent_team", 0),
            was_home=bool(data.get("was_home", False)),
            minutes=to_int(data.get("minutes")),
            goals_scored=to_int(data.get("goals_scored")),
            assists=to_int(data.get("assists")),
            total_points=to_int(data.get("total_points")),
            expected_goals=to_float(data.get("expected_goals")),
            expected_assists=to_float(data.get("expected_assists")),
            expected_goal_involvements=to_float(data.get("expected_goal_involvements")),
            defensive_contribution=to_float(data.get("defensive_contribution")),
        )


@dataclass
class Bootstrap:
    """Parsed bootstrap-static payload."""
    teams: list[Team]
    players: list[Player]
    gameweeks: list[Gameweek]

    @classmethod
    def from_api(cls, data: dict) -> "Bootstrap":
        return cls(
            teams=[Team.from_api(t) for t in data.get("teams", [])],
            players=[Player.from_api(p) for p in data.get("elements", [])],
            gameweeks=sorted(
                (Gameweek.from_api(e) for e in data.get("events", [])),
                key=lambda gw: gw.id,
            ),
        )


# =============================================================================
# FPL Client
# =============================================================================

class FPLClient:
    """
    Async client for the public FPL endpoints.

    Usage:
        async with FPLClient(config) as client:
            bootstrap = await client.get_bootstrap()
            fixtures = await client.get_fixtures()
    """

    def __init__(self, config: Config, fetcher: Optional[Fetcher] = None):
        """
        Initialize the FPL client.

        Args:
            config: Application configuration.
            fetcher: Fetcher to use. Created from config when omitted.
        """
        self.config = config
        self.logger = logging.getLogger("fpl_snapshot.client")
        self.fetcher = fetcher or Fetcher(config)
        self.base_url = config.api_base_url.rstrip("/")

        self._bootstrap_cache: Optional[Bootstrap] = None
        self._bootstrap_cache_time: float = 0
        self._cache_ttl: float = 300  # 5 minutes cache TTL

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "FPLClient":
        await self.fetcher.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.fetcher.close()
        self._bootstrap_cache = None
        self._bootstrap_cache_time = 0

    def url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    async def get_bootstrap(self, force_refresh: bool = False) -> Bootstrap:
        """
        Get the bootstrap-static data (cached).

        Contains all players, teams and gameweeks.
        """
        now = time.time()
        if (not force_refresh and
            self._bootstrap_cache and
            (now - self._bootstrap_cache_time) < self._cache_ttl):
            return self._bootstrap_cache

        data = await self.fetcher.fetch_json(self.url("bootstrap-static/"))
        self._bootstrap_cache = Bootstrap.from_api(data)
        self._bootstrap_cache_time = now

        self.logger.info(
            f"Loaded bootstrap: {len(self._bootstrap_cache.teams)} teams, "
            f"{len(self._bootstrap_cache.players)} players, "
            f"{len(self._bootstrap_cache.gameweeks)} gameweeks"
        )
        return self._bootstrap_cache

    async def get_fixtures(self) -> list[Fixture]:
        """Get every fixture of the season."""
        data = await self.fetcher.fetch_json(self.url("fixtures/"))
        fixtures = [Fixture.from_api(f) for f in data if f]
        self.logger.debug(f"Loaded {len(fixtures)} fixtures")
        return fixtures

    async def get_live_stats(self, gameweek: int) -> dict[int, dict]:
        """
        Get per-player live statistics for a gameweek.

        Returns:
            Mapping of player id to that player's stats dictionary.
        """
        data = await self.fetcher.fetch_json(self.url(f"event/{gameweek}/live/"))
        return {
            element["id"]: element.get("stats") or {}
            for element in data.get("elements", [])
        }

    async def get_player_history(self, player_id: int) -> list[PlayerMatch]:
        """Get the season's match history for one player."""
        url = self.url(f"element-summary/{player_id}/")
        data = await self.fetcher.fetch_json(url)
        if not isinstance(data, dict):
            raise FetchFailure(f"Unexpected element-summary payload for player {player_id}", url=url)
        return [PlayerMatch.from_api(m) for m in data.get("history") or []]
