"""
Team-level attack and defence form across the gameweek window.

Per-gameweek team xG is reconstructed from the live endpoint by summing the
expected_goals of every player on the team. Double gameweeks split that total
evenly across the team's fixtures, and the opponent's total is split across
the opponent's own fixture count when attributed as expected goals conceded.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .fpl_client import Player, Team, to_float
from .gameweeks import FixtureIndex, GameweekWindow


# team id -> gameweek -> summed player xG
TeamXGMap = dict[int, dict[int, float]]


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class TeamGameweek:
    """A team's aggregated output for one gameweek."""
    gameweek: int
    opponent: str = "-"
    opponent_id: Optional[int] = None
    is_home: bool = True
    xg: float = 0.0
    xgc: float = 0.0
    score: str = "-"
    is_blank: bool = True

    def to_dict(self) -> dict:
        return {
            "gameweek": self.gameweek,
            "opponent": self.opponent,
            "opponentId": self.opponent_id,
            "isHome": self.is_home,
            "xg": round(self.xg, 2),
            "gc": round(self.xgc, 2),
            "score": self.score,
            "isBlank": self.is_blank,
        }


@dataclass
class TeamSummary:
    """Team identity plus its form across the window."""
    id: int
    code: int
    name: str
    short_name: str
    fixtures: list[TeamGameweek] = field(default_factory=list)

    @property
    def played(self) -> list[TeamGameweek]:
        return [f for f in self.fixtures if not f.is_blank]

    @property
    def total_xg(self) -> float:
        return sum(f.xg for f in self.fixtures)

    @property
    def total_xgc(self) -> float:
        return sum(f.xgc for f in self.fixtures)

    @property
    def avg_xg(self) -> float:
        played = len(self.played)
        return self.total_xg / played if played else 0.0

    @property
    def avg_xgc(self) -> float:
        played = len(self.played)
        return self.total_xgc / played if played else 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "shortName": self.short_name,
            "fixtures": [f.to_dict() for f in self.fixtures],
            "totalXG": round(self.total_xg, 2),
            "avgXG": round(self.avg_xg, 2),
            "totalGC": round(self.total_xgc, 2),
            "avgGC": round(self.avg_xgc, 2),
        }


# =============================================================================
# Aggregation
# =============================================================================

def build_team_xg_map(live_by_gameweek: dict[int, dict[int, dict]], players: list[Player]) -> TeamXGMap:
    """
    Sum live player expected goals into per-team, per-gameweek totals.

    Args:
        live_by_gameweek: Gameweek -> player id -> live stats.
        players: Bootstrap players, used to resolve each player's team.

    Returns:
        Mapping of team id to gameweek to accumulated xG.
    """
    player_teams = {p.id: p.team for p in players}
    xg_map: TeamXGMap = {}

    for gameweek, elements in live_by_gameweek.items():
        for player_id, stats in elements.items():
            team_id = player_teams.get(player_id)
            if team_id is None:
                continue
            team_gws = xg_map.setdefault(team_id, {})
            team_gws[gameweek] = team_gws.get(gameweek, 0.0) + to_float(stats.get("expected_goals"))

    return xg_map


class TeamAggregator:
    """Builds per-team window summaries from fixtures and live xG."""

    def __init__(self, teams: list[Team], fixture_index: FixtureIndex, xg_map: TeamXGMap):
        self.logger = logging.getLogger("fpl_snapshot.teams")
        self.teams = teams
        self.team_map = {t.id: t for t in teams}
        self.fixture_index = fixture_index
        self.xg_map = xg_map

    def team_xg(self, team_id: int, gameweek: int) -> float:
        return self.xg_map.get(team_id, {}).get(gameweek, 0.0)

    def aggregate_gameweek(self, team: Team, gameweek: int) -> TeamGameweek:
        """Aggregate one team's finished fixtures in one gameweek."""
        fixtures = self.fixture_index.fixtures_for(team.id, gameweek)
        if not fixtures:
            return TeamGameweek(gameweek=gameweek)

        team_total = self.team_xg(team.id, gameweek)
        xg = 0.0
        xgc = 0.0
        opponents = []
        scores = []

        for fixture in fixtures:
            opponent_id = fixture.opponent_of(team.id)
            opponent = self.team_map.get(opponent_id)
            if opponent:
                opponents.append(opponent.short_name)
            scores.append(fixture.score_for(team.id))

            xg += team_total / len(fixtures)

            opponent_total = self.team_xg(opponent_id, gameweek)
            opponent_games = self.fixture_index.count(opponent_id, gameweek)
            if opponent_total and opponent_games:
                xgc += opponent_total / opponent_games

        first = fixtures[0]
        return TeamGameweek(
            gameweek=gameweek,
            opponent="/".join(opponents),
            opponent_id=first.opponent_of(team.id),
            is_home=first.is_home(team.id),
            xg=xg,
            xgc=xgc,
            score=", ".join(scores),
            is_blank=False,
        )

    def aggregate(self, window: GameweekWindow) -> list[TeamSummary]:
        """Aggregate every team across the window."""
        summaries = []
        for team in self.teams:
            summaries.append(TeamSummary(
                id=team.id,
                code=team.code,
                name=team.name,
                short_name=team.short_name,
                fixtures=[self.aggregate_gameweek(team, gw) for gw in window],
            ))

        self.logger.info(f"Aggregated {len(summaries)} teams over GW{window.gameweeks[0] if window.gameweeks else 0}-{window.current}")
        return summaries
