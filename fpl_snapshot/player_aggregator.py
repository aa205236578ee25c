"""
Player form across the gameweek window, plus season-level rates.

Histories are fetched from element-summary in fixed-size batches: requests in a
batch run concurrently and batches run one after another with a short pause,
keeping the fan-out against the FPL API bounded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from .config import Config
from .fetcher import FetchFailure
from .fpl_client import FPLClient, Player, PlayerMatch, Team
from .gameweeks import FixtureIndex, GameweekWindow
from .ownership import OwnershipEntry


class PlayerFetchFailure(Exception):
    """Raised when a player's history cannot be fetched or parsed."""
    def __init__(self, player_id: int, cause: Exception):
        super().__init__(f"History unavailable for player {player_id}: {cause}")
        self.player_id = player_id
        self.cause = cause


def per_90(total: float, minutes: float) -> float:
    """Rate per 90 minutes, 0 when no minutes were played."""
    return (total / minutes) * 90 if minutes > 0 else 0.0


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class PlayerGameweek:
    """A player's aggregated output for one gameweek."""
    gameweek: int
    opponent: str = "-"
    was_home: bool = True
    xgi: float = 0.0
    xg: float = 0.0
    xa: float = 0.0
    dc: float = 0.0
    goals: int = 0
    assists: int = 0
    minutes: int = 0
    points: int = 0
    is_blank: bool = True

    def to_dict(self) -> dict:
        return {
            "gameweek": self.gameweek,
            "opponent": self.opponent,
            "wasHome": self.was_home,
            "xGI": round(self.xgi, 2),
            "xG": round(self.xg, 2),
            "xA": round(self.xa, 2),
            "DC": round(self.dc, 2),
            "goals": self.goals,
            "assists": self.assists,
            "minutes": self.minutes,
            "points": self.points,
            "isBlank": self.is_blank,
        }


@dataclass
class PlayerSummary:
    """Player identity, window form, season totals and ownership."""
    id: int
    name: str
    full_name: str
    team: str
    team_id: int
    team_code: int
    position: str
    price: float
    yellow_cards: int
    red_cards: int
    selected_by: float
    # Season-cumulative
    season_goals: int
    season_assists: int
    season_minutes: int
    season_xg: float
    season_xa: float
    season_dc: float
    total_points: int
    last_matches: list[PlayerGameweek] = field(default_factory=list)
    ownership: OwnershipEntry = field(default_factory=OwnershipEntry)

    @property
    def total_minutes(self) -> int:
        return sum(m.minutes for m in self.last_matches)

    @property
    def total_xgi(self) -> float:
        return sum(m.xgi for m in self.last_matches)

    @property
    def total_xg(self) -> float:
        return sum(m.xg for m in self.last_matches)

    @property
    def total_xa(self) -> float:
        return sum(m.xa for m in self.last_matches)

    @property
    def total_dc(self) -> float:
        return sum(m.dc for m in self.last_matches)

    @property
    def xgi_per_90(self) -> float:
        return per_90(self.total_xgi, self.total_minutes)

    @property
    def dc_per_90(self) -> float:
        return per_90(self.season_dc, self.season_minutes)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "fullName": self.full_name,
            "team": self.team,
            "teamId": self.team_id,
            "teamCode": self.team_code,
            "position": self.position,
            "price": self.price,
            "yellowCards": self.yellow_cards,
            "redCards": self.red_cards,
            "selectedBy": self.selected_by,
            "xG": round(self.total_xg, 2),
            "xA": round(self.total_xa, 2),
            "xGI": round(self.total_xgi, 2),
            "DC": round(self.total_dc, 2),
            "xGIPer90": round(self.xgi_per_90, 2),
            "dcPer90": round(self.dc_per_90, 2),
            "last6Matches": [m.to_dict() for m in self.last_matches],
            "totalMinutes": self.total_minutes,
            "seasonXG": self.season_xg,
            "seasonXA": self.season_xa,
            "seasonGoals": self.season_goals,
            "seasonAssists": self.season_assists,
            "seasonMinutes": self.season_minutes,
            "totalPoints": self.total_points,
        }
        data.update(self.ownership.to_dict())
        return data


# =============================================================================
# Aggregation
# =============================================================================

def select_top_players(players: list[Player], limit: int) -> list[Player]:
    """Top players by season points, highest first."""
    return sorted(players, key=lambda p: p.total_points, reverse=True)[:limit]


def aggregate_gameweek(
    player: Player,
    gameweek: int,
    matches: list[PlayerMatch],
    fixture_index: FixtureIndex,
    team_map: dict[int, Team],
) -> PlayerGameweek:
    """
    Aggregate a player's match rows for one gameweek.

    A gameweek is blank only when neither the player nor the team played. If
    the team played without the player, a zero-stat record still names the
    opponent(s).
    """
    team_fixtures = fixture_index.fixtures_for(player.team, gameweek)

    if not matches:
        if not team_fixtures:
            return PlayerGameweek(gameweek=gameweek)

        opponents = []
        for fixture in team_fixtures:
            opponent = team_map.get(fixture.opponent_of(player.team))
            opponents.append(opponent.short_name if opponent else "UNK")
        return PlayerGameweek(
            gameweek=gameweek,
            opponent="/".join(opponents),
            was_home=team_fixtures[0].is_home(player.team),
            is_blank=False,
        )

    record = PlayerGameweek(gameweek=gameweek, was_home=matches[0].was_home, is_blank=False)
    opponents = []
    for match in matches:
        opponent = team_map.get(match.opponent_team)
        if opponent:
            opponents.append(opponent.short_name)
        record.xgi += match.expected_goal_involvements
        record.xg += match.expected_goals
        record.xa += match.expected_assists
        record.dc += match.defensive_contribution
        record.goals += match.goals_scored
        record.assists += match.assists
        record.minutes += match.minutes
        record.points += match.total_points
    record.opponent = "/".join(opponents)
    return record


def summarize_player(
    player: Player,
    history: list[PlayerMatch],
    window: GameweekWindow,
    fixture_index: FixtureIndex,
    team_map: dict[int, Team],
) -> PlayerSummary:
    """Build a player's summary from their full season history."""
    team = team_map.get(player.team)
    position = player.position

    last_matches = [
        aggregate_gameweek(
            player,
            gw,
            [m for m in history if m.round == gw],
            fixture_index,
            team_map,
        )
        for gw in window
    ]

    return PlayerSummary(
        id=player.id,
        name=player.web_name,
        full_name=player.full_name,
        team=team.short_name if team else "UNK",
        team_id=player.team,
        team_code=team.code if team else 0,
        position=position.short_name if position else "",
        price=player.now_cost,
        yellow_cards=player.yellow_cards,
        red_cards=player.red_cards,
        selected_by=player.selected_by_percent,
        season_goals=player.goals_scored,
        season_assists=player.assists,
        season_minutes=player.minutes,
        season_xg=player.expected_goals,
        season_xa=player.expected_assists,
        season_dc=sum(m.defensive_contribution for m in history),
        total_points=player.total_points,
        last_matches=last_matches,
    )


class PlayerAggregator:
    """Fetches player histories in batches and summarises them."""

    def __init__(
        self,
        config: Config,
        client: FPLClient,
        teams: list[Team],
        fixture_index: FixtureIndex,
    ):
        self.config = config
        self.client = client
        self.logger = logging.getLogger("fpl_snapshot.players")
        self.team_map = {t.id: t for t in teams}
        self.fixture_index = fixture_index

    async def _summarize(self, player: Player, window: GameweekWindow) -> PlayerSummary:
        try:
            history = await self.client.get_player_history(player.id)
            return summarize_player(player, history, window, self.fixture_index, self.team_map)
        except (FetchFailure, KeyError, TypeError, AttributeError, ValueError) as e:
            raise PlayerFetchFailure(player.id, e) from e

    async def _summarize_or_drop(self, player: Player, window: GameweekWindow) -> Optional[PlayerSummary]:
        try:
            return await self._summarize(player, window)
        except PlayerFetchFailure as e:
            self.logger.warning(f"Dropping {player.web_name}: {e}")
            return None

    async def aggregate(self, players: list[Player], window: GameweekWindow) -> list[PlayerSummary]:
        """
        Summarise the top players across the window.

        Args:
            players: All bootstrap players.
            window: Gameweek window to aggregate.

        Returns:
            Summaries for every player whose history could be fetched,
            in descending season points order.
        """
        top_players = select_top_players(players, self.config.top_players)
        batch_size = self.config.player_batch_size
        self.logger.info(f"Fetching history for top {len(top_players)} players")

        summaries: list[PlayerSummary] = []
        for start in range(0, len(top_players), batch_size):
            if start > 0 and self.config.batch_pause > 0:
                await asyncio.sleep(self.config.batch_pause)

            batch = top_players[start:start + batch_size]
            results = await asyncio.gather(
                *(self._summarize_or_drop(p, window) for p in batch)
            )
            summaries.extend(r for r in results if r is not None)
            self.logger.debug(f"Processed players {start + 1}-{start + len(batch)}")

        dropped = len(top_players) - len(summaries)
        if dropped:
            self.logger.warning(f"{dropped} player(s) dropped after failed history fetches")
        self.logger.info(f"Aggregated {len(summaries)} players")
        return summaries
