"""
Gameweek window selection and finished-fixture lookup.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from .fpl_client import Fixture, Gameweek


DEFAULT_WINDOW_SIZE = 6


@dataclass
class GameweekWindow:
    """The latest started gameweek and the trailing gameweeks up to it."""
    current: int
    gameweeks: list[int] = field(default_factory=list)

    def __iter__(self) -> Iterator[int]:
        return iter(self.gameweeks)

    def __contains__(self, gameweek: object) -> bool:
        return gameweek in self.gameweeks

    def __len__(self) -> int:
        return len(self.gameweeks)


def find_current_gameweek(gameweeks: Iterable[Gameweek]) -> int:
    """Highest gameweek that is current or finished, or 0 if none is."""
    for gameweek in sorted(gameweeks, key=lambda gw: gw.id, reverse=True):
        if gameweek.is_eligible:
            return gameweek.id
    return 0


def select_window(gameweeks: Iterable[Gameweek], size: int = DEFAULT_WINDOW_SIZE) -> GameweekWindow:
    """
    Select the trailing window of gameweeks to analyse.

    Args:
        gameweeks: All gameweeks of the season.
        size: Maximum number of gameweeks in the window.

    Returns:
        GameweekWindow ending at the current gameweek, ascending.
    """
    current = find_current_gameweek(gameweeks)
    if current == 0:
        return GameweekWindow(current=0)

    start = max(1, current - size + 1)
    return GameweekWindow(current=current, gameweeks=list(range(start, current + 1)))


class FixtureIndex:
    """Finished fixtures grouped by team and gameweek."""

    def __init__(self, fixtures: Iterable[Fixture]):
        self._by_team_gw: dict[tuple[int, int], list[Fixture]] = defaultdict(list)

        for fixture in fixtures:
            if not fixture.finished or fixture.gameweek is None:
                continue
            self._by_team_gw[(fixture.home_team, fixture.gameweek)].append(fixture)
            self._by_team_gw[(fixture.away_team, fixture.gameweek)].append(fixture)

    def fixtures_for(self, team_id: int, gameweek: int) -> list[Fixture]:
        return list(self._by_team_gw.get((team_id, gameweek), []))

    def count(self, team_id: int, gameweek: int) -> int:
        return len(self._by_team_gw.get((team_id, gameweek), []))
