"""
Snapshot assembly, validation and persistence.

A snapshot is written whole: the JSON goes to a temporary file next to the
target and is renamed over it, so readers never see a partial document.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from .gameweeks import GameweekWindow
from .ownership import OwnershipEntry, OwnershipMap
from .player_aggregator import PlayerSummary
from .team_aggregator import TeamSummary


DEFAULT_CURRENT_GAMEWEEK = 38

logger = logging.getLogger("fpl_snapshot.snapshot")


class PipelineFailure(Exception):
    """Raised when a pipeline run cannot produce a consistent snapshot."""
    pass


@dataclass
class Snapshot:
    """One complete pipeline output."""
    updated_at: datetime
    teams: list[TeamSummary] = field(default_factory=list)
    players: list[PlayerSummary] = field(default_factory=list)
    current_gameweek: int = 0

    def validate(self, window: GameweekWindow) -> None:
        """
        Check cross-entity consistency.

        Raises:
            PipelineFailure: If a player references an unknown team or a
                record falls outside the window.
        """
        team_ids = {t.id for t in self.teams}
        for player in self.players:
            if player.team_id not in team_ids:
                raise PipelineFailure(f"Player {player.id} references unknown team {player.team_id}")
            for match in player.last_matches:
                if match.gameweek not in window:
                    raise PipelineFailure(f"Player {player.id} has a record for GW{match.gameweek} outside the window")

        for team in self.teams:
            for fixture in team.fixtures:
                if fixture.gameweek not in window:
                    raise PipelineFailure(f"Team {team.id} has a record for GW{fixture.gameweek} outside the window")

        if window.gameweeks and window.gameweeks[-1] != self.current_gameweek:
            raise PipelineFailure(f"Window ends at GW{window.gameweeks[-1]}, expected GW{self.current_gameweek}")

    def to_dict(self) -> dict:
        return {
            "updatedAt": self.updated_at.isoformat().replace("+00:00", "Z"),
            "teams": [t.to_dict() for t in self.teams],
            "players": [p.to_dict() for p in self.players],
            "currentGameweek": self.current_gameweek,
        }


def assemble_snapshot(
    teams: list[TeamSummary],
    players: list[PlayerSummary],
    ownership: OwnershipMap,
    current_gameweek: int,
    updated_at: Optional[datetime] = None,
) -> Snapshot:
    """
    Merge aggregator outputs and ownership into one snapshot.

    Players without ownership data get an empty entry, serialised as "0.0".
    """
    for player in players:
        player.ownership = ownership.get(str(player.id)) or OwnershipEntry()

    with_eo = sum(1 for p in players if str(p.id) in ownership)
    logger.info(f"Merged EO data for {with_eo}/{len(players)} players")

    return Snapshot(
        updated_at=updated_at or datetime.now(timezone.utc),
        teams=teams,
        players=players,
        current_gameweek=current_gameweek,
    )


def write_snapshot(snapshot: Snapshot, path: Path) -> Path:
    """
    Persist a snapshot, replacing any previous file atomically.

    Returns:
        The path written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(snapshot.to_dict(), indent=2)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp_name, path)
    except OSError:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.info(f"Snapshot written to {path}")
    return path


def load_snapshot(path: Path, max_age: Optional[timedelta] = None) -> Optional[dict]:
    """
    Read a persisted snapshot.

    Args:
        path: Snapshot file.
        max_age: Treat snapshots older than this as missing.

    Returns:
        The snapshot document, or None when absent, unreadable or stale.
        A missing currentGameweek is filled with the season's last gameweek.
    """
    if not path.exists():
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to read snapshot {path}: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Snapshot {path} is not a JSON object")
        return None

    if max_age is not None:
        try:
            updated_at = datetime.fromisoformat(str(data.get("updatedAt", "")).replace("Z", "+00:00"))
        except ValueError:
            return None
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - updated_at > max_age:
            logger.info(f"Snapshot {path} is stale (updated {updated_at.isoformat()})")
            return None

    if not data.get("currentGameweek"):
        data["currentGameweek"] = DEFAULT_CURRENT_GAMEWEEK
    return data
