"""
End-to-end snapshot pipeline.

Fetches bootstrap and fixtures, selects the gameweek window, fans out live
data requests for the window, aggregates teams and players, merges ownership
and assembles the snapshot. Nothing is written until assembly succeeds.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .config import Config
from .fetcher import FetchFailure
from .fpl_client import FPLClient
from .gameweeks import FixtureIndex, GameweekWindow, select_window
from .ownership import OwnershipExtractor
from .player_aggregator import PlayerAggregator
from .snapshot import PipelineFailure, Snapshot, assemble_snapshot, write_snapshot
from .team_aggregator import TeamAggregator, build_team_xg_map


class SnapshotPipeline:
    """
    Runs one snapshot build.

    Usage:
        async with FPLClient(config) as client:
            pipeline = SnapshotPipeline(config, client, OwnershipExtractor(config, client.fetcher))
            snapshot = await pipeline.run()
    """

    def __init__(self, config: Config, client: FPLClient, ownership: OwnershipExtractor):
        self.config = config
        self.client = client
        self.ownership = ownership
        self.logger = logging.getLogger("fpl_snapshot.pipeline")

    async def _fetch_live(self, gameweek: int) -> Optional[tuple[int, dict[int, dict]]]:
        try:
            return gameweek, await self.client.get_live_stats(gameweek)
        except FetchFailure as e:
            self.logger.error(f"Failed to load GW{gameweek} live data: {e}")
            return None

    async def collect_live_stats(self, window: GameweekWindow) -> dict[int, dict[int, dict]]:
        """Fetch live stats for every window gameweek concurrently."""
        results = await asyncio.gather(*(self._fetch_live(gw) for gw in window))
        return dict(r for r in results if r is not None)

    async def run(self) -> Snapshot:
        """
        Build a snapshot.

        Raises:
            PipelineFailure: If a required source is unavailable or the
                assembled snapshot is inconsistent.
        """
        try:
            bootstrap = await self.client.get_bootstrap()
            fixtures = await self.client.get_fixtures()
        except FetchFailure as e:
            raise PipelineFailure(f"Required FPL data unavailable: {e}") from e

        window = select_window(bootstrap.gameweeks, self.config.window_size)
        self.logger.info(f"Current gameweek: {window.current}, window: {window.gameweeks}")

        live_stats = await self.collect_live_stats(window)
        fixture_index = FixtureIndex(fixtures)

        xg_map = build_team_xg_map(live_stats, bootstrap.players)
        teams = TeamAggregator(bootstrap.teams, fixture_index, xg_map).aggregate(window)

        players = await PlayerAggregator(
            self.config, self.client, bootstrap.teams, fixture_index
        ).aggregate(bootstrap.players, window)

        ownership = await self.ownership.fetch()

        snapshot = assemble_snapshot(teams, players, ownership, window.current)
        snapshot.validate(window)
        return snapshot

    async def run_and_save(self, path: Optional[Path] = None) -> Snapshot:
        """Build a snapshot and write it to the configured path."""
        snapshot = await self.run()
        write_snapshot(snapshot, path or self.config.snapshot_path)
        return snapshot
