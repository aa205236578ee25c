"""
FPL Snapshot - Fantasy Premier League form and ownership aggregator

This package provides tools for building a dashboard snapshot including:
- Resilient fetching from the FPL API and relay endpoints
- Effective ownership scraping
- Team and player form over recent gameweeks
- Atomic snapshot persistence
"""

__version__ = "1.0.0"

from .config import Config
from .fetcher import Fetcher, FetchFailure
from .fpl_client import FPLClient
from .ownership import OwnershipExtractor, ParseFailure
from .pipeline import SnapshotPipeline
from .player_aggregator import PlayerFetchFailure
from .snapshot import PipelineFailure, Snapshot, load_snapshot, write_snapshot

__all__ = [
    "Config",
    "Fetcher",
    "FetchFailure",
    "FPLClient",
    "OwnershipExtractor",
    "ParseFailure",
    "SnapshotPipeline",
    "PlayerFetchFailure",
    "PipelineFailure",
    "Snapshot",
    "load_snapshot",
    "write_snapshot",
]
