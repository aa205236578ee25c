#!/usr/bin/env python3
"""
FPL Snapshot - build the dashboard snapshot once and exit.

Fetches FPL bootstrap, fixtures, live and player history data plus LiveFPL
effective ownership, aggregates recent team and player form, and writes
data/snapshot.json.

Usage:
    python main.py                         # Build snapshot with .env settings
    python main.py --log-level DEBUG       # Verbose logging
    python main.py --env-file prod.env     # Custom environment file
"""

import asyncio
import argparse
import sys
from pathlib import Path
from typing import Optional

# Fix Windows console encoding
if sys.platform == 'win32':
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')

from fpl_snapshot.config import Config, setup_logging
from fpl_snapshot.fetcher import FetchFailure
from fpl_snapshot.fpl_client import FPLClient
from fpl_snapshot.ownership import OwnershipExtractor
from fpl_snapshot.pipeline import SnapshotPipeline
from fpl_snapshot.snapshot import PipelineFailure


# =============================================================================
# Main Snapshot Run
# =============================================================================

async def run_snapshot(log_level: Optional[str] = None, env_file: Optional[Path] = None) -> int:
    """
    Build and persist one snapshot.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    config = Config.from_env(env_file)
    if log_level:
        config.log_level = log_level
        config.logger = setup_logging(log_level, config.logs_dir / "snapshot.log")
    logger = config.logger

    logger.info("=" * 70)
    logger.info("FPL SNAPSHOT STARTING")
    logger.info("=" * 70)
    config.log_config()

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return 1

    try:
        async with FPLClient(config) as client:
            ownership = OwnershipExtractor(config, client.fetcher)
            pipeline = SnapshotPipeline(config, client, ownership)
            snapshot = await pipeline.run_and_save()

    except (FetchFailure, PipelineFailure) as e:
        logger.error(f"Snapshot build failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1

    logger.info("=" * 70)
    logger.info(
        f"SNAPSHOT COMPLETE: GW{snapshot.current_gameweek} | "
        f"{len(snapshot.teams)} teams | {len(snapshot.players)} players"
    )
    logger.info("=" * 70)
    return 0


# =============================================================================
# CLI
# =============================================================================

def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Build the FPL dashboard snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Cron Example (for crontab):
  # Rebuild the snapshot every 6 hours
  0 */6 * * * cd /path/to/fpl-snapshot && python main.py
        """
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Override log level'
    )

    parser.add_argument(
        '--env-file',
        type=Path,
        default=None,
        help='Path to custom .env file'
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point."""
    args = parse_args()
    return asyncio.run(run_snapshot(log_level=args.log_level, env_file=args.env_file))


if __name__ == "__main__":
    sys.exit(main())
