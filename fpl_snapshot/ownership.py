"""
Effective ownership scraping from the LiveFPL EO page.

The page embeds two JavaScript objects, ``eo_t`` (top 10k EO) and ``eo_o``
(overall EO), mapping player ids to fractions. Its EO table also lists
captaincy and overall EO as percentage cells, which fill the gaps the script
objects leave. Everything here is best-effort enrichment: malformed sections
are skipped and an unreachable page yields an empty mapping.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

from .config import Config
from .fetcher import Fetcher, FetchFailure


EO_TOP10K_VAR = "eo_t"
EO_OVERALL_VAR = "eo_o"

PLAYER_LINK_PATTERN = re.compile(r"player\?id=(\d+)")
PERCENT_PATTERN = re.compile(r"^(\d+\.?\d*)%$")

# Positions within the percentage cells of an EO table row:
# EO (10k), Cap (10k), TC (10k), EO (Overall), ...
CAPTAINCY_COLUMN = 1
OVERALL_EO_COLUMN = 3
MIN_PERCENT_COLUMNS = 4


class ParseFailure(ValueError):
    """Raised when an embedded ownership object cannot be parsed."""
    pass


@dataclass
class OwnershipEntry:
    """Ownership percentages for one player. None means unknown."""
    eo10k: Optional[float] = None
    eo_overall: Optional[float] = None
    cap10k: Optional[float] = None

    def prefer_cap10k(self, value: float) -> None:
        """Use value unless a positive captaincy figure is already known."""
        if not self.cap10k:
            self.cap10k = value

    def prefer_eo_overall(self, value: float) -> None:
        """Use a positive value unless a positive overall EO is already known."""
        if not self.eo_overall and value > 0:
            self.eo_overall = value

    def to_dict(self) -> dict:
        return {
            "eo10k": format_percent(self.eo10k),
            "eoOverall": format_percent(self.eo_overall),
            "cap10k": format_percent(self.cap10k),
        }


OwnershipMap = dict[str, OwnershipEntry]


def format_percent(value: Optional[float]) -> str:
    """One-decimal percentage string, "0.0" when unknown."""
    return f"{value:.1f}" if value is not None else "0.0"


# =============================================================================
# Parsing
# =============================================================================

def _script_object(scripts: list[str], name: str) -> Optional[dict]:
    """
    Find ``var <name> = {...};`` in the page scripts and decode it.

    Returns None when the variable is absent.

    Raises:
        ParseFailure: If the assignment exists but is not a JSON object.
    """
    pattern = re.compile(rf"var\s+{re.escape(name)}\s*=\s*({{.*?}});", re.DOTALL)
    for script in scripts:
        match = pattern.search(script)
        if not match:
            continue
        try:
            value = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            raise ParseFailure(f"Invalid JSON in '{name}': {e}") from e
        if not isinstance(value, dict):
            raise ParseFailure(f"'{name}' is not an object")
        return value
    return None


def _fraction_to_percent(value) -> Optional[float]:
    try:
        return round(float(value) * 100, 1)
    except (ValueError, TypeError):
        return None


def _row_percentages(row) -> list[float]:
    values = []
    for cell in row.find_all("td"):
        match = PERCENT_PATTERN.match(cell.get_text(strip=True))
        if match:
            values.append(float(match.group(1)))
    return values


def parse_ownership_html(html: str) -> OwnershipMap:
    """
    Extract per-player ownership figures from the EO page.

    Args:
        html: Raw page HTML.

    Returns:
        Mapping of player id (string) to OwnershipEntry.
    """
    logger = logging.getLogger("fpl_snapshot.ownership")
    soup = BeautifulSoup(html, "html.parser")
    scripts = [s.string or s.get_text() for s in soup.find_all("script")]
    ownership: OwnershipMap = {}

    # Embedded script objects
    try:
        top10k = _script_object(scripts, EO_TOP10K_VAR) or {}
        for player_id, fraction in top10k.items():
            percent = _fraction_to_percent(fraction)
            if percent is not None:
                ownership.setdefault(str(player_id), OwnershipEntry()).eo10k = percent
    except ParseFailure as e:
        logger.warning(f"Skipping top 10k EO: {e}")

    try:
        overall = _script_object(scripts, EO_OVERALL_VAR) or {}
        for player_id, fraction in overall.items():
            percent = _fraction_to_percent(fraction)
            if percent is not None and percent > 0:
                ownership.setdefault(str(player_id), OwnershipEntry()).eo_overall = percent
    except ParseFailure as e:
        logger.warning(f"Skipping overall EO: {e}")

    # EO table rows
    for row in soup.find_all("tr"):
        link = row.find("a", href=PLAYER_LINK_PATTERN)
        if link is None:
            continue
        player_id = PLAYER_LINK_PATTERN.search(link["href"]).group(1)
        entry = ownership.setdefault(player_id, OwnershipEntry())

        percentages = _row_percentages(row)
        if len(percentages) < MIN_PERCENT_COLUMNS:
            continue
        entry.prefer_cap10k(round(percentages[CAPTAINCY_COLUMN], 1))
        entry.prefer_eo_overall(round(percentages[OVERALL_EO_COLUMN], 1))

    logger.debug(f"Parsed ownership for {len(ownership)} players")
    return ownership


# =============================================================================
# Extractor
# =============================================================================

class OwnershipExtractor:
    """Fetches and parses the EO page, never raising on failure."""

    def __init__(self, config: Config, fetcher: Fetcher):
        self.config = config
        self.fetcher = fetcher
        self.logger = logging.getLogger("fpl_snapshot.ownership")

    async def fetch(self) -> OwnershipMap:
        """
        Fetch ownership data.

        Returns:
            Ownership mapping, empty if the page could not be fetched.
        """
        self.logger.info(f"Fetching EO data from {self.config.ownership_url}")
        try:
            html = await self.fetcher.fetch_text(self.config.ownership_url)
        except FetchFailure as e:
            self.logger.warning(f"Continuing without EO data: {e}")
            return {}

        ownership = parse_ownership_html(html)
        self.logger.info(f"Loaded EO data for {len(ownership)} players")
        return ownership
