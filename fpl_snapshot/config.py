"""
Configuration management for the FPL snapshot builder.

Handles loading environment variables and providing typed configuration access.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


DEFAULT_RELAY_ENDPOINTS = [
    "https://corsproxy.io/?{url}",
    "https://api.allorigins.win/raw?url={url}",
    "https://api.codetabs.com/v1/proxy?quest={url}",
]

FETCH_MODES = ("direct", "retry", "relay")


def setup_logging(log_level: str, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure logging for the application."""
    logger = logging.getLogger("fpl_snapshot")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers to prevent duplicates on repeated calls
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger


def _parse_relays(value: Optional[str]) -> list[str]:
    """Split a comma-separated relay list, ignoring blanks."""
    if not value:
        return list(DEFAULT_RELAY_ENDPOINTS)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    log_level: str = "INFO"

    # Upstream sources
    api_base_url: str = "https://fantasy.premierleague.com/api"
    ownership_url: str = "https://plan.livefpl.net/EO"

    # Fetch behaviour
    fetch_mode: str = "retry"
    request_timeout: int = 30
    max_retries: int = 3
    retry_backoff: float = 1.0
    requests_per_second: float = 10.0
    relay_endpoints: list[str] = field(default_factory=lambda: list(DEFAULT_RELAY_ENDPOINTS))

    # Aggregation settings
    top_players: int = 300
    player_batch_size: int = 50
    batch_pause: float = 0.5
    window_size: int = 6

    # Paths
    project_root: Path = field(default_factory=lambda: Path(__file__).parent.parent)
    snapshot_path: Optional[Path] = None
    data_dir: Path = field(init=False)
    logs_dir: Path = field(init=False)

    # Logger
    logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self):
        """Initialize derived paths and logger."""
        self.data_dir = self.project_root / "data"
        self.logs_dir = self.project_root / "logs"

        if self.snapshot_path is None:
            self.snapshot_path = self.data_dir / "snapshot.json"
        elif not self.snapshot_path.is_absolute():
            self.snapshot_path = self.project_root / self.snapshot_path

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        log_file = self.logs_dir / "snapshot.log"
        self.logger = setup_logging(self.log_level, log_file)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Config":
        """
        Load configuration from environment variables.

        Args:
            env_file: Optional path to .env file. If None, looks in project root.

        Returns:
            Config instance with loaded values.
        """
        project_root = Path(__file__).parent.parent

        if env_file is None:
            env_file = project_root / ".env"

        if env_file.exists():
            load_dotenv(env_file)

        snapshot_path = os.getenv("SNAPSHOT_PATH")

        config = cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            api_base_url=os.getenv("API_BASE_URL", "https://fantasy.premierleague.com/api"),
            ownership_url=os.getenv("OWNERSHIP_URL", "https://plan.livefpl.net/EO"),
            fetch_mode=os.getenv("FETCH_MODE", "retry").lower(),
            request_timeout=int(os.getenv("REQUEST_TIMEOUT", "30")),
            max_retries=int(os.getenv("MAX_RETRIES", "3")),
            retry_backoff=float(os.getenv("RETRY_BACKOFF", "1.0")),
            requests_per_second=float(os.getenv("REQUESTS_PER_SECOND", "10")),
            relay_endpoints=_parse_relays(os.getenv("RELAY_ENDPOINTS")),
            top_players=int(os.getenv("TOP_PLAYERS", "300")),
            player_batch_size=int(os.getenv("PLAYER_BATCH_SIZE", "50")),
            batch_pause=float(os.getenv("BATCH_PAUSE", "0.5")),
            window_size=int(os.getenv("WINDOW_SIZE", "6")),
            project_root=project_root,
            snapshot_path=Path(snapshot_path) if snapshot_path else None,
        )

        return config

    def validate(self) -> list[str]:
        """
        Validate configuration values.

        Returns:
            List of validation error messages. Empty if valid.
        """
        errors = []

        if self.fetch_mode not in FETCH_MODES:
            errors.append(f"FETCH_MODE must be one of {', '.join(FETCH_MODES)}, got '{self.fetch_mode}'")
        if self.fetch_mode == "relay" and not self.relay_endpoints:
            errors.append("RELAY_ENDPOINTS is required when FETCH_MODE is 'relay'")
        if self.max_retries < 1:
            errors.append("MAX_RETRIES must be at least 1")
        if self.retry_backoff < 0:
            errors.append("RETRY_BACKOFF must not be negative")
        if self.requests_per_second <= 0:
            errors.append("REQUESTS_PER_SECOND must be positive")
        if self.top_players < 1:
            errors.append("TOP_PLAYERS must be at least 1")
        if self.player_batch_size < 1:
            errors.append("PLAYER_BATCH_SIZE must be at least 1")
        if self.window_size < 1:
            errors.append("WINDOW_SIZE must be at least 1")

        return errors

    def log_config(self) -> None:
        """Log current configuration."""
        self.logger.info("Configuration loaded:")
        self.logger.info(f"  API Base URL: {self.api_base_url}")
        self.logger.info(f"  Ownership URL: {self.ownership_url}")
        self.logger.info(f"  Fetch Mode: {self.fetch_mode} (attempts: {self.max_retries}, backoff: {self.retry_backoff}s)")
        self.logger.info(f"  Top Players: {self.top_players} (batches of {self.player_batch_size})")
        self.logger.info(f"  Window Size: {self.window_size} gameweeks")
        self.logger.info(f"  Snapshot Path: {self.snapshot_path}")
        self.logger.info(f"  Logs Directory: {self.logs_dir}")
