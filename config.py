#!/usr/bin/env python3
"""
Configuration management for Feed Notifier.

This module centralizes all configuration loading, validation, and management.
It handles environment variables, the optional secrets file and the feeds list,
and provides a clean interface for accessing configuration values throughout
the application.
"""

from os import environ, path, access, R_OK, replace
from typing import Dict, Any, List, Optional
from logging import getLogger, basicConfig, StreamHandler, INFO, DEBUG, WARNING, ERROR
import sys
import tempfile
import yaml
from dotenv import load_dotenv

from errors import ConfigError
from models import FeedSource

APP_VERSION = "2.2.0"


def _setup_global_logger():
    """Setup a single global logger for the entire application.

    Environment Variables:
        LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR) - defaults to INFO
        LOG_TIMESTAMPS: Enable/disable timestamps in logs (true/false) - defaults to true

    All modules should use get_logger() to create module-specific loggers that
    inherit this configuration.
    """
    level_str = environ.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": DEBUG,
        "INFO": INFO,
        "WARNING": WARNING,
        "ERROR": ERROR
    }
    level = level_map.get(level_str, INFO)

    show_timestamps = environ.get("LOG_TIMESTAMPS", "true").lower() != "false"
    if show_timestamps:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        log_format = '%(name)s - %(levelname)s - %(message)s'

    basicConfig(
        level=level,
        format=log_format,
        handlers=[StreamHandler(sys.stdout)],
        force=True
    )

    # aiohttp access noise is only useful when debugging
    getLogger("aiohttp").setLevel(max(level, WARNING))

    return getLogger("FeedNotifier")


def get_logger(name: str):
    """Get a module-specific logger with the unified configuration.

    Args:
        name: The logger name (e.g., "fetcher", "detector", "notifier")

    Returns:
        A logger named "FeedNotifier.{name}"
    """
    return getLogger(f"FeedNotifier.{name}")


logger = _setup_global_logger()


class Config:
    """Configuration manager for Feed Notifier.

    Values are loaded from, in increasing priority:
    1. Environment variables
    2. .env file (if present next to this module)
    3. YAML secrets file (if SECRETS_FILE is set)

    The feed sources themselves live in a YAML file (FEEDS_CONFIG_PATH), either
    as a top-level list or under a ``feeds`` key:

    ```yaml
    - name: The Go Blog
      url: https://go.dev/blog/feed.atom
    - name: kottke.org
      url: http://feeds.kottke.org/main
      disabled: true
    ```
    """

    def __init__(self, base_dir: Optional[str] = None):
        self.BASE_DIR = base_dir or path.dirname(path.abspath(__file__))
        self._load_environment()
        self._validate_and_set_config()

    def _load_environment(self):
        """Load environment variables from .env file and secrets file if present."""
        dotenv_path = path.join(self.BASE_DIR, '.env')
        if path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            logger.info(f"Loaded environment variables from {dotenv_path}")

        self._load_secrets_file()

    def _validate_positive_int(self, env_var: str, default: int, min_val: int = 1) -> int:
        """Validate and parse a positive integer environment variable."""
        try:
            value = int(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_and_set_config(self):
        """Validate and set all configuration values."""
        self.USER_AGENT = environ.get("USER_AGENT", f"feed-notifier:{APP_VERSION}")
        self.FEEDS_CONFIG_PATH = environ.get("FEEDS_CONFIG_PATH", path.join(self.BASE_DIR, "feeds.yaml"))
        self.TIMESTAMP_FILE = environ.get("TIMESTAMP_FILE", path.join(self.BASE_DIR, "timestamps.yaml"))
        self.EMAIL_TEMPLATE_FILE = environ.get("EMAIL_TEMPLATE_FILE") or None

        # Selection and HTTP behaviour
        self.MAX_ENTRIES_PER_FEED = self._validate_positive_int("MAX_ENTRIES_PER_FEED", 3, 1)
        self.HTTP_TIMEOUT = self._validate_positive_int("HTTP_TIMEOUT", 30, 1)
        self.REPLACE_RELATIVE_URLS = environ.get("REPLACE_RELATIVE_URLS", "false").lower() == "true"

        # Delivery
        self.EMAIL_FROM = environ.get("EMAIL_FROM")
        self.SMTP_HOST = environ.get("SMTP_HOST")
        self.SMTP_PORT = self._validate_positive_int("SMTP_PORT", 587, 1)
        self.SMTP_USER = environ.get("SMTP_USER")
        self.SMTP_PASS = environ.get("SMTP_PASS")
        self.SMTP_STARTTLS = environ.get("SMTP_STARTTLS", "true").lower() != "false"

        # Optional reddit application credentials for bearer token acquisition
        self.REDDIT_CLIENT_ID = (environ.get("REDDIT_CLIENT_ID") or "").strip() or None
        self.REDDIT_CLIENT_SECRET = (environ.get("REDDIT_CLIENT_SECRET") or "").strip() or None

    def _load_secrets_file(self):
        """Load environment variable overrides from a YAML secrets file.

        Both a top-level mapping and a mapping nested under ``environment`` are
        accepted:

        ```yaml
        SMTP_PASS: "hunter2"
        REDDIT_CLIENT_SECRET: "..."
        ```
        """
        secrets_file_path = environ.get("SECRETS_FILE")
        if not secrets_file_path:
            logger.debug("SECRETS_FILE not set; relying on environment/.env for secrets")
            return

        secrets_config = self._safe_read_yaml(secrets_file_path, 2 * 1024 * 1024, 'secrets')
        if secrets_config is None:
            return

        if not isinstance(secrets_config, dict):
            logger.warning(f"Secrets file {secrets_file_path} must be a YAML mapping at the top level")
            return
        env_vars = secrets_config.get('environment') if isinstance(secrets_config.get('environment'), dict) else secrets_config

        secrets_loaded = 0
        for key, value in env_vars.items():
            if isinstance(key, str) and value is not None:
                environ[key] = str(value)
                secrets_loaded += 1
            else:
                logger.warning(f"Skipping invalid environment variable in secrets file: {key}")
        logger.info(f"Loaded {secrets_loaded} environment variables from secrets file {secrets_file_path}")

    def _safe_read_yaml(self, file_path: str, max_size: int, kind: str) -> Any | None:
        """Safely read a YAML file with consistent validation.

        Args:
            file_path: Path to the YAML file
            max_size: Maximum allowed file size in bytes
            kind: Short label for logging context (e.g. 'secrets', 'feeds')

        Returns:
            Parsed YAML, or None when the file is missing or empty.

        Raises:
            ConfigError: The file exists but cannot be read or parsed.
        """
        if not path.isfile(file_path):
            logger.warning(f"{kind.capitalize()} file not found at {file_path}")
            return None
        if not access(file_path, R_OK):
            raise ConfigError(f"No read permission for {kind} file at {file_path}")
        size = path.getsize(file_path)
        if size > max_size:
            raise ConfigError(f"{kind.capitalize()} file too large: {size} bytes (limit: {max_size} bytes)")
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing YAML in {kind} file {file_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Error loading {kind} file {file_path}: {e}") from e
        if not data:
            logger.warning(f"Empty {kind} file {file_path}")
            return None
        return data

    def load_feed_sources(self) -> List[FeedSource]:
        """Read the configured feed sources.

        A missing feeds file yields an empty list. Rows without a url are
        skipped with a warning.
        """
        data = self._safe_read_yaml(self.FEEDS_CONFIG_PATH, 5 * 1024 * 1024, 'feeds')
        if data is None:
            return []
        if isinstance(data, dict):
            data = data.get('feeds')
        if not isinstance(data, list):
            raise ConfigError(f"Feeds file {self.FEEDS_CONFIG_PATH} must contain a list of feeds")

        sources: List[FeedSource] = []
        for row in data:
            try:
                sources.append(FeedSource.from_dict(row))
            except ValueError as e:
                logger.warning(f"Skipping invalid feed configuration {row!r}: {e}")
        logger.info(f"Loaded {len(sources)} feeds from {self.FEEDS_CONFIG_PATH}")
        return sources

    def save_feed_sources(self, sources: List[FeedSource]) -> None:
        """Persist the feed sources list, replacing the feeds file atomically."""
        rows = [source.to_dict() for source in sources]
        directory = path.dirname(path.abspath(self.FEEDS_CONFIG_PATH))
        try:
            with tempfile.NamedTemporaryFile('w', dir=directory, delete=False, encoding='utf-8', suffix='.tmp') as f:
                yaml.safe_dump(rows, f, sort_keys=False, allow_unicode=True)
                tmp_name = f.name
            replace(tmp_name, self.FEEDS_CONFIG_PATH)
        except OSError as e:
            raise ConfigError(f"Failed to write feeds file {self.FEEDS_CONFIG_PATH}: {e}") from e

    @property
    def smtp_configured(self) -> bool:
        return bool(self.EMAIL_FROM and self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASS)

    @property
    def reddit_configured(self) -> bool:
        return bool(self.REDDIT_CLIENT_ID and self.REDDIT_CLIENT_SECRET)

    def validate_delivery(self) -> None:
        """Ensure everything a notification run needs is configured."""
        missing = [
            name for name, value in (
                ("EMAIL_FROM", self.EMAIL_FROM),
                ("SMTP_HOST", self.SMTP_HOST),
                ("SMTP_USER", self.SMTP_USER),
                ("SMTP_PASS", self.SMTP_PASS),
            ) if not value
        ]
        if missing:
            raise ConfigError(f"config is missing {', '.join(missing)}")

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging."""
        return {
            "feeds_config_path": self.FEEDS_CONFIG_PATH,
            "timestamp_file": self.TIMESTAMP_FILE,
            "max_entries_per_feed": self.MAX_ENTRIES_PER_FEED,
            "http_timeout": self.HTTP_TIMEOUT,
            "replace_relative_urls": self.REPLACE_RELATIVE_URLS,
            "custom_template": bool(self.EMAIL_TEMPLATE_FILE),
            "smtp_configured": self.smtp_configured,
            "reddit_configured": self.reddit_configured,
            "secrets_file_configured": bool(environ.get("SECRETS_FILE")),
        }


# Global configuration instance
config = Config()
