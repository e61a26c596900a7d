#!/usr/bin/env python3
"""
Chart Maker - Anime & Video Game Chart Maker
Shared plumbing for the chart maker: logging setup, configuration loading and
the exception hierarchy used by the API clients, services and web GUI.
"""

import json
import logging
import os
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root chartmaker logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logger = logging.getLogger('chartmaker')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


# Module-level logger used throughout chartmaker.py
logger = setup_logging()


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ChartMakerError(Exception):
    """Base class for all chart maker errors."""


class ConfigError(ChartMakerError):
    """Raised when required configuration is missing or invalid."""


class UpstreamError(ChartMakerError):
    """Raised when a third-party search API answers with a failure.

    ``text`` holds the upstream's raw error body so it can be passed through
    to the browser unchanged.
    """

    def __init__(self, text: str, status_code: Optional[int] = None) -> None:
        super().__init__(text)
        self.text = text
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_API_TIMEOUT = 10  # seconds
DEFAULT_LOG_LEVEL = 'INFO'


def is_placeholder_value(value: str) -> bool:
    """Check if a value is a placeholder sentinel that should not be used for real API calls."""
    if not value or not isinstance(value, str):
        return True
    return value.startswith('YOUR_')


class ChartMakerConfig:
    """Explicit configuration handed to the web app at construction time.

    Only the Twitch credentials are required; they authenticate the IGDB
    game search.
    """

    def __init__(
        self,
        twitch_client_id: str = '',
        twitch_client_secret: str = '',
        api_timeout_seconds: int = DEFAULT_API_TIMEOUT,
        log_level: str = DEFAULT_LOG_LEVEL,
    ) -> None:
        self.twitch_client_id = twitch_client_id
        self.twitch_client_secret = twitch_client_secret
        self.api_timeout_seconds = api_timeout_seconds
        self.log_level = log_level

    def missing_fields(self) -> List[str]:
        """Return the environment variable names of every missing credential."""
        missing = []
        if is_placeholder_value(self.twitch_client_id):
            missing.append('TWITCH_CLIENT_ID')
        if is_placeholder_value(self.twitch_client_secret):
            missing.append('TWITCH_CLIENT_SECRET')
        return missing

    def validate(self) -> 'ChartMakerConfig':
        """Raise :class:`ConfigError` unless the config is usable.

        Returns:
            ``self`` so calls can be chained.
        """
        missing = self.missing_fields()
        if missing:
            raise ConfigError(
                f"Missing {' and '.join(missing)}: set them in the environment, "
                f".env, or as twitch_client_id/twitch_client_secret in config.json "
                f"(get credentials at https://dev.twitch.tv/console/apps)"
            )
        try:
            timeout = int(self.api_timeout_seconds)
        except (TypeError, ValueError):
            raise ConfigError(
                f"api_timeout_seconds must be an integer, got {self.api_timeout_seconds!r}"
            )
        if timeout <= 0:
            raise ConfigError("api_timeout_seconds must be positive")
        self.api_timeout_seconds = timeout
        return self

    def to_dict(self) -> Dict:
        """Return the config with secrets masked, for logging."""
        return {
            'twitch_client_id': self.twitch_client_id,
            'twitch_client_secret': '***' if self.twitch_client_secret else '',
            'api_timeout_seconds': self.api_timeout_seconds,
            'log_level': self.log_level,
        }


def load_config(config_path: str = 'config.json') -> ChartMakerConfig:
    """Load configuration from a JSON file with environment variable support.

    The file is optional. Environment variables take precedence over config
    file values:
    - TWITCH_CLIENT_ID overrides twitch_client_id
    - TWITCH_CLIENT_SECRET overrides twitch_client_secret
    - CHARTMAKER_LOG_LEVEL overrides log_level

    The returned config is not validated; call
    :meth:`ChartMakerConfig.validate` (``create_app`` does).

    Raises:
        ConfigError: The config file exists but is not valid JSON.
    """
    config: Dict = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Error parsing config file '{config_path}': {e}") from e
        if not isinstance(config, dict):
            raise ConfigError(f"Config file '{config_path}' must contain a JSON object")
    else:
        logger.debug("Config file '%s' not found, using environment only", config_path)

    if os.getenv('TWITCH_CLIENT_ID'):
        config['twitch_client_id'] = os.getenv('TWITCH_CLIENT_ID')
    if os.getenv('TWITCH_CLIENT_SECRET'):
        config['twitch_client_secret'] = os.getenv('TWITCH_CLIENT_SECRET')
    if os.getenv('CHARTMAKER_LOG_LEVEL'):
        config['log_level'] = os.getenv('CHARTMAKER_LOG_LEVEL')

    return ChartMakerConfig(
        twitch_client_id=config.get('twitch_client_id', ''),
        twitch_client_secret=config.get('twitch_client_secret', ''),
        api_timeout_seconds=config.get('api_timeout_seconds', DEFAULT_API_TIMEOUT),
        log_level=config.get('log_level', DEFAULT_LOG_LEVEL),
    )
