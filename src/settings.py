"""
Application settings management.
Uses python-dotenv to load environment variables from .env file.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from project root
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

# Store original environment values to prevent modification
_ENV_CACHE = {}


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing or unusable."""


def get_setting(key: str, default=None):
    """
    Get a setting from environment variables.

    Returns a copy of the value to prevent accidental modification of the
    actual environment variable.

    Args:
        key: Environment variable name
        default: Default value if not found

    Returns:
        The environment variable value or default

    Example:
        >>> OPENAI_API_KEY = get_setting('OPENAI_API_KEY')
        >>> DEBUG = get_setting('DEBUG', 'False') == 'True'
    """
    # Use cached value if available, otherwise get from env
    if key not in _ENV_CACHE:
        _ENV_CACHE[key] = os.getenv(key, default)

    value = _ENV_CACHE[key]

    # For mutable types, return a copy
    if isinstance(value, (list, dict)):
        return value.copy()

    return value


def get_int_setting(key: str, default: int) -> int:
    """Integer setting; unparsable values fall back to the default."""
    raw = get_setting(key)
    try:
        return int(raw) if raw not in (None, '') else default
    except (TypeError, ValueError):
        return default


def get_float_setting(key: str, default: float) -> float:
    """Float setting; unparsable values fall back to the default."""
    raw = get_setting(key)
    try:
        return float(raw) if raw not in (None, '') else default
    except (TypeError, ValueError):
        return default


def require_setting(key: str) -> str:
    """
    Get a mandatory setting.

    Raises:
        ConfigurationError: If the variable is unset or empty
    """
    value = get_setting(key)
    if not value:
        raise ConfigurationError(f"{key} environment variable is required")
    return value


# OpenAI settings with defaults
OPENAI_API_KEY = get_setting('OPENAI_API_KEY')
OPENAI_MODEL = get_setting('OPENAI_MODEL', 'gpt-5-nano')
OPENAI_TIMEOUT = get_int_setting('OPENAI_TIMEOUT', 20)

# Classifier retry policy and pacing (free tier quota is ~15 requests/minute)
CLASSIFIER_MAX_ATTEMPTS = get_int_setting('CLASSIFIER_MAX_ATTEMPTS', 3)
CLASSIFIER_TIMEOUT = get_float_setting('CLASSIFIER_TIMEOUT', 30.0)
CLASSIFIER_BACKOFF = get_float_setting('CLASSIFIER_BACKOFF', 1.0)
CLASSIFIER_CALL_DELAY = get_float_setting('CLASSIFIER_CALL_DELAY', 4.0)

# Pipeline windows
DEFAULT_MAX_AGE_HOURS = 24
DEDUPE_WINDOW_DAYS = get_int_setting('DEDUPE_WINDOW_DAYS', 30)
REASSESS_BATCH_SIZE = get_int_setting('REASSESS_BATCH_SIZE', 10)

# Debug mode
DEBUG = get_setting('DEBUG', 'False').lower() in ('true', '1', 'yes')
LOG_LEVEL = get_setting('LOG_LEVEL', 'DEBUG' if DEBUG else 'INFO').upper()

# Database paths
DATABASE_PATH = get_setting('DATABASE_PATH', 'data/soylenti.db')
