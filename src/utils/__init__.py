"""Utilities package for the product composition service."""

from .config import Config, get_config, reset_config, get_database_url
from .datetime_utils import utc_now, utc_now_iso

__all__ = [
    "Config",
    "get_config",
    "reset_config",
    "get_database_url",
    "utc_now",
    "utc_now_iso",
]
