"""
Configuration management for the Product Composition service.

This module handles:
- Database URL configuration (explicit override or SQLite file location)
- Environment-specific configuration (development vs. production)
- SQL echo toggle for debugging
"""

import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    ENV_PREFIX,
)

_TRUTHY = {"1", "true", "yes", "on"}


class Config:
    """
    Application configuration manager.

    Handles database location and environment settings. Values come from
    ``PRODUCT_COMPOSITION_*`` environment variables where present.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        if environment not in ("production", "development"):
            raise ValueError(
                f"Unknown environment '{environment}': expected 'production' or 'development'"
            )

        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        # An explicit URL wins over the file-based default (e.g. PostgreSQL)
        self._database_url_override = os.environ.get(f"{ENV_PREFIX}_DATABASE_URL") or None
        self._echo_sql = os.environ.get(f"{ENV_PREFIX}_SQL_ECHO", "").lower() in _TRUTHY

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_path = self._base_dir / DATABASE_FILENAME

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """
        Get the per-user data directory for production.

        Returns:
            Path to an app-specific directory under the user's home
        """
        xdg_data = os.environ.get("XDG_DATA_HOME")
        base = Path(xdg_data) if xdg_data else Path.home() / ".local" / "share"
        return base / "product-composition"

    def ensure_directories(self) -> None:
        """Create the SQLite data directory if a file database is used."""
        if self._database_url_override is None:
            self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the SQLite database file (unused with a URL override)."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            The configured override, or a SQLite URL for the data directory
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def echo_sql(self) -> bool:
        """Whether SQLAlchemy should log every statement."""
        return self._echo_sql

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if the SQLite database file exists.

        Returns:
            True if the file exists; always True when a URL override is set,
            since remote databases are provisioned externally.
        """
        if self._database_url_override:
            return True
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument - this prevents switching databases
    mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    PRODUCT_COMPOSITION_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(f"{ENV_PREFIX}_ENV", "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        import logging

        logger = logging.getLogger(__name__)
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    """
    Get the database URL.

    Returns:
        SQLAlchemy database URL string
    """
    return get_config().database_url
