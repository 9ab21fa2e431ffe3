"""Configuration management using XDG Base Directory Specification.

This module provides centralized configuration management following Linux
standards for config and data directories.
"""

import configparser
import os
from pathlib import Path
from typing import List, Optional, Set

from playback.exceptions import ConfigurationError

APP_NAME = 'localplayer'

# Formats the library scan picks up by default
DEFAULT_EXTENSIONS = '.mp3,.m4a,.wav,.flac,.aac'
DEFAULT_MAX_TRACKS = 1000

BUSY_POLICIES = ('queue', 'reject')


class Config:
    """
    Configuration manager using XDG Base Directory Specification.

    Follows Linux standards:
    - Config: ~/.config/localplayer/ (or XDG_CONFIG_HOME)
    - Data: ~/.local/share/localplayer/ (or XDG_DATA_HOME)
    """

    _instance: Optional['Config'] = None

    def __init__(self) -> None:
        """
        Initialize configuration manager.

        Sets up XDG Base Directory paths and loads or creates configuration.
        """
        self.config_home = Path(os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
        self.data_home = Path(os.getenv('XDG_DATA_HOME', Path.home() / '.local' / 'share'))

        self.app_name = APP_NAME
        self.config_dir = self.config_home / self.app_name
        self.data_dir = self.data_home / self.app_name

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / 'config.ini'
        self.config = configparser.ConfigParser()

        self._load_config()

    @classmethod
    def get_instance(cls) -> 'Config':
        """Get the singleton config instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the singleton so the next access re-reads the environment."""
        cls._instance = None

    def _load_config(self) -> None:
        """Load configuration from file or create defaults."""
        self._apply_defaults()
        if self.config_file.exists():
            try:
                self.config.read(self.config_file)
            except configparser.Error as e:
                raise ConfigurationError(f"Invalid config file {self.config_file}: {e}") from e
        else:
            self.save()

    def _apply_defaults(self) -> None:
        """Fill in defaults; values read from the file override them."""
        self.config['library'] = {
            'music_dirs': str(Path.home() / 'Music'),
            'extensions': DEFAULT_EXTENSIONS,
            'max_tracks': str(DEFAULT_MAX_TRACKS),
        }

        # Intervals are in milliseconds
        self.config['playback'] = {
            'reconcile_interval_ms': '500',
            'status_poll_interval_ms': '500',
            'progress_interval_ms': '300',
            'load_timeout_seconds': '15',
            'busy_policy': 'queue',
            'auto_advance': 'true',
        }

    def save(self) -> None:
        """
        Save configuration to file.

        Writes current configuration state to the config file.
        """
        try:
            with open(self.config_file, 'w') as f:
                self.config.write(f)
        except OSError as e:
            from playback.logging import get_logger
            logger = get_logger(__name__)
            logger.error("Failed to save config: %s", e, exc_info=True)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Get a configuration value."""
        return self.config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        """
        Set a configuration value.

        Args:
            section: Configuration section name
            key: Configuration key name
            value: Value to set (will be converted to string)
        """
        if section not in self.config:
            self.config.add_section(section)
        self.config.set(section, key, str(value))
        self.save()

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get a boolean configuration value."""
        try:
            return self.config.getboolean(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get an integer configuration value."""
        try:
            return self.config.getint(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        """Get a float configuration value."""
        try:
            return self.config.getfloat(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_list(self, section: str, key: str, separator: str = ':', fallback: Optional[List[str]] = None) -> List[str]:
        """
        Get a list configuration value (colon or semicolon separated).

        Args:
            section: Configuration section name
            key: Configuration key name
            separator: Separator character (default: ':')
            fallback: Default value if not found

        Returns:
            List of strings
        """
        value = self.get(section, key)
        if value:
            return [item.strip() for item in value.split(separator) if item.strip()]
        return fallback or []

    # Convenience properties
    @property
    def music_directories(self) -> List[Path]:
        """Get list of music directories to scan."""
        dirs = self.get_list('library', 'music_dirs')
        return [Path(d).expanduser() for d in dirs]

    @property
    def audio_extensions(self) -> Set[str]:
        """Lower-case file extensions (with dot) the catalog accepts."""
        exts = self.get_list('library', 'extensions', separator=',')
        return {e.lower() if e.startswith('.') else '.' + e.lower() for e in exts}

    @property
    def max_tracks(self) -> int:
        return self.get_int('library', 'max_tracks', DEFAULT_MAX_TRACKS)

    @property
    def reconcile_interval(self) -> float:
        """Observer reconciliation tick in seconds."""
        return self.get_int('playback', 'reconcile_interval_ms', 500) / 1000.0

    @property
    def status_poll_interval(self) -> float:
        """Controller engine-status poll in seconds."""
        return self.get_int('playback', 'status_poll_interval_ms', 500) / 1000.0

    @property
    def progress_interval(self) -> float:
        """Engine progress callback interval in seconds."""
        return self.get_int('playback', 'progress_interval_ms', 300) / 1000.0

    @property
    def load_timeout(self) -> Optional[float]:
        """Load watchdog in seconds; None when disabled (0 or negative)."""
        timeout = self.get_float('playback', 'load_timeout_seconds', 15.0)
        return timeout if timeout > 0 else None

    @property
    def busy_policy(self) -> str:
        policy = (self.get('playback', 'busy_policy', 'queue') or 'queue').strip().lower()
        if policy not in BUSY_POLICIES:
            raise ConfigurationError(
                f"[playback] busy_policy must be one of {', '.join(BUSY_POLICIES)}, got {policy!r}"
            )
        return policy

    @property
    def auto_advance(self) -> bool:
        return self.get_bool('playback', 'auto_advance', True)

    @property
    def log_dir(self) -> Path:
        """Get log directory."""
        log_dir = self.data_dir / 'logs'
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir


# Convenience function
def get_config() -> Config:
    """Get the configuration instance."""
    return Config.get_instance()
