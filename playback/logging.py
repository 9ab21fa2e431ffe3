"""Application logging with a rotating file log and stderr warnings.

Every module gets a child of the ``localplayer`` logger through
``get_logger(__name__)``. Set LOCALPLAYER_DEBUG to log at DEBUG level.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
# None

ROOT_LOGGER_NAME = "localplayer"
LOG_FILE_NAME = "localplayer.log"


class AppLogger:
    """
    Process-wide logger setup.

    Supports:
    - File logging to the XDG data directory (rotating, 10MB x 5)
    - Console output for warnings and errors
    - Environment variable control (LOCALPLAYER_DEBUG)
    """

    _initialized: bool = False

    def __init__(self, log_dir: Optional[Path] = None, debug: bool = False):
        """
        Initialize the logger.

        Args:
            log_dir: Directory for log files (defaults to XDG data dir)
            debug: Force DEBUG level regardless of the environment
        """
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        if AppLogger._initialized:
            return

        verbose = debug or bool(os.getenv("LOCALPLAYER_DEBUG"))
        self.logger.setLevel(logging.DEBUG if verbose else logging.INFO)

        # Prevent duplicate handlers
        if self.logger.handlers:
            AppLogger._initialized = True
            return

        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_dir is None:
            xdg_data = os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")
            log_dir = Path(xdg_data) / ROOT_LOGGER_NAME / "logs"

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / LOG_FILE_NAME, maxBytes=10 * 1024 * 1024, backupCount=5
            )
        except OSError as e:
            # Read-only home: keep console logging only
            self.logger.warning("File logging disabled (%s): %s", log_dir, e)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        AppLogger._initialized = True

    @classmethod
    def get_logger(cls, name: str = ROOT_LOGGER_NAME) -> logging.Logger:
        """
        Get a logger instance.

        Loggers are handed out before ``AppLogger`` is configured (at import
        time); they inherit handlers from the root application logger once
        ``main`` sets it up.

        Args:
            name: Logger name (creates child logger)

        Returns:
            Logger instance
        """
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if name == ROOT_LOGGER_NAME:
            return root
        return root.getChild(name)


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger instance."""
    return AppLogger.get_logger(name)
