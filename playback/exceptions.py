"""Custom exception hierarchy for the music player application.

Engine adapters raise the ``PlaybackError`` subclasses; the playback
controller catches them at its boundary and reports them as command results
instead of letting them escape to views.
"""


class MusicPlayerError(Exception):
    """Base exception for all music player errors."""

    pass


class ConfigurationError(MusicPlayerError):
    """Errors related to configuration."""

    pass


class CatalogError(MusicPlayerError):
    """Errors related to scanning the music library."""

    pass


class PlaybackError(MusicPlayerError):
    """Errors related to audio playback."""

    pass


class ResourceUnavailableError(PlaybackError):
    """A track's resource cannot be opened (missing, unreadable, undecodable)."""

    pass


class EngineError(PlaybackError):
    """A playback operation failed, or the handle is no longer valid."""

    pass


class InvalidPositionError(PlaybackError):
    """Seek rejected: duration unknown or nothing loaded."""

    pass


class BusyError(PlaybackError):
    """Command rejected because a track switch is in flight."""

    pass


class LoadTimeoutError(PlaybackError, TimeoutError):
    """A track load did not finish within the watchdog limit."""

    pass
