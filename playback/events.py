"""Centralized event bus for decoupled component communication."""

from typing import Any, Callable, Dict, List
from playback.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish-subscribe event system. Components publish/subscribe without knowing each other.

    The audio engine reports status to exactly one callback per loaded track, and
    that callback belongs to the PlaybackController. The controller republishes
    its authoritative state here so any number of views can follow it.
    """

    # =========================================================================
    # Core -> Views: State Change Notifications (published by PlaybackController)
    # =========================================================================

    # Full Snapshot after every authoritative change
    PLAYBACK_STATE_CHANGED = "playback.state_changed"
    # {"position": float, "duration": float}
    PLAYBACK_PROGRESS = "playback.progress"
    # {"track": Track, "error": PlaybackError}
    PLAYBACK_ERROR = "playback.error"
    # Track that became active (loaded or attempted)
    TRACK_CHANGED = "track.changed"

    # Published by TrackCatalog after a rescan: {"count": int}
    CATALOG_CHANGED = "catalog.changed"

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event not in self._subscribers:
            self._subscribers[event] = []
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event in self._subscribers:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))

    def publish(self, event: str, data: Any = None) -> None:
        # Copy: a callback may unsubscribe itself while we iterate
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    "Error in event callback for %s: %s", event, e, exc_info=True
                )
