"""Playback session: the single mutable playback state and its snapshots."""

from dataclasses import dataclass
from typing import Optional

from playback.engine import EngineHandle
from playback.exceptions import PlaybackError
from playback.metadata import Track


@dataclass(frozen=True)
class Snapshot:
    """Immutable, complete read of the session at one point in time."""

    track: Optional[Track] = None
    is_playing: bool = False
    position: float = 0.0
    duration: float = 0.0
    is_busy: bool = False
    is_seeking: bool = False
    generation: int = 0
    error: Optional[str] = None

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    @property
    def track_id(self) -> Optional[str]:
        return self.track.track_id if self.track else None


class PlaybackSession:
    """
    Process-wide playback state, owned and mutated only by PlaybackController.

    Views never see this object; they get Snapshots. ``handle`` is the one
    live engine resource and ``generation`` identifies which load it came
    from, so callbacks from superseded loads can be told apart.
    """

    def __init__(self):
        self.active_track: Optional[Track] = None
        self.handle: Optional[EngineHandle] = None
        # Engine reported an error on handle; resuming reloads the track
        self.handle_failed: bool = False
        self.is_playing: bool = False
        self.position: float = 0.0
        self.duration: float = 0.0
        self.is_busy: bool = False
        self.is_seeking: bool = False
        self.seek_target: Optional[float] = None
        self.generation: int = 0
        self.finished_generation: int = 0
        self.last_error: Optional[PlaybackError] = None

    def begin_load(self, track: Track) -> int:
        """Start a new generation for ``track``; returns the generation number."""
        self.generation += 1
        self.active_track = track
        self.is_playing = False
        self.position = 0.0
        self.duration = track.duration or 0.0
        self.handle_failed = False
        self.is_seeking = False
        self.seek_target = None
        self.last_error = None
        return self.generation

    def set_position(self, position: float) -> None:
        position = max(0.0, position)
        if self.duration > 0:
            position = min(position, self.duration)
        self.position = position

    def snapshot(self) -> Snapshot:
        return Snapshot(
            track=self.active_track,
            is_playing=self.is_playing,
            position=self.position,
            duration=self.duration,
            is_busy=self.is_busy,
            is_seeking=self.is_seeking,
            generation=self.generation,
            error=str(self.last_error) if self.last_error else None,
        )
