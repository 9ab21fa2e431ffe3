"""Library list view: every catalog track, with the current one marked."""

from dataclasses import dataclass
from typing import List, Optional

from playback.controller import CommandResult, same_track
from playback.logging import get_logger
from playback.metadata import Track
from playback.observer import PlaybackObserver
from views.formatting import UNKNOWN_ALBUM, UNKNOWN_ARTIST, format_time

logger = get_logger(__name__)


@dataclass(frozen=True)
class TrackRow:
    """One rendered list row."""

    track: Track
    is_current: bool
    is_playing: bool
    subtitle: str
    duration_text: str


class LibraryView(PlaybackObserver):
    """
    Headless model of the track list screen.

    Selecting a row starts that track (unless it is already current) and
    hands back the track the player view should open. Each row also has a
    secondary play/pause control that works without leaving the list.
    """

    @property
    def controls_enabled(self) -> bool:
        return not self.view.is_busy

    def rows(self) -> List[TrackRow]:
        rows = []
        for track in self._controller.catalog.list_tracks():
            current = same_track(self.view.track, track)
            rows.append(
                TrackRow(
                    track=track,
                    is_current=current,
                    is_playing=current and self.view.is_playing,
                    subtitle=f"{track.artist or UNKNOWN_ARTIST} • {track.album or UNKNOWN_ALBUM}",
                    duration_text=format_time(track.duration),
                )
            )
        return rows

    def is_current(self, track: Track) -> bool:
        return same_track(self.view.track, track)

    async def select(self, track: Track) -> Track:
        """Row tapped. Returns the track the player view should show."""
        current = self._controller.get_snapshot().track
        if same_track(current, track):
            logger.debug("Opening player for current track %s", track.title)
            return current
        await self.play_track(track)
        return self.view.track or track

    async def play_pause(self, track: Track) -> CommandResult:
        """Secondary row control: toggle the current track, or start another one."""
        if same_track(self._controller.get_snapshot().track, track):
            return await self.toggle_play_pause()
        return await self.play_track(track)

    async def toggle_current(self) -> Optional[CommandResult]:
        """Play/pause whatever is current; None when nothing is."""
        if self.view.track is None:
            return None
        return await self.toggle_play_pause()
