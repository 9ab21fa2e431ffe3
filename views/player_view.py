"""Now-playing view: track info, seek slider, transport buttons."""

from typing import Optional

from playback.controller import CommandResult, Direction, PlaybackController
from playback.events import EventBus
from playback.metadata import Track
from playback.observer import DEFAULT_RECONCILE_INTERVAL, PlaybackObserver
from playback.session import Snapshot
from views.formatting import UNKNOWN_ALBUM, UNKNOWN_ARTIST, format_time


class PlayerView(PlaybackObserver):
    """
    Headless model of the player detail screen.

    The view is opened for a track but follows whatever the controller is
    actually playing. While the user drags the slider, state updates keep
    flowing into ``view`` but do not move ``slider_position``.
    """

    def __init__(
        self,
        controller: PlaybackController,
        event_bus: EventBus,
        track: Optional[Track] = None,
        reconcile_interval: float = DEFAULT_RECONCILE_INTERVAL,
    ):
        self._requested = track
        self.dragging = False
        self.slider_position = 0.0
        super().__init__(controller, event_bus, reconcile_interval)

    async def open(self) -> Optional[CommandResult]:
        """Activate; start the requested track if nothing is loaded yet."""
        self.activate()
        if self._requested is not None and self.view.track is None:
            return await self.play_track(self._requested)
        return None

    def on_view_changed(self, view: Snapshot) -> None:
        if not self.dragging:
            self.slider_position = view.position

    # Display ------------------------------------------------------------

    @property
    def track(self) -> Optional[Track]:
        return self.view.track or self._requested

    @property
    def title(self) -> str:
        return self.track.title if self.track else ""

    @property
    def subtitle(self) -> str:
        track = self.track
        if track is None:
            return ""
        return f"{track.artist or UNKNOWN_ARTIST} • {track.album or UNKNOWN_ALBUM}"

    @property
    def elapsed_text(self) -> str:
        return format_time(self.slider_position)

    @property
    def duration_text(self) -> str:
        return format_time(self.view.duration)

    @property
    def controls_enabled(self) -> bool:
        return not self.view.is_busy

    # Seek slider ----------------------------------------------------------

    def begin_seek(self) -> None:
        self.dragging = True

    def drag_to(self, position: float) -> None:
        upper = self.view.duration if self.view.duration > 0 else position
        self.slider_position = max(0.0, min(position, upper))

    async def complete_seek(self, position: float) -> CommandResult:
        self.drag_to(position)
        try:
            result = await self.seek_to(position)
        finally:
            self.dragging = False
        self.slider_position = self.view.position
        return result

    # Transport ------------------------------------------------------------

    async def toggle(self) -> CommandResult:
        return await self.toggle_play_pause()

    async def next(self) -> CommandResult:
        return await self.advance(Direction.NEXT)

    async def previous(self) -> CommandResult:
        return await self.advance(Direction.PREVIOUS)
