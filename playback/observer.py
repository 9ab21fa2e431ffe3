"""Base class for views that follow the playback controller.

A view keeps a local Snapshot. It is replaced wholesale (never merged field
by field) when the view becomes active, whenever the controller pushes a new
state on the EventBus, and on a periodic reconciliation tick that catches
anything the view missed while it was not listening. Commands may update the
local copy tentatively for responsiveness; the authoritative snapshot
replaces it as soon as the command resolves or the next tick runs.
"""

import asyncio
from dataclasses import replace
from typing import Optional, Union

from playback.controller import CommandResult, Direction, PlaybackController
from playback.events import EventBus
from playback.logging import get_logger
from playback.metadata import Track
from playback.session import Snapshot

logger = get_logger(__name__)

DEFAULT_RECONCILE_INTERVAL = 0.5


class PlaybackObserver:
    """A view of the playback state with bounded-latency consistency."""

    def __init__(
        self,
        controller: PlaybackController,
        event_bus: EventBus,
        reconcile_interval: float = DEFAULT_RECONCILE_INTERVAL,
    ):
        self._controller = controller
        self._events = event_bus
        self._reconcile_interval = reconcile_interval
        self._tick_task: Optional[asyncio.Task] = None

        self.view: Snapshot = Snapshot.empty()
        # True while ``view`` holds a local guess the controller has not confirmed
        self.tentative: bool = False
        self.active: bool = False

    # ============================================================================
    # Lifecycle
    # ============================================================================

    def activate(self) -> None:
        """Adopt the controller's state in full and start following it."""
        if not self.active:
            self.active = True
            self._events.subscribe(EventBus.PLAYBACK_STATE_CHANGED, self._on_state_changed)
            self._start_ticking()
        self._replace_view(self._controller.get_snapshot())

    def deactivate(self) -> None:
        if not self.active:
            return
        self.active = False
        self._events.unsubscribe(EventBus.PLAYBACK_STATE_CHANGED, self._on_state_changed)
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    def reconcile(self) -> bool:
        """
        One reconciliation tick.

        Returns:
            True if the local view was replaced, False if the tick was skipped
            (a track switch is in flight) or nothing differed.
        """
        snapshot = self._controller.get_snapshot()
        if snapshot.is_busy:
            return False
        if snapshot == self.view and not self.tentative:
            return False
        self._replace_view(snapshot)
        return True

    # ============================================================================
    # Commands
    # ============================================================================

    async def play_track(self, track: Track) -> CommandResult:
        self._tentative(track=track, position=0.0)
        return await self._settle(self._controller.play_track(track))

    async def toggle_play_pause(self) -> CommandResult:
        if self.view.track is not None:
            self._tentative(is_playing=not self.view.is_playing)
        return await self._settle(self._controller.toggle_play_pause())

    async def seek_to(self, position: float) -> CommandResult:
        return await self._settle(self._controller.seek_to(position))

    async def advance(self, direction: Union[Direction, str]) -> CommandResult:
        return await self._settle(self._controller.advance(direction))

    # ============================================================================
    # Hooks
    # ============================================================================

    def on_view_changed(self, view: Snapshot) -> None:
        """Called after every replacement of the local view. Override to render."""

    # ============================================================================
    # Internals
    # ============================================================================

    def _replace_view(self, snapshot: Snapshot) -> None:
        self.view = snapshot
        self.tentative = False
        self.on_view_changed(snapshot)

    def _tentative(self, **changes) -> None:
        self.view = replace(self.view, **changes)
        self.tentative = True
        self.on_view_changed(self.view)

    async def _settle(self, command) -> CommandResult:
        result = await command
        if not result:
            logger.debug("%s: command failed: %s", type(self).__name__, result.error)
        self._replace_view(self._controller.get_snapshot())
        return result

    def _on_state_changed(self, snapshot: Snapshot) -> None:
        if self.active:
            self._replace_view(snapshot)

    def _start_ticking(self) -> None:
        if self._tick_task is not None or not self._reconcile_interval:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous use): callers tick with reconcile()
            return
        self._tick_task = loop.create_task(self._tick_loop())

    async def _tick_loop(self) -> None:
        while self.active:
            await asyncio.sleep(self._reconcile_interval)
            self.reconcile()
