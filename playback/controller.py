"""Playback controller - owns the engine handle, serializes commands, publishes state.

Views never touch the engine. They call the command coroutines here and read
Snapshots (pulled with ``get_snapshot`` or pushed on the EventBus). Every
command that mutates the engine runs under one cooperative lock, so two
commands never have engine calls outstanding at the same time, and track
switches are strictly one after another.
"""

import asyncio
import functools
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence, Set, Union

from playback.engine import AudioEngine, EngineHandle, EngineStatus
from playback.events import EventBus
from playback.exceptions import (
    BusyError,
    EngineError,
    InvalidPositionError,
    LoadTimeoutError,
    PlaybackError,
)
from playback.logging import get_logger
from playback.metadata import Track
from playback.session import PlaybackSession, Snapshot

if TYPE_CHECKING:
    from playback.catalog import TrackCatalog
    from playback.config import Config

logger = get_logger(__name__)


class Direction(Enum):
    """Navigation direction through the catalog."""

    NEXT = "next"
    PREVIOUS = "previous"


class BusyPolicy(Enum):
    """What a mutating command does while a track switch is in flight."""

    QUEUE = "queue"  # wait for the switch to settle, then run
    REJECT = "reject"  # fail immediately with BusyError


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a controller command. Truthy on success."""

    ok: bool
    error: Optional[PlaybackError] = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls) -> "CommandResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: PlaybackError) -> "CommandResult":
        return cls(ok=False, error=error)


def same_track(a: Optional[Track], b: Optional[Track]) -> bool:
    return a is not None and b is not None and a.track_id == b.track_id


def neighbor_track(
    tracks: Sequence[Track], pivot: Optional[Track], direction: Direction
) -> Optional[Track]:
    """
    Track next to ``pivot`` in ``tracks``, wrapping around at both ends.

    A pivot that is not in the list (or None) resolves to the first track
    going forward and to the last track going backward.
    """
    if not tracks:
        return None
    index = -1
    if pivot is not None:
        for i, track in enumerate(tracks):
            if track.track_id == pivot.track_id:
                index = i
                break

    if direction == Direction.NEXT:
        return tracks[(index + 1) % len(tracks)]
    if index == -1:
        return tracks[-1]
    return tracks[(index - 1) % len(tracks)]


class PlaybackController:
    """Single owner of the playback session and its engine handle."""

    def __init__(
        self,
        engine: AudioEngine,
        catalog: "TrackCatalog",
        event_bus: EventBus,
        busy_policy: Union[BusyPolicy, str] = BusyPolicy.QUEUE,
        load_timeout: Optional[float] = None,
        auto_advance: bool = True,
        status_poll_interval: Optional[float] = 0.5,
    ):
        self._engine = engine
        self._catalog = catalog
        self._events = event_bus
        self._busy_policy = BusyPolicy(busy_policy)
        self._load_timeout = load_timeout
        self._auto_advance = auto_advance
        self._status_poll_interval = status_poll_interval

        # Created on the first play command, lives until shutdown()
        self._session: Optional[PlaybackSession] = None
        self._command_lock = asyncio.Lock()
        self._seek_serial = 0

        # Load abandoned by the watchdog; the next load waits for it
        self._late_load: Optional[asyncio.Future] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._advance_tasks: Set[asyncio.Task] = set()
        self._cleanup_tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        engine: AudioEngine,
        catalog: "TrackCatalog",
        event_bus: EventBus,
        config: "Config",
        **overrides,
    ) -> "PlaybackController":
        options = {
            "busy_policy": config.busy_policy,
            "load_timeout": config.load_timeout,
            "auto_advance": config.auto_advance,
            "status_poll_interval": config.status_poll_interval,
        }
        options.update(overrides)
        return cls(engine, catalog, event_bus, **options)

    # ============================================================================
    # Read side
    # ============================================================================

    def get_snapshot(self) -> Snapshot:
        if self._session is None:
            return Snapshot.empty()
        return self._session.snapshot()

    @property
    def busy_policy(self) -> BusyPolicy:
        return self._busy_policy

    @property
    def catalog(self) -> "TrackCatalog":
        return self._catalog

    # ============================================================================
    # Commands
    # ============================================================================

    async def play_track(self, track: Track) -> CommandResult:
        """Switch to ``track`` and play it; resume if it is already loaded."""
        session = self._ensure_session()
        rejected = self._reject_if_busy(session, "play_track")
        if rejected is not None:
            return rejected

        async with self._command_lock:
            if session.handle is not None and same_track(session.active_track, track):
                return await self._resume_locked(session)
            return await self._switch_locked(session, track)

    async def resume(self) -> CommandResult:
        session = self._session
        if session is None or session.active_track is None:
            return CommandResult.success()
        rejected = self._reject_if_busy(session, "resume")
        if rejected is not None:
            return rejected

        async with self._command_lock:
            return await self._resume_locked(session)

    async def pause(self) -> CommandResult:
        session = self._session
        if session is None or session.handle is None:
            return CommandResult.success()
        rejected = self._reject_if_busy(session, "pause")
        if rejected is not None:
            return rejected

        async with self._command_lock:
            return await self._pause_locked(session)

    async def toggle_play_pause(self) -> CommandResult:
        """Pause if playing, else play. Queued calls see the previous call's outcome."""
        session = self._session
        if session is None or session.active_track is None:
            logger.debug("Toggle ignored: no active track")
            return CommandResult.success()
        rejected = self._reject_if_busy(session, "toggle_play_pause")
        if rejected is not None:
            return rejected

        async with self._command_lock:
            # Read is_playing only once the lock is ours
            if session.is_playing:
                return await self._pause_locked(session)
            return await self._resume_locked(session)

    async def seek_to(self, position: float) -> CommandResult:
        """Seek the loaded track. Status callbacks cannot move the position until it resolves."""
        session = self._session
        if session is None or session.handle is None:
            return CommandResult.failure(InvalidPositionError("Nothing loaded to seek in"))
        if session.duration <= 0:
            return CommandResult.failure(InvalidPositionError("Cannot seek: duration unknown"))
        rejected = self._reject_if_busy(session, "seek_to")
        if rejected is not None:
            return rejected

        target = max(0.0, min(float(position), session.duration))
        generation = session.generation
        previous = session.position
        self._seek_serial += 1
        serial = self._seek_serial

        session.is_seeking = True
        session.seek_target = target
        session.position = target
        self._publish_state(session)

        async with self._command_lock:
            if session.generation != generation or session.handle is None:
                # A switch ran first; the target belonged to another track
                return CommandResult.failure(
                    InvalidPositionError("Track changed before the seek could run")
                )
            try:
                actual = await self._engine.seek(session.handle, target)
            except InvalidPositionError as err:
                logger.info("Seek to %.2fs rejected: %s", target, err)
                self._end_seek(session, serial, previous)
                return CommandResult.failure(err)
            except PlaybackError as err:
                self._end_seek(session, serial, previous)
                return self._engine_failed(session, err)

            self._end_seek(session, serial, actual)
            logger.debug("Seeked to %.2fs", actual)
            return CommandResult.success()

    async def advance(self, direction: Union[Direction, str]) -> CommandResult:
        """Play the catalog neighbour of the active track, wrapping around."""
        direction = Direction(direction)
        if not self._catalog.list_tracks():
            logger.debug("Advance ignored: catalog is empty")
            return CommandResult.success()
        session = self._ensure_session()
        rejected = self._reject_if_busy(session, "advance")
        if rejected is not None:
            return rejected

        async with self._command_lock:
            # Pivot on the active track as it is now, after any queued switch
            target = neighbor_track(
                self._catalog.list_tracks(), session.active_track, direction
            )
            if target is None:
                return CommandResult.success()
            logger.info("Advance %s -> %s", direction.value, target.title)
            if session.handle is not None and same_track(session.active_track, target):
                return await self._resume_locked(session)
            return await self._switch_locked(session, target)

    # ============================================================================
    # Engine callbacks and reconciliation
    # ============================================================================

    def on_engine_status(self, generation: int, status: EngineStatus) -> None:
        """Status callback registered with the engine, tagged with its load generation."""
        session = self._session
        if session is None or generation != session.generation:
            logger.debug("Dropping status from superseded generation %d", generation)
            return
        self._apply_status(session, generation, status)

    def refresh_status(self) -> bool:
        """Poll the engine once and fold the result in. Skipped while a switch is in flight."""
        session = self._session
        if session is None or session.is_busy or session.handle is None:
            return False
        try:
            status = self._engine.get_status(session.handle)
        except PlaybackError as err:
            logger.debug("Status poll failed: %s", err)
            return False
        self._apply_status(session, session.generation, status)
        return True

    def start(self) -> None:
        """Start the background status poll on the running loop."""
        if self._poll_task is None and self._status_poll_interval:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def shutdown(self) -> None:
        """Stop background work and release the engine handle."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            await asyncio.gather(self._poll_task, return_exceptions=True)
            self._poll_task = None

        for task in list(self._advance_tasks):
            task.cancel()
        await asyncio.gather(*self._advance_tasks, return_exceptions=True)
        await asyncio.gather(*self._cleanup_tasks, return_exceptions=True)

        session = self._session
        if session is None:
            return
        async with self._command_lock:
            await self._release_handle(session)
            self._publish_state(session)
        logger.info("Playback controller shut down")

    # ============================================================================
    # Internals (callers hold the command lock where named *_locked)
    # ============================================================================

    def _ensure_session(self) -> PlaybackSession:
        if self._session is None:
            logger.debug("Creating playback session")
            self._session = PlaybackSession()
        return self._session

    def _reject_if_busy(self, session: PlaybackSession, command: str) -> Optional[CommandResult]:
        if self._busy_policy == BusyPolicy.REJECT and session.is_busy:
            logger.info("Rejected %s: a track switch is in flight", command)
            return CommandResult.failure(BusyError(f"{command} rejected: track switch in flight"))
        return None

    async def _switch_locked(
        self, session: PlaybackSession, track: Track, surface_errors: bool = True
    ) -> CommandResult:
        session.is_busy = True
        try:
            generation = session.begin_load(track)
            logger.info("Loading %s (generation %d)", track.title, generation)
            self._events.publish(EventBus.TRACK_CHANGED, track)
            self._publish_state(session)

            # Old handle goes first; two live handles must never coexist
            await self._release_handle(session)

            try:
                await self._drain_late_load()
                handle = await self._load_with_watchdog(track)
            except PlaybackError as err:
                return self._switch_failed(session, track, err, surface_errors)

            session.handle = handle
            self._engine.subscribe(
                handle, functools.partial(self.on_engine_status, generation)
            )

            try:
                await self._engine.play(handle)
            except PlaybackError as err:
                return self._switch_failed(session, track, err, surface_errors)

            session.is_playing = True
            logger.info("Playing %s", track.title)
            return CommandResult.success()
        finally:
            session.is_busy = False
            self._publish_state(session)

    async def _resume_locked(self, session: PlaybackSession) -> CommandResult:
        if session.active_track is None:
            return CommandResult.success()
        if session.handle is None or session.handle_failed:
            # Previous load failed or the pipeline errored; playing again means reloading
            return await self._switch_locked(session, session.active_track)
        if session.is_playing:
            return CommandResult.success()
        try:
            await self._engine.play(session.handle)
        except PlaybackError as err:
            return self._engine_failed(session, err)
        session.is_playing = True
        session.last_error = None
        self._publish_state(session)
        return CommandResult.success()

    async def _pause_locked(self, session: PlaybackSession) -> CommandResult:
        if session.handle is None or not session.is_playing:
            return CommandResult.success()
        try:
            await self._engine.pause(session.handle)
        except PlaybackError as err:
            return self._engine_failed(session, err)
        session.is_playing = False
        self._publish_state(session)
        return CommandResult.success()

    async def _release_handle(self, session: PlaybackSession) -> None:
        """Stop and unload the current handle. Failures are logged; the handle is dropped regardless."""
        handle = session.handle
        if handle is None:
            return
        try:
            await self._engine.stop(handle)
        except PlaybackError as err:
            logger.warning("Stopping %r failed, unloading anyway: %s", handle, err)
        try:
            await self._engine.unload(handle)
        except PlaybackError as err:
            logger.warning("Unloading %r failed: %s", handle, err)
        session.handle = None
        session.handle_failed = False
        session.is_playing = False

    async def _load_with_watchdog(self, track: Track) -> EngineHandle:
        load = asyncio.ensure_future(self._engine.load(track.uri))
        if self._load_timeout is None:
            return await load
        try:
            return await asyncio.wait_for(asyncio.shield(load), self._load_timeout)
        except asyncio.TimeoutError:
            # The load keeps running; whatever it produces is thrown away
            self._late_load = load
            load.add_done_callback(self._discard_late_handle)
            raise LoadTimeoutError(
                f"Loading {track.title} timed out after {self._load_timeout:g}s"
            ) from None

    async def _drain_late_load(self) -> None:
        """Wait out a load the watchdog gave up on and release what it produced."""
        late = self._late_load
        if late is None:
            return
        if not late.done():
            logger.info("Waiting for a timed-out load to finish before loading again")
            try:
                await asyncio.wait_for(asyncio.shield(late), self._load_timeout)
            except asyncio.TimeoutError:
                raise LoadTimeoutError("A timed-out load is still outstanding") from None
            except PlaybackError as err:
                logger.debug("Timed-out load failed late: %s", err)
        self._late_load = None
        if not late.cancelled() and late.exception() is None:
            await self._unload_quietly(late.result())
        await asyncio.gather(*self._cleanup_tasks, return_exceptions=True)

    def _discard_late_handle(self, load: asyncio.Future) -> None:
        if load.cancelled() or load.exception() is not None:
            return
        handle = load.result()
        logger.warning("Releasing handle from timed-out load: %r", handle)
        task = asyncio.ensure_future(self._unload_quietly(handle))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _unload_quietly(self, handle: EngineHandle) -> None:
        try:
            await self._engine.unload(handle)
        except PlaybackError as err:
            logger.warning("Unloading %r failed: %s", handle, err)

    def _switch_failed(
        self,
        session: PlaybackSession,
        track: Track,
        err: PlaybackError,
        surface_errors: bool,
    ) -> CommandResult:
        # active_track stays on the attempted track so views can offer a retry
        session.is_playing = False
        if surface_errors:
            logger.error("Could not play %s: %s", track.title, err)
            session.last_error = err
            self._events.publish(EventBus.PLAYBACK_ERROR, {"track": track, "error": err})
        else:
            logger.warning("Skipping %s: %s", track.title, err)
        return CommandResult.failure(err)

    def _engine_failed(self, session: PlaybackSession, err: PlaybackError) -> CommandResult:
        logger.error("Playback operation failed: %s", err)
        session.is_playing = False
        session.last_error = err
        self._events.publish(
            EventBus.PLAYBACK_ERROR, {"track": session.active_track, "error": err}
        )
        self._publish_state(session)
        return CommandResult.failure(err)

    def _end_seek(self, session: PlaybackSession, serial: int, position: float) -> None:
        if serial == self._seek_serial:
            session.is_seeking = False
            session.seek_target = None
            session.set_position(position)
        self._publish_state(session)

    def _apply_status(
        self, session: PlaybackSession, generation: int, status: EngineStatus
    ) -> None:
        if status.error:
            repeated = (
                session.last_error is not None
                and str(session.last_error) == status.error
                and not session.is_playing
            )
            session.is_playing = False
            session.handle_failed = True
            if not repeated:
                err = EngineError(status.error)
                session.last_error = err
                logger.error("Engine reported an error: %s", status.error)
                self._events.publish(
                    EventBus.PLAYBACK_ERROR, {"track": session.active_track, "error": err}
                )
                self._publish_state(session)
            return

        if not status.is_loaded:
            return

        if status.duration and status.duration > 0:
            session.duration = status.duration
        if not session.is_seeking:
            session.set_position(status.position)
            session.is_playing = status.is_playing and not status.did_finish

        self._events.publish(
            EventBus.PLAYBACK_PROGRESS,
            {"position": session.position, "duration": session.duration},
        )
        self._publish_state(session)

        if status.did_finish and session.finished_generation != generation:
            session.finished_generation = generation
            session.is_playing = False
            finished = session.active_track
            logger.info("Finished %s", finished.title if finished else "?")
            if self._auto_advance and finished is not None:
                task = asyncio.ensure_future(self._auto_advance_from(finished, generation))
                self._advance_tasks.add(task)
                task.add_done_callback(self._advance_tasks.discard)

    async def _auto_advance_from(self, finished: Track, generation: int) -> None:
        """Play the track after ``finished``; give up after one full pass of failures."""
        async with self._command_lock:
            session = self._session
            if session is None or session.generation != generation:
                logger.debug("Auto-advance skipped: playback already moved on")
                return
            tracks = self._catalog.list_tracks()
            candidate: Optional[Track] = finished
            for _attempt in range(len(tracks)):
                candidate = neighbor_track(tracks, candidate, Direction.NEXT)
                if candidate is None:
                    return
                result = await self._switch_locked(session, candidate, surface_errors=False)
                if result:
                    return
            if tracks:
                logger.warning("Auto-advance stopped: no playable track in the catalog")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._status_poll_interval)
            self.refresh_status()

    def _publish_state(self, session: PlaybackSession) -> None:
        self._events.publish(EventBus.PLAYBACK_STATE_CHANGED, session.snapshot())
