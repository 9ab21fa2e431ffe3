"""GStreamer-based audio engine.

Each loaded track gets its own ``playbin`` element, so a handle maps to one
pipeline and unloading it tears the pipeline down. Bus messages are pumped
from an asyncio task instead of a GLib main loop; the pump resolves pending
state transitions and pushes EngineStatus to the handle's single subscriber.
"""

import asyncio
import os
from typing import List, Optional, Tuple, Type

import gi
gi.require_version('Gst', '1.0')
from gi.repository import Gst

from playback.engine import AudioEngine, EngineHandle, EngineStatus
from playback.exceptions import (
    EngineError,
    InvalidPositionError,
    PlaybackError,
    ResourceUnavailableError,
)
from playback.logging import get_logger

logger = get_logger(__name__)


# GStreamer playbin flags
GST_FLAG_AUDIO = 0x02
GST_FLAG_SOFT_VOLUME = 0x10

# Seconds between bus polls
BUS_POLL_INTERVAL = 0.05
# Seconds between progress statuses while playing
PROGRESS_INTERVAL = 0.3


class GstHandle(EngineHandle):
    """Handle backed by a dedicated playbin pipeline."""

    def __init__(self, locator: str, playbin: Gst.Element):
        super().__init__(locator)
        self.playbin: Optional[Gst.Element] = playbin
        self.bus = playbin.get_bus()
        self.pump_task: Optional[asyncio.Task] = None
        # (target state, future, error class raised if the pipeline errors first)
        self.waiters: List[Tuple[Gst.State, asyncio.Future, Type[PlaybackError]]] = []
        self.finished = False
        self.error: Optional[str] = None
        self.last_progress = 0.0


class GstAudioEngine(AudioEngine):
    """Audio engine adapter over GStreamer playbin."""

    def __init__(
        self,
        progress_interval: float = PROGRESS_INTERVAL,
        poll_interval: float = BUS_POLL_INTERVAL,
    ):
        if not Gst.is_initialized():
            Gst.init(None)
        self._progress_interval = progress_interval
        self._poll_interval = poll_interval

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self, locator: str) -> EngineHandle:
        uri = self._to_uri(locator)

        playbin = Gst.ElementFactory.make("playbin", None)
        if not playbin:
            raise EngineError("Failed to create GStreamer playbin")
        try:
            playbin.set_property("flags", GST_FLAG_AUDIO | GST_FLAG_SOFT_VOLUME)
        except (AttributeError, TypeError):
            # Ignore errors setting flags (playbin might not support this property)
            pass
        playbin.set_property("uri", uri)

        handle = GstHandle(locator, playbin)
        handle.pump_task = asyncio.get_running_loop().create_task(self._pump(handle))
        try:
            await self._change_state(handle, Gst.State.PAUSED, ResourceUnavailableError)
        except PlaybackError:
            await self.unload(handle)
            raise
        logger.debug("Loaded %s as %r", locator, handle)
        return handle

    async def unload(self, handle: EngineHandle) -> None:
        if handle.unloaded:
            return
        handle.unloaded = True
        if not isinstance(handle, GstHandle):
            return

        for _state, future, _error_cls in handle.waiters:
            if not future.done():
                future.set_exception(EngineError("Handle unloaded"))
        handle.waiters.clear()

        if handle.pump_task is not None:
            handle.pump_task.cancel()
            handle.pump_task = None
        if handle.playbin is not None:
            handle.playbin.set_state(Gst.State.NULL)
            handle.playbin = None
        logger.debug("Unloaded %r", handle)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def play(self, handle: EngineHandle) -> None:
        gst_handle = self._require(handle)
        gst_handle.finished = False
        await self._change_state(gst_handle, Gst.State.PLAYING, EngineError)
        gst_handle.error = None

    async def pause(self, handle: EngineHandle) -> None:
        await self._change_state(self._require(handle), Gst.State.PAUSED, EngineError)

    async def stop(self, handle: EngineHandle) -> None:
        gst_handle = self._require(handle)
        await self._change_state(gst_handle, Gst.State.READY, EngineError)
        gst_handle.finished = False
        gst_handle.error = None

    async def seek(self, handle: EngineHandle, position: float) -> float:
        gst_handle = self._require(handle)
        duration = self._query_duration(gst_handle)
        if duration is None:
            raise InvalidPositionError("Cannot seek: duration unknown")

        position = max(0.0, min(position, duration))
        success = gst_handle.playbin.seek_simple(
            Gst.Format.TIME,
            Gst.SeekFlags.FLUSH | Gst.SeekFlags.KEY_UNIT,
            int(position * Gst.SECOND),
        )
        if not success:
            raise EngineError(f"Seek failed for position {position:.2f}s")
        gst_handle.finished = False
        return position

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self, handle: EngineHandle) -> EngineStatus:
        if handle.unloaded or not isinstance(handle, GstHandle) or handle.playbin is None:
            return EngineStatus(is_loaded=False)

        _ret, state, _pending = handle.playbin.get_state(0)
        position = 0.0
        success, raw_position = handle.playbin.query_position(Gst.Format.TIME)
        if success and raw_position >= 0:
            position = raw_position / Gst.SECOND

        return EngineStatus(
            is_loaded=True,
            is_playing=state == Gst.State.PLAYING and not handle.finished,
            position=position,
            duration=self._query_duration(handle),
            did_finish=handle.finished,
            error=handle.error,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _to_uri(self, locator: str) -> str:
        if Gst.uri_is_valid(locator):
            return locator
        path = os.path.abspath(locator)
        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            raise ResourceUnavailableError(f"File not found or unreadable: {locator}")
        return Gst.filename_to_uri(path)

    def _require(self, handle: EngineHandle) -> GstHandle:
        if handle.unloaded or not isinstance(handle, GstHandle) or handle.playbin is None:
            raise EngineError(f"Handle is no longer valid: {handle!r}")
        return handle

    def _query_duration(self, handle: GstHandle) -> Optional[float]:
        success, duration = handle.playbin.query_duration(Gst.Format.TIME)
        if success and duration > 0:
            return duration / Gst.SECOND
        return None

    async def _change_state(
        self, handle: GstHandle, target: Gst.State, error_cls: Type[PlaybackError]
    ) -> None:
        """Request a state change and wait until the pipeline reports it."""
        future = asyncio.get_running_loop().create_future()
        waiter = (target, future, error_cls)
        handle.waiters.append(waiter)

        ret = handle.playbin.set_state(target)
        if ret == Gst.StateChangeReturn.FAILURE:
            handle.waiters.remove(waiter)
            raise error_cls(f"Failed to change state to {target} for {handle.locator}")
        if ret != Gst.StateChangeReturn.ASYNC:
            handle.waiters.remove(waiter)
            return
        await future

    def _resolve_waiters(self, handle: GstHandle, state: Gst.State) -> None:
        remaining = []
        for waiter in handle.waiters:
            target, future, _error_cls = waiter
            if future.done():
                continue
            if target == state:
                future.set_result(state)
            else:
                remaining.append(waiter)
        handle.waiters = remaining

    def _fail_waiters(self, handle: GstHandle, message: str) -> None:
        for _target, future, error_cls in handle.waiters:
            if not future.done():
                future.set_exception(error_cls(message))
        handle.waiters.clear()

    async def _pump(self, handle: GstHandle) -> None:
        """Drain the pipeline bus and emit progress while playing."""
        loop = asyncio.get_running_loop()
        while not handle.unloaded:
            message = handle.bus.pop()
            if message is None:
                self._emit_progress(handle, loop.time())
                await asyncio.sleep(self._poll_interval)
                continue
            self._on_message(handle, message)

    def _emit_progress(self, handle: GstHandle, now: float) -> None:
        if handle.playbin is None or now - handle.last_progress < self._progress_interval:
            return
        status = self.get_status(handle)
        if status.is_playing:
            handle.last_progress = now
            handle.notify(status)

    def _on_message(self, handle: GstHandle, message: Gst.Message) -> None:
        msg_type = message.type

        if msg_type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            logger.error("Playback error on %s: %s", handle.locator, err.message)
            if debug:
                logger.debug("GStreamer debug: %s", debug)
            self._log_codec_help(err.message, debug or "")
            handle.error = err.message
            if handle.waiters:
                self._fail_waiters(handle, err.message)
            else:
                handle.notify(self.get_status(handle))

        elif msg_type == Gst.MessageType.EOS:
            handle.finished = True
            handle.notify(self.get_status(handle))

        elif msg_type == Gst.MessageType.STATE_CHANGED:
            if message.src == handle.playbin:
                _old, new_state, _pending = message.parse_state_changed()
                self._resolve_waiters(handle, new_state)
                handle.notify(self.get_status(handle))

        elif msg_type == Gst.MessageType.DURATION_CHANGED:
            handle.notify(self.get_status(handle))

    def _log_codec_help(self, error: str, debug: str) -> None:
        """
        Log helpful messages for missing codecs.

        Args:
            error: Error message from GStreamer
            debug: Debug information from GStreamer
        """
        combined = (error + debug).lower()

        if 'flac' in combined:
            logger.warning("Missing FLAC support: install the GStreamer FLAC plugin (gst-plugins-good)")
        elif 'aac' in combined or 'm4a' in combined:
            logger.warning("Missing AAC support: install gst-plugins-bad or gst-libav")
        elif 'missing' in combined or 'decoder' in combined:
            logger.warning("Missing codec: install gst-plugins-good, gst-plugins-bad and gst-libav")
