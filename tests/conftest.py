"""Pytest configuration and fixtures."""

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from playback.catalog import TrackCatalog
from playback.controller import PlaybackController
from playback.engine import AudioEngine, EngineHandle, EngineStatus
from playback.events import EventBus
from playback.exceptions import EngineError, InvalidPositionError, ResourceUnavailableError
from playback.metadata import Track


class FakeAudioEngine(AudioEngine):
    """
    In-memory engine that records every call.

    Each operation yields to the loop at least once so concurrent commands
    really interleave. Optional gates hold ``load``/``seek`` until a test
    releases them; the ``fail_*`` attributes inject failures.
    """

    def __init__(self, default_duration: Optional[float] = 180.0):
        self.default_duration = default_duration
        self.durations: Dict[str, Optional[float]] = {}
        self.calls: List[tuple] = []
        self.live: Set[EngineHandle] = set()
        self.max_live = 0
        self.playing: Dict[int, bool] = {}
        self.positions: Dict[int, float] = {}

        self.load_gate: Optional[asyncio.Event] = None
        self.seek_gate: Optional[asyncio.Event] = None

        self.fail_load: Set[str] = set()
        self.fail_play: Set[str] = set()
        self.fail_pause = False
        self.fail_stop = False
        self.fail_unload = False

    @property
    def loaded(self) -> List[str]:
        return [args[0] for name, *args in self.calls if name == "load"]

    def handle_for(self, locator: str) -> EngineHandle:
        for handle in self.live:
            if handle.locator == locator:
                return handle
        raise LookupError(locator)

    def emit(self, handle: EngineHandle, **fields) -> None:
        """Push a status to the handle's subscriber, as the engine would."""
        status = dict(
            is_loaded=True,
            is_playing=self.playing.get(handle.handle_id, False),
            position=self.positions.get(handle.handle_id, 0.0),
            duration=self.durations.get(handle.locator, self.default_duration),
        )
        status.update(fields)
        handle.notify(EngineStatus(**status))

    async def load(self, locator: str) -> EngineHandle:
        self.calls.append(("load", locator))
        await asyncio.sleep(0)
        if self.load_gate is not None:
            await self.load_gate.wait()
        if locator in self.fail_load:
            raise ResourceUnavailableError(f"cannot open {locator}")
        handle = EngineHandle(locator)
        self.live.add(handle)
        self.max_live = max(self.max_live, len(self.live))
        self.playing[handle.handle_id] = False
        self.positions[handle.handle_id] = 0.0
        return handle

    async def play(self, handle: EngineHandle) -> None:
        self.calls.append(("play", handle.locator))
        await asyncio.sleep(0)
        self._check(handle)
        if handle.locator in self.fail_play:
            raise EngineError(f"cannot play {handle.locator}")
        self.playing[handle.handle_id] = True

    async def pause(self, handle: EngineHandle) -> None:
        self.calls.append(("pause", handle.locator))
        await asyncio.sleep(0)
        self._check(handle)
        if self.fail_pause:
            raise EngineError("pause failed")
        self.playing[handle.handle_id] = False

    async def stop(self, handle: EngineHandle) -> None:
        self.calls.append(("stop", handle.locator))
        await asyncio.sleep(0)
        self._check(handle)
        if self.fail_stop:
            raise EngineError("stop failed")
        self.playing[handle.handle_id] = False
        self.positions[handle.handle_id] = 0.0

    async def seek(self, handle: EngineHandle, position: float) -> float:
        self.calls.append(("seek", handle.locator, position))
        await asyncio.sleep(0)
        if self.seek_gate is not None:
            await self.seek_gate.wait()
        self._check(handle)
        duration = self.durations.get(handle.locator, self.default_duration)
        if duration is None:
            raise InvalidPositionError("duration unknown")
        position = max(0.0, min(position, duration))
        self.positions[handle.handle_id] = position
        return position

    async def unload(self, handle: EngineHandle) -> None:
        if handle.unloaded:
            return
        self.calls.append(("unload", handle.locator))
        # A failing unload still frees the resource; it only reports an error
        handle.unloaded = True
        self.live.discard(handle)
        await asyncio.sleep(0)
        if self.fail_unload:
            raise EngineError("unload failed")

    def get_status(self, handle: EngineHandle) -> EngineStatus:
        if handle.unloaded:
            return EngineStatus(is_loaded=False)
        return EngineStatus(
            is_loaded=True,
            is_playing=self.playing.get(handle.handle_id, False),
            position=self.positions.get(handle.handle_id, 0.0),
            duration=self.durations.get(handle.locator, self.default_duration),
        )

    def _check(self, handle: EngineHandle) -> None:
        if handle.unloaded:
            raise EngineError(f"invalid handle {handle!r}")


def make_track(name: str, duration: Optional[float] = 180.0, **fields) -> Track:
    values = dict(
        track_id=f"id-{name}",
        title=name.title(),
        artist=None,
        album=None,
        duration=duration,
        uri=f"/music/{name}.mp3",
    )
    values.update(fields)
    return Track(**values)


async def drain(rounds: int = 50) -> None:
    """Let scheduled callbacks and background tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_config(monkeypatch, temp_dir):
    """Fresh Config singleton rooted in temporary XDG directories."""
    from playback.config import Config

    monkeypatch.setenv('XDG_CONFIG_HOME', str(temp_dir / 'config'))
    monkeypatch.setenv('XDG_DATA_HOME', str(temp_dir / 'data'))
    Config.reset_instance()
    yield Config.get_instance()
    Config.reset_instance()


@pytest.fixture
def tracks():
    return [make_track("alpha"), make_track("bravo"), make_track("charlie")]


@pytest.fixture
def catalog(tracks):
    return TrackCatalog.from_tracks(tracks)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def engine():
    return FakeAudioEngine()


@pytest.fixture
def published(event_bus):
    """Records every controller event as (event, data)."""
    seen = []
    for event in (
        EventBus.PLAYBACK_STATE_CHANGED,
        EventBus.PLAYBACK_PROGRESS,
        EventBus.PLAYBACK_ERROR,
        EventBus.TRACK_CHANGED,
    ):
        event_bus.subscribe(event, lambda data, event=event: seen.append((event, data)))
    return seen


@pytest.fixture
async def controller(engine, catalog, event_bus):
    controller = PlaybackController(
        engine, catalog, event_bus, status_poll_interval=None
    )
    yield controller
    await controller.shutdown()
