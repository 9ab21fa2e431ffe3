"""Audio engine adapter contract.

The engine is the only place platform decoding/output lives. Everything it
does is asynchronous; status changes are pushed to a single subscriber per
loaded resource, which is why the PlaybackController owns that subscription
and fans the state out itself.
"""

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

_handle_ids = itertools.count(1)


@dataclass(frozen=True)
class EngineStatus:
    """Point-in-time status of one loaded resource."""

    is_loaded: bool = False
    is_playing: bool = False
    position: float = 0.0
    duration: Optional[float] = None
    did_finish: bool = False
    error: Optional[str] = None


StatusCallback = Callable[[EngineStatus], None]


class EngineHandle:
    """A loaded resource. Opaque outside the engine and the controller."""

    def __init__(self, locator: str):
        self.handle_id = next(_handle_ids)
        self.locator = locator
        self.unloaded = False
        self.subscriber: Optional[StatusCallback] = None

    def notify(self, status: EngineStatus) -> None:
        if self.subscriber is not None and not self.unloaded:
            self.subscriber(status)

    def __repr__(self) -> str:
        state = "unloaded" if self.unloaded else "live"
        return f"<EngineHandle #{self.handle_id} {state} {self.locator!r}>"


class AudioEngine(ABC):
    """Wraps a single non-reentrant audio decoding/output capability."""

    @abstractmethod
    async def load(self, locator: str) -> EngineHandle:
        """Prepare a resource without starting it. Raises ResourceUnavailableError."""

    @abstractmethod
    async def play(self, handle: EngineHandle) -> None:
        """Start or resume. Raises EngineError for an invalid handle."""

    @abstractmethod
    async def pause(self, handle: EngineHandle) -> None:
        """Pause. Raises EngineError for an invalid handle."""

    @abstractmethod
    async def stop(self, handle: EngineHandle) -> None:
        """Stop and rewind. Raises EngineError for an invalid handle."""

    @abstractmethod
    async def seek(self, handle: EngineHandle, position: float) -> float:
        """Seek, clamped to [0, duration]; returns the clamped position.

        Raises InvalidPositionError when the duration is unknown.
        """

    @abstractmethod
    async def unload(self, handle: EngineHandle) -> None:
        """Release resources. Calling it twice is a no-op."""

    @abstractmethod
    def get_status(self, handle: EngineHandle) -> EngineStatus:
        """Non-blocking status snapshot."""

    def subscribe(self, handle: EngineHandle, callback: StatusCallback) -> None:
        """Register the one status callback for ``handle`` (replaces any previous)."""
        handle.subscriber = callback
