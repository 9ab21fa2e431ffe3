"""Music library scanning: the ordered track list playback navigates."""

import os
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from playback.config import DEFAULT_EXTENSIONS, DEFAULT_MAX_TRACKS
from playback.events import EventBus
from playback.exceptions import CatalogError
from playback.logging import get_logger
from playback.metadata import Track, read_track

logger = get_logger(__name__)


def _parse_extensions(value: str) -> Set[str]:
    return {e.strip().lower() for e in value.split(',') if e.strip()}


class TrackCatalog:
    """Scans music directories and keeps an ordered, read-only track list.

    The order of ``list_tracks()`` is the navigation order for next/previous.
    Scanning is blocking file I/O; async callers run ``refresh`` in a worker
    thread, hence the lock.
    """

    def __init__(
        self,
        music_dirs: Iterable[Path],
        extensions: Optional[Set[str]] = None,
        max_tracks: int = DEFAULT_MAX_TRACKS,
        event_bus: Optional[EventBus] = None,
    ):
        self._music_dirs = [Path(d) for d in music_dirs]
        self._extensions = extensions or _parse_extensions(DEFAULT_EXTENSIONS)
        self._max_tracks = max_tracks
        self._events = event_bus
        self._tracks: Tuple[Track, ...] = ()
        self._lock = threading.Lock()

    @classmethod
    def from_tracks(cls, tracks: Iterable[Track]) -> "TrackCatalog":
        """Catalog over an already-known track list (no scanning)."""
        catalog = cls(music_dirs=[])
        catalog._tracks = tuple(tracks)
        return catalog

    def list_tracks(self) -> Tuple[Track, ...]:
        with self._lock:
            return self._tracks

    def __len__(self) -> int:
        return len(self.list_tracks())

    def refresh(self) -> Tuple[Track, ...]:
        """Rescan all music directories. Raises CatalogError if none is readable."""
        existing = [d for d in self._music_dirs if d.is_dir()]
        if self._music_dirs and not existing:
            raise CatalogError(
                "No music directory found: " + ", ".join(str(d) for d in self._music_dirs)
            )

        paths: List[str] = []
        for music_dir in existing:
            paths.extend(self._scan_directory(music_dir))
        paths.sort()

        if len(paths) > self._max_tracks:
            logger.warning(
                "Found %d audio files, keeping the first %d", len(paths), self._max_tracks
            )
            paths = paths[: self._max_tracks]

        tracks = tuple(read_track(p) for p in paths)
        with self._lock:
            self._tracks = tracks
        logger.info("Catalog scanned: %d tracks from %d directories", len(tracks), len(existing))

        if self._events is not None:
            self._events.publish(EventBus.CATALOG_CHANGED, {"count": len(tracks)})
        return tracks

    def _scan_directory(self, directory: Path) -> List[str]:
        """Recursively collect audio file paths under ``directory``."""
        found: List[str] = []

        def on_error(err: OSError) -> None:
            logger.warning("Error scanning %s: %s", err.filename, err)

        for root, _dirs, files in os.walk(directory, onerror=on_error):
            for name in files:
                if Path(name).suffix.lower() in self._extensions:
                    found.append(str(Path(root) / name))
        return found
