#!/usr/bin/env python3
"""Local Player - headless entry point.

Scans the music directories, starts playback and follows the playlist
(auto-advancing with wraparound) until interrupted.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from playback.catalog import TrackCatalog
from playback.config import get_config
from playback.controller import PlaybackController
from playback.events import EventBus
from playback.exceptions import CatalogError, ConfigurationError, PlaybackError
from playback.logging import AppLogger, get_logger
from playback.session import Snapshot
from views.player_view import PlayerView

logger = get_logger(__name__)


class NowPlayingPrinter(PlayerView):
    """Prints a status line whenever the track or play state changes."""

    def __init__(self, *args, **kwargs):
        self._last_line: Optional[str] = None
        super().__init__(*args, **kwargs)

    def on_view_changed(self, view: Snapshot) -> None:
        super().on_view_changed(view)
        if view.track is None:
            return
        state = "loading" if view.is_busy else ("playing" if view.is_playing else "paused")
        line = f"[{state}] {self.title} - {self.subtitle} ({self.duration_text})"
        if view.error:
            line += f"  error: {view.error}"
        if line != self._last_line:
            self._last_line = line
            print(line, flush=True)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="localplayer", description=__doc__.splitlines()[0])
    parser.add_argument(
        "--music-dir", action="append", type=Path, default=None,
        help="directory to scan (repeatable; defaults to [library] music_dirs)",
    )
    parser.add_argument("--start", type=int, default=0, help="catalog index to start at")
    parser.add_argument(
        "--no-auto-advance", action="store_true", help="stop at the end of each track"
    )
    parser.add_argument("--debug", action="store_true", help="log at DEBUG level to stderr")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    config = get_config()
    events = EventBus()
    catalog = TrackCatalog(
        args.music_dir or config.music_directories,
        extensions=config.audio_extensions,
        max_tracks=config.max_tracks,
        event_bus=events,
    )
    try:
        tracks = await asyncio.to_thread(catalog.refresh)
    except CatalogError as e:
        logger.error("%s", e)
        return 1
    if not tracks:
        logger.error("No audio files found")
        return 1

    # Imported here so --help works without GStreamer installed
    from playback.gst_engine import GstAudioEngine

    engine = GstAudioEngine(progress_interval=config.progress_interval)
    overrides = {"auto_advance": False} if args.no_auto_advance else {}
    controller = PlaybackController.from_config(engine, catalog, events, config, **overrides)
    controller.start()

    start = tracks[args.start % len(tracks)]
    view = NowPlayingPrinter(controller, events, start, config.reconcile_interval)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        result = await view.open()
        if result is not None and not result:
            logger.warning("Could not start %s: %s", start.title, result.error)
        await stop.wait()
    finally:
        view.deactivate()
        await controller.shutdown()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    try:
        config = get_config()
        AppLogger(log_dir=config.log_dir, debug=args.debug)
        return asyncio.run(run(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except PlaybackError as e:
        logger.critical("Playback failed: %s", e, exc_info=True)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == '__main__':
    sys.exit(main())
