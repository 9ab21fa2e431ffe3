"""Track model and metadata extraction for audio files using mutagen."""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mutagen import File, MutagenError
from mutagen.flac import FLAC
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4
from mutagen.oggvorbis import OggVorbis

from playback.logging import get_logger

logger = get_logger(__name__)


# Tag keys per field, tried in order across container formats
TITLE_KEYS = [
    'TITLE',      # FLAC, OGG (Vorbis)
    'TIT2',       # MP3 (ID3v2)
    '\xa9nam',    # MP4 (iTunes)
]
ARTIST_KEYS = [
    'ARTIST',     # FLAC, OGG (Vorbis)
    'TPE1',       # MP3 (ID3v2)
    '\xa9ART',    # MP4 (iTunes)
]
ALBUM_KEYS = [
    'ALBUM',      # FLAC, OGG (Vorbis)
    'TALB',       # MP3 (ID3v2)
    '\xa9alb',    # MP4 (iTunes)
]


@dataclass(frozen=True)
class Track:
    """A playable track. Immutable once produced by the catalog."""

    track_id: str
    title: str
    artist: Optional[str]
    album: Optional[str]
    duration: Optional[float]
    uri: str


def make_track_id(file_path: str) -> str:
    """Stable identifier: same file, same id across rescans."""
    resolved = str(Path(file_path).resolve())
    return hashlib.sha1(resolved.encode('utf-8')).hexdigest()[:16]


def read_track(file_path: str) -> Track:
    """
    Build a Track from a file, reading tags where mutagen understands them.

    Unreadable or untagged files still produce a Track titled after the file
    name; the engine reports whether it can actually be played.
    """
    title = artist = album = None
    duration: Optional[float] = None

    try:
        audio_file = File(file_path)
    except (MutagenError, OSError) as e:
        logger.debug("Could not read tags from %s: %s", file_path, e)
        audio_file = None

    if audio_file is not None:
        title = _get_tag_generic(audio_file, TITLE_KEYS)
        artist = _get_tag_generic(audio_file, ARTIST_KEYS)
        album = _get_tag_generic(audio_file, ALBUM_KEYS)
        info = getattr(audio_file, 'info', None)
        length = getattr(info, 'length', None)
        if length and length > 0:
            duration = float(length)

    return Track(
        track_id=make_track_id(file_path),
        title=title or Path(file_path).stem,
        artist=artist,
        album=album,
        duration=duration,
        uri=str(file_path),
    )


def _lookup(container, key: str):
    try:
        if container is not None and key in container:
            return container[key]
    except (KeyError, TypeError, ValueError):
        pass
    return None


def _get_tag_generic(audio_file, tag_keys: list) -> Optional[str]:
    """Get a tag value trying multiple possible keys - works for all formats."""
    for key in tag_keys:
        # FLAC/OGG keep Vorbis comments on .tags; MP3 and MP4 answer directly
        if isinstance(audio_file, (FLAC, OggVorbis)):
            value = _lookup(getattr(audio_file, 'tags', None), key)
        elif isinstance(audio_file, (MP3, MP4)):
            value = _lookup(audio_file, key)
        else:
            value = _lookup(audio_file, key)
            if value is None:
                value = _lookup(getattr(audio_file, 'tags', None), key)

        if value is None:
            continue

        # ID3 frames carry .text; Vorbis/MP4 return lists
        value = getattr(value, 'text', value)
        if isinstance(value, (list, tuple)):
            if not value:
                continue
            value = value[0]
        if isinstance(value, bytes):
            value = value.decode('utf-8', errors='ignore')

        result = str(value).strip()
        if result:
            return result
    return None
