"""Display helpers shared by the views."""

import math
from typing import Optional

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


def format_time(seconds: Optional[float]) -> str:
    """Format seconds as m:ss; unknown or negative values show 0:00."""
    if seconds is None or math.isnan(seconds) or seconds < 0:
        return "0:00"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"
