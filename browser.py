# browser.py
"""State for the linear track browser.

The page is server-rendered, so everything the browser remembers (artist
history, cursor, sort, selected song) travels in the query string. Each
navigation method returns a new BrowserState; `url()` turns it back into a
link the page binds to a key.
"""
import urllib.parse
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from soundcloud_api import artist_from_track

SORT_KEYS = ("date", "plays")
DIRECTIONS = ("asc", "desc")
BROWSER_PATH = "/dashboard/tracks"

WIDGET_BASE = "https://w.soundcloud.com/player/"
WIDGET_OPTS = {
    "color": "#FF7700",
    "auto_play": "false",
    "hide_related": "true",
    "show_comments": "false",
    "show_user": "true",
    "show_reposts": "false",
    "show_teaser": "false",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# ------------------ dates ------------------

def _parse_created_at(raw) -> Optional[datetime]:
    if not raw or not isinstance(raw, str):
        return None
    # api.soundcloud.com uses "2013/03/14 21:51:24 +0000"; newer payloads are ISO-8601
    for fmt in ("%Y/%m/%d %H:%M:%S %z", "%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z"):
        try:
            return datetime.strptime(raw.replace("Z", "+0000"), fmt)
        except ValueError:
            continue
    return None

def _release_date(track: dict) -> Optional[datetime]:
    year = track.get("release_year")
    if not year:
        return None
    try:
        return datetime(int(year), int(track.get("release_month") or 1),
                        int(track.get("release_day") or 1), tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None

def track_date(track: dict) -> datetime:
    return _release_date(track) or _parse_created_at(track.get("created_at")) or _EPOCH

def format_release_date(track: dict) -> str:
    y, m, d = track.get("release_year"), track.get("release_month"), track.get("release_day")
    if y and m and d:
        try:
            return f"{int(y)}-{int(m):02d}-{int(d):02d}"
        except (TypeError, ValueError):
            pass
    created = _parse_created_at(track.get("created_at"))
    if created:
        return created.astimezone(timezone.utc).date().isoformat()
    return "Unknown"

# ------------------ sorting ------------------

def sort_tracks(tracks: List[dict], sort_by: str = "date", direction: str = "desc") -> List[dict]:
    if not tracks:
        return []
    if sort_by == "plays":
        key = lambda t: t.get("playback_count") or 0
    else:
        key = track_date
    return sorted(tracks, key=key, reverse=(direction == "desc"))

def next_sort(sort_by: str, direction: str, chosen: str) -> Tuple[str, str]:
    """Same key flips the direction; a new key starts descending."""
    if chosen == sort_by:
        return sort_by, ("desc" if direction == "asc" else "asc")
    return chosen, "desc"

# ------------------ player ------------------

def widget_url(track: Optional[dict]) -> Optional[str]:
    if not track or not track.get("permalink_url"):
        return None
    params = {"url": track["permalink_url"], **WIDGET_OPTS}
    return f"{WIDGET_BASE}?{urllib.parse.urlencode(params)}"

# ------------------ state ------------------

def clamp(i: int, n: int) -> int:
    if n <= 0:
        return 0
    return max(0, min(i, n - 1))

def _as_int(raw, default: int = 0) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class BrowserState:
    history: Tuple[str, ...] = ()
    pos: int = 0
    index: int = 0
    sort_by: str = "date"
    direction: str = "desc"
    play: Optional[str] = None

    @classmethod
    def from_query(cls, history: Optional[str] = None, pos=None, i=None,
                   sort: Optional[str] = None, direction: Optional[str] = None,
                   play: Optional[str] = None) -> "BrowserState":
        ids = tuple(h for h in (history or "").split(",") if h)
        return cls(
            history=ids,
            pos=clamp(_as_int(pos), len(ids)),
            index=max(0, _as_int(i)),
            sort_by=sort if sort in SORT_KEYS else "date",
            direction=direction if direction in DIRECTIONS else "desc",
            play=play or None,
        )

    @property
    def started(self) -> bool:
        return bool(self.history)

    @property
    def current_artist_id(self) -> Optional[str]:
        return self.history[self.pos] if self.history else None

    def start(self, artist_id) -> "BrowserState":
        return replace(self, history=(str(artist_id),), pos=0, index=0, play=None)

    def up(self) -> "BrowserState":
        return replace(self, index=max(0, self.index - 1))

    def down(self, n_likes: int) -> "BrowserState":
        return replace(self, index=clamp(self.index + 1, n_likes))

    def left(self) -> "BrowserState":
        if self.pos <= 0:
            return self
        return replace(self, pos=self.pos - 1, index=0)

    def right(self, artist_id) -> "BrowserState":
        """Move on to `artist_id`, appending it to the history.

        A no-op when it's the artist we're already on.
        """
        if artist_id is None or str(artist_id) == self.current_artist_id:
            return self
        return replace(self, history=self.history + (str(artist_id),),
                       pos=len(self.history), index=0)

    def sorted_by(self, chosen: str) -> "BrowserState":
        if chosen not in SORT_KEYS:
            return self
        by, direction = next_sort(self.sort_by, self.direction, chosen)
        return replace(self, sort_by=by, direction=direction)

    def select(self, track_id) -> "BrowserState":
        return replace(self, play=str(track_id) if track_id is not None else None)

    def clamped(self, n_likes: int) -> "BrowserState":
        return replace(self, index=clamp(self.index, n_likes))

    def query(self) -> dict:
        q = {"history": ",".join(self.history), "pos": self.pos, "i": self.index,
             "sort": self.sort_by, "dir": self.direction}
        if self.play:
            q["play"] = self.play
        return q

    def url(self, path: str = BROWSER_PATH) -> str:
        return f"{path}?{urllib.parse.urlencode(self.query())}"


def nav_links(state: BrowserState, liked: List[dict]) -> dict:
    """Arrow-key targets for the rendered page."""
    current = liked[clamp(state.index, len(liked))] if liked else None
    right_to = artist_from_track(current)["id"] if current else None
    return {
        "up": state.up().url(),
        "down": state.down(len(liked)).url(),
        "left": state.left().url(),
        "right": state.right(right_to).url(),
    }
