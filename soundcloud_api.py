# soundcloud_api.py
import logging
from typing import Any, List, Optional, Tuple

import requests

log = logging.getLogger("synaptic.soundcloud")

SOUNDCLOUD_API = "https://api.soundcloud.com"

MY_LIKES_LIMIT = 20
ARTIST_LIKES_LIMIT = 5
ARTIST_TRACKS_LIMIT = 50


class SoundCloudError(Exception):
    """Upstream call failed; `status` is None when no response came back."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def _oauth_headers(token: str) -> dict:
    return {"Authorization": f"OAuth {token}", "Accept": "application/json"}

def _get(access: str, path: str, **params) -> Any:
    url = f"{SOUNDCLOUD_API}{path}"
    try:
        r = requests.get(url, headers=_oauth_headers(access), params=params or None, timeout=15)
    except requests.RequestException as e:
        log.error("GET %s failed: %s", path, e)
        raise SoundCloudError("SoundCloud API unreachable") from e
    if r.status_code != 200:
        log.error("GET %s -> %s %s", path, r.status_code, r.text[:300])
        raise SoundCloudError(f"SoundCloud API error: {r.status_code}", r.status_code)
    try:
        return r.json()
    except ValueError as e:
        raise SoundCloudError("SoundCloud API returned invalid JSON", r.status_code) from e

# ------------------ track fetchers ------------------

def my_liked_tracks(access: str, limit: int = MY_LIKES_LIMIT) -> Any:
    return _get(access, "/me/likes/tracks", limit=limit)

def artist_likes(access: str, artist_id: str, limit: int = ARTIST_LIKES_LIMIT) -> Any:
    return _get(access, f"/users/{artist_id}/likes/tracks", limit=limit)

def artist_tracks(access: str, artist_id: str, limit: int = ARTIST_TRACKS_LIMIT) -> Any:
    return _get(access, f"/users/{artist_id}/tracks", limit=limit)

# ------------------ payload helpers ------------------

def ensure_track_list(payload: Any, what: str = "tracks") -> Tuple[List[dict], Optional[str]]:
    """Coerce an upstream payload to a list of track dicts.

    Returns the list and a message for the user when the payload had the
    wrong shape (or was empty).
    """
    if not isinstance(payload, list):
        log.warning("unexpected %s payload: %s", what, type(payload).__name__)
        return [], f"{what.capitalize()} data is in an unexpected format"
    tracks = [t for t in payload if isinstance(t, dict)]
    if not tracks:
        return [], None
    return tracks, None

def artist_from_track(track: dict) -> dict:
    user = track.get("user")
    if isinstance(user, dict):
        return {"id": user.get("id"), "name": user.get("username"), "avatar_url": user.get("avatar_url")}
    # flattened records
    return {"id": track.get("userId"), "name": track.get("username"), "avatar_url": track.get("avatar_url")}
