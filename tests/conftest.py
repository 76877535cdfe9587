import os

import requests

os.environ.setdefault("SOUNDCLOUD_CLIENT_ID", "client-id")
os.environ.setdefault("SOUNDCLOUD_CLIENT_SECRET", "client-secret")
os.environ.setdefault("SOUNDCLOUD_REDIRECT_URI", "http://testserver/callback")


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or ("" if payload is None else str(payload))

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


def make_track(track_id, artist_id=100, title=None, **extra):
    track = {
        "id": track_id,
        "title": title or f"Track {track_id}",
        "user": {"id": artist_id, "username": f"artist{artist_id}", "avatar_url": f"https://i1.sndcdn.com/avatar-{artist_id}.jpg"},
        "artwork_url": f"https://i1.sndcdn.com/artworks-{track_id}.jpg",
        "created_at": "2024/01/02 03:04:05 +0000",
        "permalink_url": f"https://soundcloud.com/artist{artist_id}/track-{track_id}",
    }
    track.update(extra)
    return track
