# app.py
import os, logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import requests
from requests.exceptions import HTTPError
from dotenv import load_dotenv
from fastapi import FastAPI, Request, Depends, Query
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

import soundcloud_api as sc
from soundcloud_oauth import auth_url, exchange_code_for_token, generate_pkce, new_state
from graph_state import GraphState, layout_children, transform_tracks_to_graph_data
from browser import BrowserState, SORT_KEYS, format_release_date, nav_links, sort_tracks, widget_url
from logging_config import configure_logging

load_dotenv()
configure_logging(os.getenv("LOG_LEVEL", "INFO"))
log = logging.getLogger("synaptic")

app = FastAPI(title="Synaptic")
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))
templates.env.filters["release_date"] = format_release_date
templates.env.globals["artist_of"] = sc.artist_from_track

COOKIE_SECURE = os.getenv("COOKIE_SECURE", "true").lower() != "false"
ACCESS_TOKEN_MAX_AGE = 3600
PKCE_MAX_AGE = 600

ERROR_MESSAGES = {
    "invalid_state": "Sign-in could not be verified. Please try again.",
}

# ------------------ session ------------------

@dataclass(frozen=True)
class Session:
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return bool(self.access_token)

def get_session(request: Request) -> Session:
    return Session(
        access_token=request.cookies.get("access_token"),
        refresh_token=request.cookies.get("refresh_token"),
    )

def _set_session_cookies(resp, tokens: dict) -> None:
    resp.set_cookie("access_token", tokens["access_token"], httponly=True,
                    secure=COOKIE_SECURE, samesite="lax", max_age=ACCESS_TOKEN_MAX_AGE)
    if tokens.get("refresh_token"):
        resp.set_cookie("refresh_token", tokens["refresh_token"], httponly=True,
                        secure=COOKIE_SECURE, samesite="lax")

# ------------------ tiny utils ------------------

def _json_error(message: str, status: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)

def _not_authenticated() -> JSONResponse:
    return _json_error("Not authenticated", 401)

def _fetch_tracks(fetch: Callable[[], object], what: str) -> Tuple[List[dict], Optional[str]]:
    """Run a fetcher and degrade to ([], message) instead of raising."""
    try:
        payload = fetch()
    except sc.SoundCloudError as e:
        suffix = f" (Status: {e.status})" if e.status else ""
        return [], f"Failed to fetch {what}{suffix}"
    return sc.ensure_track_list(payload, what)

def _find_artist(artist_id: str, *track_lists: List[dict]) -> Optional[dict]:
    for tracks in track_lists:
        for t in tracks:
            artist = sc.artist_from_track(t)
            if str(artist.get("id")) == artist_id:
                return artist
    return None

def _artist_info(session: Session, state: BrowserState, *track_lists: List[dict]) -> dict:
    artist_id = state.current_artist_id
    artist = _find_artist(artist_id, *track_lists)
    if artist is None and state.pos > 0:
        # reached with →: the song we followed was liked by the previous artist
        came_from = state.history[state.pos - 1]
        followed, _ = _fetch_tracks(lambda: sc.artist_likes(session.access_token, came_from), "artist likes")
        artist = _find_artist(artist_id, followed)
    return artist or {"id": artist_id, "name": "Unknown Artist", "avatar_url": None}

# ------------------ routes: ui + oauth ------------------

@app.get("/", response_class=HTMLResponse)
def home(request: Request, session: Session = Depends(get_session)):
    return templates.TemplateResponse(request, "index.html", {"authenticated": session.authenticated})

@app.get("/error", response_class=HTMLResponse)
def error_page(request: Request, message: str = ""):
    text = ERROR_MESSAGES.get(message, message or "Something went wrong.")
    return templates.TemplateResponse(request, "index.html", {"authenticated": False, "error": text})

@app.get("/login")
def login():
    verifier, challenge = generate_pkce()
    state = new_state()
    resp = RedirectResponse(auth_url(state, challenge))
    resp.set_cookie("pkce_verifier", verifier, httponly=True, secure=COOKIE_SECURE,
                    samesite="lax", max_age=PKCE_MAX_AGE)
    resp.set_cookie("pkce_state", state, httponly=True, secure=COOKIE_SECURE,
                    samesite="lax", max_age=PKCE_MAX_AGE)
    return resp

@app.get("/callback")
def callback(request: Request, code: Optional[str] = None, state: Optional[str] = None):
    saved_state = request.cookies.get("pkce_state")
    if not state or state != saved_state:
        log.warning("OAuth state mismatch (received=%s, saved=%s)", bool(state), bool(saved_state))
        return RedirectResponse("/error?message=invalid_state")
    if not code:
        return HTMLResponse("<p>Missing code.</p>", status_code=400)

    try:
        tokens = exchange_code_for_token(code, request.cookies.get("pkce_verifier"))
    except HTTPError as e:
        detail = e.response.text if e.response is not None else str(e)
        return _json_error(f"Token exchange failed: {detail}", 500)
    except requests.RequestException as e:
        log.error("auth error: %s", e)
        return _json_error(str(e) or "Authentication failed", 500)
    if not tokens.get("access_token"):
        return _json_error("Authentication failed", 500)

    log.info("SoundCloud sign-in complete")
    resp = RedirectResponse("/dashboard")
    _set_session_cookies(resp, tokens)
    resp.delete_cookie("pkce_verifier")
    resp.delete_cookie("pkce_state")
    return resp

@app.get("/logout")
def logout():
    resp = RedirectResponse("/")
    resp.delete_cookie("access_token")
    resp.delete_cookie("refresh_token")
    return resp

# ------------------ routes: soundcloud proxies ------------------

@app.get("/api/soundcloud/likes")
def likes(session: Session = Depends(get_session)):
    if not session.authenticated:
        return _not_authenticated()
    try:
        return JSONResponse(sc.my_liked_tracks(session.access_token))
    except sc.SoundCloudError as e:
        log.error("Error fetching likes: %s", e)
        return _json_error("Failed to fetch liked tracks", 500)

@app.get("/api/soundcloud/artist-likes/{artist_id}")
def artist_likes(artist_id: str, session: Session = Depends(get_session)):
    if not session.authenticated:
        return _not_authenticated()
    try:
        return JSONResponse(sc.artist_likes(session.access_token, artist_id))
    except sc.SoundCloudError as e:
        log.error("Error fetching likes of artist %s: %s", artist_id, e)
        return _json_error("Failed to fetch artist likes", 500)

@app.get("/api/soundcloud/artist-tracks/{artist_id}")
def artist_tracks(artist_id: str, session: Session = Depends(get_session)):
    if not session.authenticated:
        return _not_authenticated()
    try:
        return JSONResponse(sc.artist_tracks(session.access_token, artist_id))
    except sc.SoundCloudError as e:
        log.error("Error fetching tracks of artist %s: %s", artist_id, e)
        return _json_error("Failed to fetch artist tracks", 500)

# ------------------ routes: graph ------------------

class ExpandRequest(BaseModel):
    node_id: str
    graph: dict

@app.get("/api/graph")
def graph(session: Session = Depends(get_session)):
    if not session.authenticated:
        return _not_authenticated()
    try:
        payload = sc.my_liked_tracks(session.access_token)
    except sc.SoundCloudError as e:
        log.error("Error fetching likes: %s", e)
        return _json_error("Failed to fetch liked tracks", 500)
    return JSONResponse(transform_tracks_to_graph_data(payload))

@app.post("/api/graph/expand")
def expand_graph(body: ExpandRequest, session: Session = Depends(get_session)):
    if not session.authenticated:
        return _not_authenticated()
    state = GraphState.from_visualization(body.graph)
    node = state.nodes.get(body.node_id)
    if node is None or node.type == "user" or node.expanded:
        # nothing to fetch; hand the graph back as we understood it
        return JSONResponse(state.to_visualization_format())

    artist_id = node.data.get("artist_id")
    if artist_id is None:
        return _json_error("Node has no artist to expand", 400)
    try:
        payload = sc.artist_likes(session.access_token, str(artist_id))
    except sc.SoundCloudError as e:
        log.error("Error expanding node %s: %s", node.id, e)
        return _json_error("Failed to fetch artist likes", 500)

    tracks, message = sc.ensure_track_list(payload, "artist likes")
    nxt = state.expand(node.id, tracks)
    data = nxt.to_visualization_format()
    layout_children(data, node.id, [nid for nid in nxt.nodes if nid not in state.nodes])
    if message:
        data["message"] = message
    elif not tracks:
        data["message"] = "This artist has no public likes"
    return JSONResponse(data)

# ------------------ routes: dashboard ------------------

def _my_likes(session: Session) -> Tuple[List[dict], Optional[str]]:
    return _fetch_tracks(lambda: sc.my_liked_tracks(session.access_token), "liked tracks")

@app.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request, session: Session = Depends(get_session)):
    if not session.authenticated:
        return RedirectResponse("/login")
    tracks, error = _my_likes(session)
    return templates.TemplateResponse(request, "dashboard.html", {
        "view": None, "tracks": tracks, "error": error,
    })

@app.get("/dashboard/graph", response_class=HTMLResponse)
def graph_view(request: Request, session: Session = Depends(get_session)):
    if not session.authenticated:
        return RedirectResponse("/login")
    tracks, error = _my_likes(session)
    data = transform_tracks_to_graph_data(tracks) if tracks else {"nodes": [], "links": []}
    return templates.TemplateResponse(request, "graph.html", {
        "view": "graph", "tracks": tracks, "error": error, "graph": data,
    })

@app.get("/dashboard/tracks", response_class=HTMLResponse)
def track_view(
    request: Request,
    history: Optional[str] = None,
    pos: Optional[str] = None,
    i: Optional[str] = None,
    sort: Optional[str] = None,
    direction: Optional[str] = Query(None, alias="dir"),
    play: Optional[str] = None,
    session: Session = Depends(get_session),
):
    if not session.authenticated:
        return RedirectResponse("/login")
    state = BrowserState.from_query(history, pos, i, sort, direction, play)
    my_likes, error = _my_likes(session)
    ctx = {"view": "track", "tracks": my_likes, "error": error, "state": state}

    if not state.started:
        return templates.TemplateResponse(request, "browser.html", ctx)

    token = session.access_token
    artist_id = state.current_artist_id
    liked, likes_msg = _fetch_tracks(lambda: sc.artist_likes(token, artist_id), "artist likes")
    if not liked and len(state.history) == 1:
        # first load only: a starting artist with no public likes shows our own
        liked = my_likes
    own, own_msg = _fetch_tracks(lambda: sc.artist_tracks(token, artist_id), "artist tracks")
    if not own and not own_msg:
        own_msg = "No tracks available for this artist (they might have private tracks)"

    state = state.clamped(len(liked))
    selected = next((t for t in own + liked if str(t.get("id")) == state.play), None)
    ctx.update({
        "state": state,
        "artist": _artist_info(session, state, own, liked, my_likes),
        "own_tracks": sort_tracks(own, state.sort_by, state.direction),
        "own_message": own_msg,
        "liked": liked,
        "likes_message": likes_msg,
        "current_liked": liked[state.index] if liked else None,
        "nav": nav_links(state, liked),
        "sort_keys": SORT_KEYS,
        "selected": selected,
        "widget_url": widget_url(selected),
    })
    return templates.TemplateResponse(request, "browser.html", ctx)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))
