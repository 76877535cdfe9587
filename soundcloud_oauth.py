import os, base64, hashlib, secrets, urllib.parse, logging
import requests
from dotenv import load_dotenv
load_dotenv()

log = logging.getLogger("synaptic.oauth")

AUTH_BASE = "https://secure.soundcloud.com/authorize"
TOKEN_URL = "https://secure.soundcloud.com/oauth/token"

CLIENT_ID     = os.getenv("SOUNDCLOUD_CLIENT_ID")
CLIENT_SECRET = os.getenv("SOUNDCLOUD_CLIENT_SECRET")
REDIRECT_URI  = os.getenv("SOUNDCLOUD_REDIRECT_URI", "http://127.0.0.1:8000/callback")


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

def generate_pkce() -> tuple[str, str]:
    """Return (verifier, S256 challenge)."""
    verifier = _b64url(secrets.token_bytes(32))
    challenge = _b64url(hashlib.sha256(verifier.encode("ascii")).digest())
    return verifier, challenge

def new_state() -> str:
    return secrets.token_hex(16)


def auth_url(state: str, code_challenge: str) -> str:
    params = {
        "client_id": CLIENT_ID,
        "redirect_uri": REDIRECT_URI,
        "response_type": "code",
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "state": state,
    }
    return f"{AUTH_BASE}?{urllib.parse.urlencode(params)}"

def exchange_code_for_token(code: str, code_verifier: str) -> dict:
    data = {
        "grant_type": "authorization_code",
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "redirect_uri": REDIRECT_URI,
        "code": code,
        "code_verifier": code_verifier,
    }
    headers = {
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept": "application/json; charset=utf-8",
    }
    r = requests.post(TOKEN_URL, headers=headers, data=data, timeout=15)
    if r.status_code != 200:
        log.error("token exchange failed: %s %s", r.status_code, r.text[:300])
    r.raise_for_status()
    return r.json()
