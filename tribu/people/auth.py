import requests
from datetime import timedelta
from flask import current_app

from tribu.datetime_utils import utcnow
from tribu.models import db, GoogleToken

TOKEN_URL = "https://oauth2.googleapis.com/token"
TOKEN_REFRESH_BUFFER_SECONDS = 60


def _request_refresh_token_grant():
    """Exchange the configured refresh token for a new access token."""
    cfg = current_app.config
    if not all([cfg.get("GOOGLE_CLIENT_ID"), cfg.get("GOOGLE_CLIENT_SECRET"), cfg.get("GOOGLE_REFRESH_TOKEN")]):
        raise ValueError("Missing Google OAuth configuration (GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_REFRESH_TOKEN)")

    payload = {
        "grant_type": "refresh_token",
        "client_id": cfg["GOOGLE_CLIENT_ID"],
        "client_secret": cfg["GOOGLE_CLIENT_SECRET"],
        "refresh_token": cfg["GOOGLE_REFRESH_TOKEN"],
    }
    response = requests.post(TOKEN_URL, data=payload, timeout=30)
    response.raise_for_status()
    data = response.json()
    return data["access_token"], data.get("expires_in", 3600), data.get("token_type", "Bearer")


def get_access_token(force_refresh: bool = False) -> str:
    """Return a valid Google access token, refreshing it when needed."""
    return _ensure_token(force_refresh=force_refresh).access_token


def _ensure_token(force_refresh: bool = False) -> GoogleToken:
    auth = GoogleToken.get_current()
    if force_refresh or auth is None or _is_expiring(auth):
        access_token, expires_in, token_type = _request_refresh_token_grant()
        auth = _persist_token(access_token, utcnow() + timedelta(seconds=expires_in), token_type)
    return auth


def _persist_token(access_token: str, expires_at, token_type: str) -> GoogleToken:
    auth = GoogleToken.get_current()
    if auth is None:
        auth = GoogleToken(access_token=access_token, expires_at=expires_at)
        db.session.add(auth)
    else:
        auth.access_token = access_token
        auth.expires_at = expires_at
    auth.token_type = token_type or "Bearer"
    auth.updated_at = utcnow()
    db.session.commit()
    return auth


def _is_expiring(auth: GoogleToken) -> bool:
    buffer_time = utcnow() + timedelta(seconds=TOKEN_REFRESH_BUFFER_SECONDS)
    return auth.expires_at is None or auth.expires_at <= buffer_time
