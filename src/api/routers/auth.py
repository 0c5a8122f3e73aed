import asyncio
import logging
import os
import secrets
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from google_auth_oauthlib.flow import Flow

from api import state
from api.dependencies import get_google_auth_store
from chatmate.errors import UserNotFound
from storage.google_auth import GOOGLE_SCOPES, GOOGLE_TOKEN_URI, GoogleAuthStore

router = APIRouter()
logger = logging.getLogger(__name__)

# Google Auth Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv(
    "GOOGLE_REDIRECT_URI", "http://localhost:8000/auth/google/callback"
)
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")
OAUTH_STATE_TTL_S = float(os.getenv("OAUTH_STATE_TTL_S", "600"))


def _build_flow(oauth_state: Optional[str] = None) -> Flow:
    return Flow.from_client_config(
        {
            "web": {
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": GOOGLE_TOKEN_URI,
            }
        },
        scopes=GOOGLE_SCOPES,
        redirect_uri=GOOGLE_REDIRECT_URI,
        state=oauth_state,
    )


def _remember_state(username: str) -> str:
    """Issue an OAuth state for `username`, dropping logins that were never finished."""
    now = time.monotonic()
    for key, (_, created) in list(state.oauth_sessions.items()):
        if now - created > OAUTH_STATE_TTL_S:
            del state.oauth_sessions[key]

    oauth_state = secrets.token_urlsafe(24)
    state.oauth_sessions[oauth_state] = (username, now)
    return oauth_state


def _claim_state(oauth_state: Optional[str]) -> Optional[str]:
    entry = state.oauth_sessions.pop(oauth_state or "", None)
    if entry is None:
        return None
    username, created = entry
    if time.monotonic() - created > OAUTH_STATE_TTL_S:
        logger.warning(f"Expired OAuth state for {username}")
        return None
    return username


def _redirect(query: str) -> Response:
    return Response(status_code=307, headers={"Location": f"{CLIENT_URL}/admin?{query}"})


@router.get("/auth/google/login")
async def google_login(username: str):
    """Starts linking the user's Google Calendar - redirects to Google."""
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Google credentials not configured")

    oauth_state = _remember_state(username)
    flow = _build_flow(oauth_state)
    # prompt=consent so Google always returns a refresh token
    authorization_url, _ = flow.authorization_url(
        access_type="offline", include_granted_scopes="true", prompt="consent"
    )
    return Response(status_code=307, headers={"Location": authorization_url})


@router.get("/auth/google/callback")
async def google_callback(
    code: Optional[str] = None,
    error: Optional[str] = None,
    oauth_state: Optional[str] = Query(None, alias="state"),
    google_auth_store: Optional[GoogleAuthStore] = Depends(get_google_auth_store),
):
    """Handles the OAuth2 callback and stores the organizer's tokens."""
    if error:
        logger.error(f"OAuth error: {error}")
        return _redirect(f"error={error}")

    username = _claim_state(oauth_state)
    if not code or username is None:
        return _redirect("error=invalid_state")

    if google_auth_store is None:
        return _redirect("error=configuration_error")

    try:
        flow = _build_flow(oauth_state)
        await asyncio.to_thread(flow.fetch_token, code=code)
        credentials = flow.credentials

        email = None
        google_id = None
        try:
            session = flow.authorized_session()
            user_info = await asyncio.to_thread(
                lambda: session.get("https://www.googleapis.com/userinfo/v2/me").json()
            )
            email = user_info.get("email")
            google_id = user_info.get("id")
        except Exception as e:
            logger.error(f"Failed to fetch user email: {e}")

        await google_auth_store.save_credentials(username, credentials, email, google_id)
        return _redirect("calendar=linked")

    except Exception as e:
        logger.error(f"OAuth callback failed for {username}: {e}")
        return _redirect("error=oauth_failed")


@router.get("/auth/google/status/{username}")
async def google_status(
    username: str,
    google_auth_store: Optional[GoogleAuthStore] = Depends(get_google_auth_store),
) -> dict:
    """Check if the user has linked a calendar."""
    if not google_auth_store:
        return {"connected": False, "error": "Auth store not initialized"}

    try:
        email = await google_auth_store.get_email(username)
        creds = await google_auth_store.get_credentials(username)
    except UserNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"connected": creds is not None, "email": email}


@router.post("/auth/google/disconnect/{username}")
async def google_disconnect(
    username: str,
    google_auth_store: Optional[GoogleAuthStore] = Depends(get_google_auth_store),
) -> dict:
    """Delete stored credentials."""
    if not google_auth_store:
        raise HTTPException(status_code=500, detail="Auth store not initialized")

    try:
        await google_auth_store.delete_credentials(username)
    except UserNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "disconnected"}
