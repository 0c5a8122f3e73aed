import logging
import os
from datetime import timezone
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from google.oauth2.credentials import Credentials

from chatmate.errors import UserNotFound
from chatmate.models import GoogleLink
from storage.base import UserStore

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/userinfo.email",
]


class GoogleAuthStore:
    """Google OAuth tokens kept on the user record, Fernet-encrypted at rest."""

    def __init__(self, users: UserStore, key: Optional[str] = None):
        self.users = users
        # In production the key MUST come from the environment, otherwise
        # tokens written by a previous process cannot be decrypted.
        key = key or os.getenv("GOOGLE_TOKEN_ENCRYPTION_KEY")
        if not key:
            logger.warning(
                "GOOGLE_TOKEN_ENCRYPTION_KEY not set. Generating a temporary key."
            )
            key = Fernet.generate_key().decode()
        self.fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def _encrypt(self, data: Optional[str]) -> Optional[str]:
        if not data:
            return None
        return self.fernet.encrypt(data.encode()).decode()

    def _decrypt(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        try:
            return self.fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            logger.error("Failed to decrypt stored Google token")
            return None

    async def save_credentials(
        self,
        username: str,
        credentials: Credentials,
        email: Optional[str] = None,
        google_id: Optional[str] = None,
    ) -> None:
        """Store tokens for a user, keeping the old refresh token if Google did not resend one."""
        user = await self.users.get_user(username)
        link = user.google or GoogleLink()

        link.access_token = self._encrypt(credentials.token)
        if credentials.refresh_token:
            link.refresh_token = self._encrypt(credentials.refresh_token)
        link.token_expiry = credentials.expiry
        link.email = email or link.email
        link.google_id = google_id or link.google_id

        user.google = link
        await self.users.save_user(user)
        logger.info(f"Saved Google credentials for user {username}")

    async def get_credentials(self, username: str) -> Optional[Credentials]:
        """Rebuild Credentials for a user; None when no usable refresh token is stored."""
        try:
            user = await self.users.get_user(username)
        except UserNotFound:
            return None
        if not user.google:
            return None

        refresh_token = self._decrypt(user.google.refresh_token)
        if not refresh_token:
            return None

        expiry = user.google.token_expiry
        # google-auth compares against naive UTC
        if expiry and expiry.tzinfo:
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)

        return Credentials(
            token=self._decrypt(user.google.access_token),
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=os.getenv("GOOGLE_CLIENT_ID"),
            client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
            scopes=GOOGLE_SCOPES,
            expiry=expiry,
        )

    async def get_email(self, username: str) -> Optional[str]:
        user = await self.users.get_user(username)
        return user.google.email if user.google else None

    async def delete_credentials(self, username: str) -> None:
        user = await self.users.get_user(username)
        user.google = None
        await self.users.save_user(user)
        logger.info(f"Deleted Google credentials for user {username}")
