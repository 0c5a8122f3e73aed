import os
from typing import Dict, Optional, Tuple

from storage.base import Store
from storage.google_auth import GoogleAuthStore

STORE_BACKEND = os.getenv("STORE_BACKEND", "postgres").strip().lower()

# Global instances initialized at startup
store: Optional[Store] = None
google_auth_store: Optional[GoogleAuthStore] = None

# OAuth "state" values handed to Google -> (username being linked, time.monotonic() at login)
oauth_sessions: Dict[str, Tuple[str, float]] = {}
