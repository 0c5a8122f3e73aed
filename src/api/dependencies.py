from typing import Optional

from fastapi import Depends, HTTPException

from api import state
from api.backend import BackendAPI
from scheduling.meeting_scheduler import MeetingScheduler
from storage.base import Store
from storage.google_auth import GoogleAuthStore


def get_store() -> Store:
    if state.store is None:
        raise HTTPException(status_code=503, detail="Store not initialized")
    return state.store


def get_google_auth_store() -> Optional[GoogleAuthStore]:
    return state.google_auth_store


def get_backend(store: Store = Depends(get_store)) -> BackendAPI:
    return BackendAPI(task_store=store)


def get_scheduler(
    store: Store = Depends(get_store),
    google_auth_store: Optional[GoogleAuthStore] = Depends(get_google_auth_store),
) -> MeetingScheduler:
    if google_auth_store is None:
        raise HTTPException(status_code=503, detail="Auth store not initialized")
    return MeetingScheduler(store, google_auth_store)
