import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from api.backend import BackendAPI
from api.dependencies import get_backend, get_store
from api.metrics import REQUEST_LATENCY_SECONDS, REQUESTS_TOTAL
from chatmate.errors import UserNotFound
from chatmate.models import CamelModel, ConversationTurn
from storage.base import Store

router = APIRouter()
logger = logging.getLogger(__name__)


class ChatIn(CamelModel):
    username: str
    question: str = Field(..., min_length=1)
    asker_username: Optional[str] = None
    history: List[ConversationTurn] = Field(default_factory=list)


@router.post("/chat")
async def chat(
    payload: ChatIn,
    store: Store = Depends(get_store),
    backend: BackendAPI = Depends(get_backend),
) -> dict:
    """Answer one chat turn for the assistant of `username`."""
    start = time.time()

    try:
        owner = await store.get_user(payload.username)
    except UserNotFound:
        REQUESTS_TOTAL.labels(endpoint="/chat", status="not_found").inc()
        raise HTTPException(status_code=404, detail="User not found")

    asker = None
    if payload.asker_username:
        try:
            asker = (await store.get_user(payload.asker_username)).snapshot()
        except UserNotFound:
            logger.info(f"Asker {payload.asker_username} is not registered")

    answer = await backend.get_answer(
        payload.question, owner, asker=asker, history=payload.history
    )

    REQUESTS_TOTAL.labels(endpoint="/chat", status="ok").inc()
    REQUEST_LATENCY_SECONDS.labels(endpoint="/chat").observe(time.time() - start)
    return {"answer": answer}
