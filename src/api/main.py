import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api import state
from api.routers import auth, chat, meetings, ops, tasks
from api.workers import _reconciliation_worker
from chatmate.errors import InvalidMeetingTransition, NotFound, OrganizerNotLinked, UpstreamTimeout
from storage import db
from storage.google_auth import GoogleAuthStore
from storage.json_store import JsonStore
from storage.postgres_store import PostgresStore

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="ChatMate")

app.include_router(chat.router)
app.include_router(tasks.router)
app.include_router(meetings.router)
app.include_router(auth.router)
app.include_router(ops.router)


# Errors a router did not translate itself
@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(OrganizerNotLinked)
async def organizer_handler(request: Request, exc: OrganizerNotLinked) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(InvalidMeetingTransition)
async def transition_handler(request: Request, exc: InvalidMeetingTransition) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(UpstreamTimeout)
async def timeout_handler(request: Request, exc: UpstreamTimeout) -> JSONResponse:
    logger.error(f"Upstream timeout on {request.url.path}: {exc}")
    return JSONResponse(status_code=504, content={"detail": "Upstream service timed out"})


async def _open_store():
    if state.STORE_BACKEND == "json":
        logger.info("Using JSON file store")
        return JsonStore()

    await db.init_db_pool()
    await db.init_schema()
    logger.info("Using PostgreSQL store")
    return PostgresStore()


@app.on_event("startup")
async def startup() -> None:
    state.store = await _open_store()
    state.google_auth_store = GoogleAuthStore(state.store)

    # Start the background reconciliation worker
    asyncio.create_task(_reconciliation_worker())


@app.on_event("shutdown")
async def shutdown() -> None:
    if state.store is not None:
        await state.store.close()
        state.store = None
    logger.info("Store closed")
