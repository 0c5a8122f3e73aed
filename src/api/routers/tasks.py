import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import Field

from api.backend import BackendAPI
from api.dependencies import get_backend, get_scheduler, get_store
from api.metrics import TASKS_CREATED_TOTAL
from chatmate.errors import (
    DuplicateTaskId,
    InvalidMeetingTransition,
    NotFound,
    TaskNotFound,
    UserNotFound,
)
from chatmate.lifecycle import toggled_status
from chatmate.models import (
    DEFAULT_TASK_DESCRIPTION,
    CamelModel,
    MeetingInfo,
    Task,
    TaskStatus,
    UserSnapshot,
)
from scheduling.meeting_scheduler import MeetingScheduler
from storage.base import Store

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateTaskIn(CamelModel):
    user_id: str
    task_question: str = Field(..., min_length=1)
    task_description: Optional[str] = None
    unique_task_id: Optional[str] = None
    status: Optional[TaskStatus] = None
    topic_context: Optional[str] = None
    present_user_data: Optional[UserSnapshot] = None
    is_meeting: Optional[MeetingInfo] = None


class FindTaskIn(CamelModel):
    user_id: str
    unique_task_id: Optional[str] = None
    task_question: Optional[str] = None


class UpdateStatusIn(CamelModel):
    user_id: str
    status: TaskStatus
    unique_task_id: Optional[str] = None
    task_question: Optional[str] = None


def _dump(task: Task) -> dict:
    return task.model_dump(mode="json", by_alias=True)


async def _resolve_task(
    store: Store,
    username: str,
    unique_task_id: Optional[str],
    task_question: Optional[str],
) -> Task:
    """Look up by tracking id first, then by the exact question text."""
    if not unique_task_id and not task_question:
        raise HTTPException(
            status_code=400, detail="uniqueTaskId or taskQuestion is required"
        )
    try:
        if unique_task_id:
            try:
                return await store.find_task_by_unique_id(username, unique_task_id)
            except TaskNotFound:
                if not task_question:
                    raise
        return await store.find_task_by_question(username, task_question)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/create-task", status_code=201)
async def create_task(
    payload: CreateTaskIn,
    store: Store = Depends(get_store),
    backend: BackendAPI = Depends(get_backend),
) -> dict:
    """Create a task directly (admin tools and integrations)."""
    meeting = payload.is_meeting
    if meeting is not None:
        meeting = meeting.model_copy(
            update={
                "title": meeting.title or payload.topic_context or "Meeting",
                "description": meeting.description or payload.task_description,
                "status": "pending",
            }
        )

    task = Task(
        task_question=payload.task_question,
        task_description=payload.task_description or DEFAULT_TASK_DESCRIPTION,
        topic_context=payload.topic_context,
        status=payload.status or ("pending" if meeting else "inprogress"),
        present_user_data=payload.present_user_data,
        is_meeting=meeting,
    )

    try:
        if payload.unique_task_id:
            task.unique_task_id = payload.unique_task_id
            saved = await store.create_task(payload.user_id, task)
        else:
            saved = await backend.create_task(payload.user_id, task)
    except UserNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DuplicateTaskId as e:
        raise HTTPException(status_code=409, detail=str(e))

    TASKS_CREATED_TOTAL.labels(kind="meeting" if meeting else "task").inc()
    logger.info(f"Created task {saved.unique_task_id} for {payload.user_id}")
    return {"message": "Task created successfully", "task": _dump(saved)}


@router.post("/find-task")
async def find_task(payload: FindTaskIn, store: Store = Depends(get_store)) -> dict:
    task = await _resolve_task(
        store, payload.user_id, payload.unique_task_id, payload.task_question
    )
    return {"task": _dump(task)}


@router.get("/tasks/{username}")
async def list_tasks(
    username: str,
    status: Optional[TaskStatus] = None,
    store: Store = Depends(get_store),
) -> dict:
    """All tasks of one owner, newest first, optionally filtered by status."""
    try:
        tasks = await store.list_tasks(username, status=status)
    except UserNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"tasks": [_dump(t) for t in tasks], "total": len(tasks)}


@router.patch("/tasks")
async def update_task_status(
    payload: UpdateStatusIn, store: Store = Depends(get_store)
) -> dict:
    task = await _resolve_task(
        store, payload.user_id, payload.unique_task_id, payload.task_question
    )
    updated = await store.update_task_status(
        payload.user_id, task.unique_task_id, payload.status
    )
    return {"message": "Task status updated", "task": _dump(updated)}


@router.post("/tasks/{username}/{unique_task_id}/toggle")
async def toggle_task(
    username: str, unique_task_id: str, store: Store = Depends(get_store)
) -> dict:
    """Admin checkbox: in progress <-> completed."""
    try:
        task = await store.find_task_by_unique_id(username, unique_task_id)
        updated = await store.update_task_status(
            username, unique_task_id, toggled_status(task.status)
        )
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"task": _dump(updated)}


@router.post("/tasks/{username}/{unique_task_id}/cancel-meeting")
async def cancel_meeting(
    username: str,
    unique_task_id: str,
    scheduler: MeetingScheduler = Depends(get_scheduler),
) -> dict:
    try:
        task = await scheduler.cancel_meeting(username, unique_task_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidMeetingTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"task": _dump(task)}


@router.delete("/tasks/{unique_task_id}")
async def delete_task(
    unique_task_id: str,
    user_id: str = Query(..., alias="userId"),
    store: Store = Depends(get_store),
) -> dict:
    try:
        await store.delete_task(user_id, unique_task_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"message": "Task deleted successfully"}
