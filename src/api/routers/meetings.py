import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from pydantic import BaseModel, Field, field_validator

from api.dependencies import get_scheduler, get_store
from api.metrics import MEETINGS_SCHEDULED_TOTAL
from chatmate.errors import InvalidMeetingTransition, NotFound, OrganizerNotLinked
from chatmate.models import CamelModel
from scheduling.meeting_scheduler import MeetingRequest, MeetingScheduler, localize
from storage.base import Store

router = APIRouter()
logger = logging.getLogger(__name__)


class ScheduleMeetingIn(CamelModel):
    task_id: str
    username: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    user_emails: List[str] = Field(..., min_length=1)

    @field_validator("start_time", "end_time")
    @classmethod
    def in_meeting_timezone(cls, v: datetime) -> datetime:
        return localize(v)


# Posted by the transcription service, which uses snake_case keys
class UpdateMeetingInfoIn(BaseModel):
    username: str
    task_id: str
    raw_transcript: Optional[str] = None
    adjusted_transcript: Optional[str] = None
    meeting_minutes_and_tasks: Optional[str] = None


@router.post("/schedule-meeting")
async def schedule_meeting(
    payload: ScheduleMeetingIn,
    scheduler: MeetingScheduler = Depends(get_scheduler),
) -> dict:
    """Create the calendar event for a meeting request and link it to the task."""
    request = MeetingRequest(
        task_id=payload.task_id,
        username=payload.username,
        title=payload.title,
        description=payload.description,
        start_time=payload.start_time,
        end_time=payload.end_time,
        user_emails=payload.user_emails,
    )
    try:
        result = await scheduler.schedule(request)
    except OrganizerNotLinked as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (HttpError, GoogleAuthError) as e:
        logger.error(f"Calendar call failed for task {payload.task_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to create calendar event")

    MEETINGS_SCHEDULED_TOTAL.labels(task_linked=str(result.user_task_updated).lower()).inc()
    return {
        "success": True,
        "organizer": result.organizer,
        "meetLink": result.meet_link,
        "eventLink": result.event_link,
        "meeting": result.meeting.model_dump(mode="json", by_alias=True),
        "userTaskUpdated": result.user_task_updated,
        "linkageError": str(result.linkage_error) if result.linkage_error else None,
    }


@router.post("/update-meeting-info")
async def update_meeting_info(
    payload: UpdateMeetingInfoIn,
    scheduler: MeetingScheduler = Depends(get_scheduler),
) -> dict:
    """Attach transcripts and minutes once the meeting has happened."""
    try:
        task = await scheduler.record_outcome(
            payload.username,
            payload.task_id,
            payload.raw_transcript,
            payload.adjusted_transcript,
            payload.meeting_minutes_and_tasks,
        )
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidMeetingTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {
        "message": "Meeting info updated successfully",
        "updatedTask": task.model_dump(mode="json", by_alias=True),
    }


@router.get("/meeting-records")
async def list_meeting_records(
    username: Optional[str] = None, store: Store = Depends(get_store)
) -> dict:
    meetings = await store.list_meetings(username)
    return {"meetings": [m.model_dump(mode="json", by_alias=True) for m in meetings]}


@router.delete("/meeting-records/{task_id}")
async def delete_meeting_record(task_id: str, store: Store = Depends(get_store)) -> dict:
    try:
        record = await store.delete_meeting_by_task_id(task_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "message": "Meeting deleted successfully",
        "deletedRecord": record.model_dump(mode="json", by_alias=True),
    }


@router.post("/meetings/reconcile")
async def reconcile_meetings(
    scheduler: MeetingScheduler = Depends(get_scheduler),
) -> dict:
    repaired = await scheduler.reconcile()
    return {"reconciled": repaired}
