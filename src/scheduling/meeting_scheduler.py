import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from chatmate.errors import (
    InvalidMeetingTransition,
    NotFound,
    OrganizerNotLinked,
    PartialSchedulingSuccess,
)
from chatmate.lifecycle import check_meeting_transition
from chatmate.models import MeetingRecord, OwnerProfile, Task
from integration.calendar_integration import MEETING_TIMEZONE, CalendarIntegration
from storage.base import Store
from storage.google_auth import GoogleAuthStore

logger = logging.getLogger(__name__)


@dataclass
class MeetingRequest:
    task_id: str
    username: str
    title: str
    description: Optional[str]
    start_time: datetime
    end_time: datetime
    user_emails: List[str]


@dataclass
class ScheduleResult:
    organizer: str
    meet_link: Optional[str]
    event_link: Optional[str]
    meeting: MeetingRecord
    linkage_error: Optional[PartialSchedulingSuccess] = None

    @property
    def user_task_updated(self) -> bool:
        return self.linkage_error is None


def format_duration(start: datetime, end: datetime) -> str:
    """'1h 30m', '2h' or '45m'."""
    total_minutes = int((end - start).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"
    return f"{minutes}m"


def localize(value: datetime) -> datetime:
    """Naive datetimes are read as wall-clock time in the meeting timezone."""
    if value.tzinfo is None:
        return value.replace(tzinfo=ZoneInfo(MEETING_TIMEZONE))
    return value


def meeting_date_time(start: datetime) -> Tuple[str, str]:
    """Date (YYYY-MM-DD) and time (HH:MM:SS) in the meeting timezone."""
    if start.tzinfo is not None:
        start = start.astimezone(ZoneInfo(MEETING_TIMEZONE))
    return start.strftime("%Y-%m-%d"), start.strftime("%H:%M:%S")


def _dedupe(emails: List[str]) -> List[str]:
    seen = set()
    out = []
    for email in emails:
        e = (email or "").strip()
        if e and e.lower() not in seen:
            seen.add(e.lower())
            out.append(e)
    return out


def _meeting_status(task: Task) -> str:
    return task.is_meeting.status if task.is_meeting else "pending"


class MeetingScheduler:
    """Turns a pending meeting task into a calendar event and links them.

    The calendar call and the task update are separate writes. When the
    second one fails, the event stays and the result carries a
    PartialSchedulingSuccess; reconcile() repairs such tasks later from the
    stored meeting records.
    """

    def __init__(
        self,
        store: Store,
        google_auth: GoogleAuthStore,
        calendar_factory=CalendarIntegration,
    ):
        self.store = store
        self.google_auth = google_auth
        self.calendar_factory = calendar_factory

    async def _find_organizer(self, emails: List[str]) -> OwnerProfile:
        organizer_email = emails[0] if emails else None
        if organizer_email is None:
            raise OrganizerNotLinked(None)

        for user in await self.store.find_users_by_email(emails):
            if (
                (user.email or "").lower() == organizer_email.lower()
                and user.google
                and user.google.refresh_token
            ):
                return user
        raise OrganizerNotLinked(organizer_email)

    async def schedule(self, request: MeetingRequest) -> ScheduleResult:
        request.start_time = localize(request.start_time)
        request.end_time = localize(request.end_time)
        if request.end_time <= request.start_time:
            raise ValueError("endTime must be after startTime")

        emails = _dedupe(request.user_emails)
        organizer = await self._find_organizer(emails)

        credentials = await self.google_auth.get_credentials(organizer.username)
        if credentials is None:
            raise OrganizerNotLinked(organizer.email)

        calendar = self.calendar_factory(credentials)
        await asyncio.to_thread(calendar.refresh)
        try:
            await self.google_auth.save_credentials(organizer.username, calendar.credentials)
        except Exception as e:
            logger.warning(f"Could not store refreshed token for {organizer.username}: {e}")

        event = await asyncio.to_thread(
            calendar.create_meeting_event,
            request.title,
            request.description,
            request.start_time,
            request.end_time,
            emails,
        )
        meet_link = event.get("hangoutLink")
        duration = format_duration(request.start_time, request.end_time)

        record = MeetingRecord(
            task_id=request.task_id,
            username=request.username,
            google_meeting_link=meet_link,
            event_link=event.get("htmlLink"),
            start_time=request.start_time,
            end_time=request.end_time,
            duration=duration,
        )
        try:
            await self.store.save_meeting(record)
        except Exception as e:
            logger.exception(f"Failed to store meeting record for task {request.task_id}: {e}")

        date, time = meeting_date_time(request.start_time)
        linkage_error = await self._link_task(
            request.username,
            request.task_id,
            {
                "status": "scheduled",
                "title": request.title,
                "description": request.description,
                "meeting_link": meet_link,
                "date": date,
                "time": time,
                "duration": duration,
            },
        )
        if linkage_error:
            logger.warning(str(linkage_error))

        return ScheduleResult(
            organizer=organizer.email or organizer.username,
            meet_link=meet_link,
            event_link=event.get("htmlLink"),
            meeting=record,
            linkage_error=linkage_error,
        )

    async def _link_task(
        self, username: str, task_id: str, fields: dict
    ) -> Optional[PartialSchedulingSuccess]:
        try:
            task = await self.store.find_task_by_unique_id(username, task_id)
            check_meeting_transition(_meeting_status(task), "scheduled")
            await self.store.update_meeting(username, task_id, fields)
        except NotFound:
            return PartialSchedulingSuccess(task_id, "task not found")
        except InvalidMeetingTransition as e:
            return PartialSchedulingSuccess(task_id, str(e))
        except Exception as e:
            logger.exception(f"Task update failed after scheduling {task_id}")
            return PartialSchedulingSuccess(task_id, str(e))
        return None

    async def record_outcome(
        self,
        username: str,
        task_id: str,
        raw_transcript: Optional[str],
        adjusted_transcript: Optional[str],
        minutes: Optional[str],
    ) -> Task:
        """Attach transcript and minutes after the meeting; marks it completed."""
        task = await self.store.find_task_by_unique_id(username, task_id)
        check_meeting_transition(_meeting_status(task), "completed")
        return await self.store.update_meeting(
            username,
            task_id,
            {
                "status": "completed",
                "meeting_raw_data": raw_transcript or "",
                "meeting_minutes": minutes or "",
                "meeting_summary": adjusted_transcript or "",
            },
        )

    async def cancel_meeting(self, username: str, task_id: str) -> Task:
        task = await self.store.find_task_by_unique_id(username, task_id)
        if task.is_meeting is None:
            raise InvalidMeetingTransition("none", "cancelled")
        check_meeting_transition(task.is_meeting.status, "cancelled")
        return await self.store.update_meeting(username, task_id, {"status": "cancelled"})

    async def reconcile(self) -> int:
        """Link tasks still 'pending' to meeting records that already exist."""
        repaired = 0
        for record in await self.store.list_meetings():
            try:
                task = await self.store.find_task_by_unique_id(record.username, record.task_id)
            except NotFound:
                continue
            if _meeting_status(task) != "pending":
                continue

            date, time = meeting_date_time(record.start_time)
            await self.store.update_meeting(
                record.username,
                record.task_id,
                {
                    "status": "scheduled",
                    "meeting_link": record.google_meeting_link,
                    "date": date,
                    "time": time,
                    "duration": record.duration,
                },
            )
            repaired += 1
            logger.info(f"Reconciled meeting for task {record.task_id} ({record.username})")
        return repaired
