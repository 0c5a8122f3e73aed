import logging
import os
import uuid
from datetime import datetime
from typing import List, Optional

from google.auth.transport.requests import Request
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

MEETING_TIMEZONE = os.getenv("MEETING_TIMEZONE", "Asia/Kolkata")


class CalendarIntegration:
    """Google Calendar adapter for the organizer's primary calendar.

    Calls are blocking (googleapiclient); run them with asyncio.to_thread.
    """

    def __init__(self, credentials=None):
        self.credentials = credentials

    def refresh(self):
        """Exchange the refresh token for a fresh access token; returns the credentials."""
        self.credentials.refresh(Request())
        return self.credentials

    def create_meeting_event(
        self,
        title: str,
        description: Optional[str],
        start: datetime,
        end: datetime,
        attendees: List[str],
    ) -> dict:
        """Create an event with a Google Meet link and invite the attendees."""
        service = build(
            "calendar",
            "v3",
            credentials=self.credentials,
            cache_discovery=False,
        )
        event = {
            "summary": title,
            "description": description or "",
            "start": {"dateTime": start.isoformat(), "timeZone": MEETING_TIMEZONE},
            "end": {"dateTime": end.isoformat(), "timeZone": MEETING_TIMEZONE},
            "attendees": [{"email": email} for email in attendees],
            "conferenceData": {
                "createRequest": {
                    "requestId": f"meet-{uuid.uuid4().hex}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }
        created = (
            service.events()
            .insert(
                calendarId="primary",
                body=event,
                sendUpdates="all",
                conferenceDataVersion=1,
            )
            .execute()
        )
        logger.info(f"Created calendar event {created.get('id')} with {len(attendees)} attendees")
        return created
