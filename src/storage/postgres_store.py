from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import asyncpg

from chatmate.errors import DuplicateTaskId, MeetingNotFound, TaskNotFound, UserNotFound
from chatmate.models import (
    Contribution,
    DailyTasks,
    MeetingInfo,
    MeetingRecord,
    OwnerProfile,
    Task,
    TaskStatus,
)
from storage import db
from storage.base import Store

logger = logging.getLogger(__name__)

TASK_COLUMNS = (
    "id, unique_task_id, task_question, task_description, topic_context, "
    "status, present_user_data, is_meeting, created_at"
)
MEETING_COLUMNS = (
    "id, task_id, username, google_meeting_link, event_link, "
    "start_time, end_time, duration, created_at"
)


def _task_from_record(record) -> Task:
    return Task.model_validate(dict(record))


def _meeting_from_record(record) -> MeetingRecord:
    return MeetingRecord.model_validate(dict(record))


class PostgresStore(Store):
    """PostgreSQL-backed store. Tasks are rows, the meeting sub-record is JSONB.

    Meeting updates merge at the JSONB key level, so concurrent writers to
    different meeting fields do not overwrite each other.
    """

    # -- users ---------------------------------------------------------------

    async def get_user(self, username: str) -> OwnerProfile:
        async with db.get_connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE username = $1", username)
            if row is None:
                raise UserNotFound(username)
            contributions = await conn.fetch(
                "SELECT id, name, question, answer, status, created_at "
                "FROM contributions WHERE username = $1 ORDER BY created_at",
                username,
            )
        return self._profile(row, contributions)

    @staticmethod
    def _profile(row, contributions) -> OwnerProfile:
        return OwnerProfile(
            username=row["username"],
            name=row["name"],
            email=row["email"],
            mobile_no=row["mobile_no"],
            gemini_api_key=row["gemini_api_key"],
            plan=row["plan"],
            prompt=row["prompt"],
            user_prompt=row["user_prompt"],
            daily_tasks=DailyTasks(
                content=row["daily_tasks"], last_updated=row["daily_tasks_updated"]
            ),
            contributions=[Contribution.model_validate(dict(c)) for c in contributions],
            google=row["google"],
            created_at=row["created_at"],
        )

    async def save_user(self, user: OwnerProfile) -> None:
        google = user.google.model_dump(mode="json") if user.google else None
        async with db.get_connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO users (username, name, email, mobile_no, gemini_api_key, plan,
                                       prompt, user_prompt, daily_tasks, daily_tasks_updated,
                                       google, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                    ON CONFLICT (username) DO UPDATE SET
                        name = EXCLUDED.name,
                        email = EXCLUDED.email,
                        mobile_no = EXCLUDED.mobile_no,
                        gemini_api_key = EXCLUDED.gemini_api_key,
                        plan = EXCLUDED.plan,
                        prompt = EXCLUDED.prompt,
                        user_prompt = EXCLUDED.user_prompt,
                        daily_tasks = EXCLUDED.daily_tasks,
                        daily_tasks_updated = EXCLUDED.daily_tasks_updated,
                        google = EXCLUDED.google
                    """,
                    user.username,
                    user.name,
                    user.email,
                    user.mobile_no,
                    user.gemini_api_key,
                    user.plan,
                    user.prompt,
                    user.user_prompt,
                    user.daily_tasks.content,
                    user.daily_tasks.last_updated,
                    google,
                    user.created_at,
                )
                await conn.execute(
                    "DELETE FROM contributions WHERE username = $1", user.username
                )
                await conn.executemany(
                    """
                    INSERT INTO contributions (id, username, name, question, answer, status, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    """,
                    [
                        (c.id, user.username, c.name, c.question, c.answer, c.status, c.created_at)
                        for c in user.contributions
                    ],
                )

    async def find_users_by_email(self, emails: List[str]) -> List[OwnerProfile]:
        wanted = [e.lower() for e in emails if e]
        async with db.get_connection() as conn:
            rows = await conn.fetch(
                "SELECT * FROM users WHERE LOWER(email) = ANY($1::text[])", wanted
            )
            profiles = []
            for row in rows:
                contributions = await conn.fetch(
                    "SELECT id, name, question, answer, status, created_at "
                    "FROM contributions WHERE username = $1 ORDER BY created_at",
                    row["username"],
                )
                profiles.append(self._profile(row, contributions))
        return profiles

    # -- tasks ---------------------------------------------------------------

    async def create_task(self, username: str, task: Task) -> Task:
        present = (
            task.present_user_data.model_dump(mode="json")
            if task.present_user_data
            else None
        )
        meeting = task.is_meeting.model_dump(mode="json") if task.is_meeting else None
        async with db.get_connection() as conn:
            async with conn.transaction():
                exists = await conn.fetchval(
                    "SELECT 1 FROM users WHERE username = $1", username
                )
                if not exists:
                    raise UserNotFound(username)
                try:
                    await conn.execute(
                        f"""
                        INSERT INTO tasks (username, {TASK_COLUMNS})
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                        """,
                        username,
                        task.id,
                        task.unique_task_id,
                        task.task_question,
                        task.task_description,
                        task.topic_context,
                        task.status,
                        present,
                        meeting,
                        task.created_at,
                    )
                except asyncpg.UniqueViolationError:
                    raise DuplicateTaskId(task.unique_task_id)
        logger.info(f"Created task {task.unique_task_id} for {username}")
        return task

    async def find_task_by_unique_id(self, username: str, unique_task_id: str) -> Task:
        async with db.get_connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE username = $1 AND unique_task_id = $2",
                username,
                unique_task_id,
            )
        if row is None:
            raise TaskNotFound(unique_task_id)
        return _task_from_record(row)

    async def find_task_by_question(self, username: str, question: str) -> Task:
        async with db.get_connection() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {TASK_COLUMNS} FROM tasks
                WHERE username = $1 AND task_question = $2
                ORDER BY created_at LIMIT 1
                """,
                username,
                question,
            )
        if row is None:
            raise TaskNotFound(question)
        return _task_from_record(row)

    async def list_tasks(
        self, username: str, status: Optional[TaskStatus] = None
    ) -> List[Task]:
        async with db.get_connection() as conn:
            if not await conn.fetchval("SELECT 1 FROM users WHERE username = $1", username):
                raise UserNotFound(username)
            rows = await conn.fetch(
                f"""
                SELECT {TASK_COLUMNS} FROM tasks
                WHERE username = $1 AND ($2::text IS NULL OR status = $2)
                ORDER BY created_at DESC
                """,
                username,
                status,
            )
        return [_task_from_record(r) for r in rows]

    async def update_task_status(
        self, username: str, unique_task_id: str, status: TaskStatus
    ) -> Task:
        async with db.get_connection() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE tasks SET status = $3
                WHERE username = $1 AND unique_task_id = $2
                RETURNING {TASK_COLUMNS}
                """,
                username,
                unique_task_id,
                status,
            )
        if row is None:
            raise TaskNotFound(unique_task_id)
        return _task_from_record(row)

    async def update_meeting(
        self, username: str, unique_task_id: str, fields: Dict[str, Any]
    ) -> Task:
        patch = MeetingInfo.model_validate(fields).model_dump(
            mode="json", include=set(fields)
        )
        async with db.get_connection() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE tasks SET is_meeting = COALESCE(is_meeting, '{{}}'::jsonb) || $3::jsonb
                WHERE username = $1 AND unique_task_id = $2
                RETURNING {TASK_COLUMNS}
                """,
                username,
                unique_task_id,
                patch,
            )
        if row is None:
            raise TaskNotFound(unique_task_id)
        return _task_from_record(row)

    async def delete_task(self, username: str, unique_task_id: str) -> None:
        async with db.get_connection() as conn:
            status = await conn.execute(
                "DELETE FROM tasks WHERE username = $1 AND unique_task_id = $2",
                username,
                unique_task_id,
            )
        if status.endswith(" 0"):
            raise TaskNotFound(unique_task_id)
        logger.info(f"Deleted task {unique_task_id} for {username}")

    # -- meetings ------------------------------------------------------------

    async def save_meeting(self, record: MeetingRecord) -> MeetingRecord:
        async with db.get_connection() as conn:
            await conn.execute(
                f"INSERT INTO meetings ({MEETING_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)",
                record.id,
                record.task_id,
                record.username,
                record.google_meeting_link,
                record.event_link,
                record.start_time,
                record.end_time,
                record.duration,
                record.created_at,
            )
        return record

    async def list_meetings(self, username: Optional[str] = None) -> List[MeetingRecord]:
        async with db.get_connection() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {MEETING_COLUMNS} FROM meetings
                WHERE $1::text IS NULL OR username = $1
                ORDER BY created_at DESC
                """,
                username,
            )
        return [_meeting_from_record(r) for r in rows]

    async def delete_meeting_by_task_id(self, task_id: str) -> MeetingRecord:
        async with db.get_connection() as conn:
            row = await conn.fetchrow(
                f"""
                DELETE FROM meetings WHERE id = (
                    SELECT id FROM meetings WHERE task_id = $1 ORDER BY created_at LIMIT 1
                )
                RETURNING {MEETING_COLUMNS}
                """,
                task_id,
            )
        if row is None:
            raise MeetingNotFound(task_id)
        return _meeting_from_record(row)

    async def health_check(self) -> dict:
        return {"backend": "postgres", **(await db.health_check())}

    async def close(self) -> None:
        await db.close_db_pool()
