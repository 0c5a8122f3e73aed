from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from chatmate.errors import DuplicateTaskId, MeetingNotFound, TaskNotFound, UserNotFound
from chatmate.models import MeetingInfo, MeetingRecord, OwnerProfile, Task, TaskStatus
from storage.base import Store

logger = logging.getLogger(__name__)

JSON_STORE_PATH = os.getenv("JSON_STORE_PATH", "data/chatmate.json")


class JsonStore(Store):
    """Single-file document store for local development and tests.

    Layout: {"users": {username: {...profile, "tasks": [...]}}, "meetings": [...]}.
    Writes are serialized with an asyncio lock and replace the file atomically.
    """

    def __init__(self, path: str = JSON_STORE_PATH):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    # -- file access ---------------------------------------------------------

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"users": {}, "meetings": []}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        data.setdefault("users", {})
        data.setdefault("meetings", [])
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    async def _load(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self._read)

    async def _save(self, data: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, data)

    @staticmethod
    def _user_doc(data: Dict[str, Any], username: str) -> Dict[str, Any]:
        doc = data["users"].get(username)
        if doc is None:
            raise UserNotFound(username)
        doc.setdefault("tasks", [])
        return doc

    @staticmethod
    def _task_index(doc: Dict[str, Any], unique_task_id: str) -> int:
        for i, raw in enumerate(doc["tasks"]):
            if raw.get("unique_task_id") == unique_task_id:
                return i
        raise TaskNotFound(unique_task_id)

    # -- users ---------------------------------------------------------------

    async def get_user(self, username: str) -> OwnerProfile:
        data = await self._load()
        return OwnerProfile.model_validate(self._user_doc(data, username))

    async def save_user(self, user: OwnerProfile) -> None:
        async with self._lock:
            data = await self._load()
            tasks = data["users"].get(user.username, {}).get("tasks", [])
            doc = user.model_dump(mode="json")
            doc["tasks"] = tasks
            data["users"][user.username] = doc
            await self._save(data)

    async def find_users_by_email(self, emails: List[str]) -> List[OwnerProfile]:
        wanted = {e.lower() for e in emails if e}
        data = await self._load()
        return [
            OwnerProfile.model_validate(doc)
            for doc in data["users"].values()
            if (doc.get("email") or "").lower() in wanted
        ]

    # -- tasks ---------------------------------------------------------------

    async def create_task(self, username: str, task: Task) -> Task:
        async with self._lock:
            data = await self._load()
            doc = self._user_doc(data, username)
            if any(t.get("unique_task_id") == task.unique_task_id for t in doc["tasks"]):
                raise DuplicateTaskId(task.unique_task_id)
            doc["tasks"].append(task.model_dump(mode="json"))
            await self._save(data)
        logger.info(f"Created task {task.unique_task_id} for {username}")
        return task

    async def find_task_by_unique_id(self, username: str, unique_task_id: str) -> Task:
        data = await self._load()
        doc = self._user_doc(data, username)
        return Task.model_validate(doc["tasks"][self._task_index(doc, unique_task_id)])

    async def find_task_by_question(self, username: str, question: str) -> Task:
        data = await self._load()
        doc = self._user_doc(data, username)
        for raw in doc["tasks"]:
            if raw.get("task_question") == question:
                return Task.model_validate(raw)
        raise TaskNotFound(question)

    async def list_tasks(
        self, username: str, status: Optional[TaskStatus] = None
    ) -> List[Task]:
        data = await self._load()
        doc = self._user_doc(data, username)
        tasks = [Task.model_validate(raw) for raw in doc["tasks"]]
        if status:
            tasks = [t for t in tasks if t.status == status]
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    async def update_task_status(
        self, username: str, unique_task_id: str, status: TaskStatus
    ) -> Task:
        async with self._lock:
            data = await self._load()
            doc = self._user_doc(data, username)
            i = self._task_index(doc, unique_task_id)
            task = Task.model_validate(doc["tasks"][i])
            if task.status != status:
                task.status = status
                doc["tasks"][i] = task.model_dump(mode="json")
                await self._save(data)
        return task

    async def update_meeting(
        self, username: str, unique_task_id: str, fields: Dict[str, Any]
    ) -> Task:
        async with self._lock:
            data = await self._load()
            doc = self._user_doc(data, username)
            i = self._task_index(doc, unique_task_id)
            task = Task.model_validate(doc["tasks"][i])
            current = task.is_meeting.model_dump() if task.is_meeting else {}
            task.is_meeting = MeetingInfo.model_validate({**current, **fields})
            doc["tasks"][i] = task.model_dump(mode="json")
            await self._save(data)
        return task

    async def delete_task(self, username: str, unique_task_id: str) -> None:
        async with self._lock:
            data = await self._load()
            doc = self._user_doc(data, username)
            del doc["tasks"][self._task_index(doc, unique_task_id)]
            await self._save(data)
        logger.info(f"Deleted task {unique_task_id} for {username}")

    # -- meetings ------------------------------------------------------------

    async def save_meeting(self, record: MeetingRecord) -> MeetingRecord:
        async with self._lock:
            data = await self._load()
            data["meetings"].append(record.model_dump(mode="json"))
            await self._save(data)
        return record

    async def list_meetings(self, username: Optional[str] = None) -> List[MeetingRecord]:
        data = await self._load()
        records = [MeetingRecord.model_validate(raw) for raw in data["meetings"]]
        if username:
            records = [r for r in records if r.username == username]
        return records

    async def delete_meeting_by_task_id(self, task_id: str) -> MeetingRecord:
        async with self._lock:
            data = await self._load()
            for i, raw in enumerate(data["meetings"]):
                if raw.get("task_id") == task_id:
                    del data["meetings"][i]
                    await self._save(data)
                    return MeetingRecord.model_validate(raw)
        raise MeetingNotFound(task_id)

    async def health_check(self) -> dict:
        return {"status": "healthy", "backend": "json", "path": str(self.path)}
