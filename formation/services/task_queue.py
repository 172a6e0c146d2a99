"""Module-completed task queue on a Redis list.

The progression engine never delivers notifications itself. After a
cascade commits, the notifier pushes a ``ModuleCompletedTask`` and
returns; the worker process (``python -m formation.worker``) pops tasks
and hands them to the delivery layer. A slow or broken delivery path
therefore cannot delay or roll back a progress write.

  Producer (API):    LPUSH task JSON onto ``tasks:module_completed``
  Consumer (worker): BRPOP from the same list

LPUSH at the head plus BRPOP at the tail gives FIFO order. BRPOP blocks
server-side until a task arrives, so an idle worker costs nothing.

Delivery is at-most-once: a worker crash mid-task loses that task.
Module-completed notifications are advisory, which makes that acceptable.
"""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from formation.db.redis import redis_pool

MODULE_COMPLETED_QUEUE = "tasks:module_completed"


@dataclass(frozen=True, slots=True)
class ModuleCompletedTask:
    """A learner finished a module; tell them the next one is open."""

    id: str
    user_id: str
    module_id: UUID
    title: str
    body: str
    completed_at: int

    @staticmethod
    def new(
        *, user_id: str, module_id: UUID, title: str, body: str, completed_at: int
    ) -> ModuleCompletedTask:
        return ModuleCompletedTask(
            id=str(uuid4()),
            user_id=user_id,
            module_id=module_id,
            title=title,
            body=body,
            completed_at=completed_at,
        )

    def to_json(self) -> str:
        return json.dumps(
            {
                "id": self.id,
                "user_id": self.user_id,
                "module_id": str(self.module_id),
                "title": self.title,
                "body": self.body,
                "completed_at": self.completed_at,
            }
        )

    @staticmethod
    def from_json(raw: str) -> ModuleCompletedTask:
        """Decode a queued entry.  Raises ValueError when it is malformed."""
        try:
            data = json.loads(raw)
            user_id = data["user_id"]
            if not isinstance(user_id, str) or not user_id:
                raise ValueError("user_id must be a non-empty string")
            return ModuleCompletedTask(
                id=str(data["id"]),
                user_id=user_id,
                module_id=UUID(data["module_id"]),
                title=str(data.get("title", "")),
                body=str(data.get("body", "")),
                completed_at=int(data["completed_at"]),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"malformed module-completed task: {e}") from e


@runtime_checkable
class TaskQueue(Protocol):
    async def push(self, task: ModuleCompletedTask) -> None: ...
    async def pop(self, timeout: int = 0) -> ModuleCompletedTask | None: ...


class InMemoryTaskQueue:
    """In-process queue for dev and tests.

    Entries are kept as JSON so they go through the same decoding as the
    Redis queue.
    """

    def __init__(self) -> None:
        self._entries: deque[str] = deque()

    def clear(self) -> None:
        self._entries.clear()

    async def push(self, task: ModuleCompletedTask) -> None:
        self._entries.appendleft(task.to_json())

    async def pop(self, timeout: int = 0) -> ModuleCompletedTask | None:
        if not self._entries:
            return None
        return ModuleCompletedTask.from_json(self._entries.pop())


class RedisTaskQueue:
    """Redis-backed queue using LPUSH/BRPOP."""

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def push(self, task: ModuleCompletedTask) -> None:
        await self._redis.lpush(MODULE_COMPLETED_QUEUE, task.to_json())

    async def pop(self, timeout: int = 5) -> ModuleCompletedTask | None:
        # None on timeout
        result = await self._redis.brpop(MODULE_COMPLETED_QUEUE, timeout=timeout)
        if result is None:
            return None
        _, raw = result
        return ModuleCompletedTask.from_json(raw)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
