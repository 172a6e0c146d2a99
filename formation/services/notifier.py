"""Module-completed notification.

Fire-and-forget: the engine calls ``module_completed`` after its unit of
work has committed. A failure to enqueue is logged and counted; it is
never raised back into the request that completed the module.
"""

from __future__ import annotations

import datetime
import logging
from typing import Protocol
from uuid import UUID

from formation.core.metrics import NOTIFICATION_FAILURES
from formation.services.task_queue import ModuleCompletedTask, TaskQueue, task_queue

logger = logging.getLogger(__name__)

MODULE_COMPLETED_TITLE = "Module completed!"
MODULE_COMPLETED_BODY = (
    "Congratulations! You finished a whole module. "
    "The next module is now unlocked."
)


class Notifier(Protocol):
    async def module_completed(self, user_id: str, module_id: UUID) -> None: ...


class ModuleCompletionNotifier:
    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def module_completed(self, user_id: str, module_id: UUID) -> None:
        task = ModuleCompletedTask.new(
            user_id=user_id,
            module_id=module_id,
            title=MODULE_COMPLETED_TITLE,
            body=MODULE_COMPLETED_BODY,
            completed_at=int(datetime.datetime.now(datetime.UTC).timestamp()),
        )
        try:
            await self._queue.push(task)
        except Exception:
            NOTIFICATION_FAILURES.inc()
            logger.exception(
                "Module-completed notification not enqueued  user_id=%s module_id=%s",
                user_id,
                module_id,
            )
            return
        logger.info(
            "Module-completed notification queued  task=%s user_id=%s module_id=%s",
            task.id,
            user_id,
            module_id,
        )


notifier = ModuleCompletionNotifier(task_queue)
