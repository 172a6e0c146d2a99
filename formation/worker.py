"""Background worker process.

RUN:  python -m formation.worker

Same image as the API, different command:
  api:    uvicorn formation.main:app --host 0.0.0.0 --port 8000
  worker: python -m formation.worker

The loop pops one module-completed task at a time and hands it to the
delivery layer. A malformed entry or a failing delivery is logged with
its traceback and dropped; the loop keeps going.
"""

from __future__ import annotations

import asyncio
import logging

from formation.core.config import SETTINGS
from formation.core.logging import setup_logging
from formation.services.task_queue import (
    MODULE_COMPLETED_QUEUE,
    ModuleCompletedTask,
    TaskQueue,
    task_queue,
)

logger = logging.getLogger("worker")


async def deliver_module_completed(task: ModuleCompletedTask) -> None:
    """Hand a module-completed event to the delivery layer.

    Delivery (email, in-app inbox) lives outside this service; the event
    is logged here so it can be picked up by the log pipeline.
    """
    logger.info(
        "Delivering notification  user_id=%s module_id=%s title=%r",
        task.user_id,
        task.module_id,
        task.title,
    )


async def process_one(queue: TaskQueue, timeout: int = 1) -> bool:
    """Pop and deliver a single task. Returns False when the queue was empty."""
    try:
        task = await queue.pop(timeout=timeout)
    except ValueError:
        logger.exception("Dropped malformed task on [%s]", MODULE_COMPLETED_QUEUE)
        return True
    if task is None:
        return False

    try:
        await deliver_module_completed(task)
        logger.info("Task %s on [%s] completed", task.id, MODULE_COMPLETED_QUEUE)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, MODULE_COMPLETED_QUEUE)
    return True


async def run_worker() -> None:
    logger.info("Worker started, listening on [%s]", MODULE_COMPLETED_QUEUE)
    while True:
        if not await process_one(task_queue):
            # the in-memory queue returns immediately instead of blocking
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
