import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional


logger = logging.getLogger(__name__)


async def run_tasks_with_cleanup(
    tasks: Iterable[asyncio.Task],
    cleanup: Optional[Callable[[], Awaitable[None]]] = None,
) -> None:
    """Run until the first task finishes, then cancel the rest and await cleanup."""
    task_list: List[asyncio.Task] = list(tasks)
    try:
        if task_list:
            done, _ = await asyncio.wait(task_list, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.error("Task %s failed: %r", task.get_name(), task.exception())
    except asyncio.CancelledError:
        logger.info("Shutdown requested; cancelling %d task(s)", len(task_list))
    finally:
        for t in task_list:
            if not t.done():
                t.cancel()
        if task_list:
            await asyncio.gather(*task_list, return_exceptions=True)
        if cleanup is not None:
            await cleanup()
