"""
Helpers for the relay's root tasks: guarding, waiting, stopping.

Only tasks are supported, not arbitrary awaitables: the root tasks
are not only awaited, but also cancelled when the relay exits.
"""
import asyncio
from collections.abc import Collection, Coroutine
from typing import TYPE_CHECKING, Any

from eventrelay._cogs.helpers import typedefs

# The generic aliases are for type-checking only: asyncio's classes are not subscriptable at runtime.
if TYPE_CHECKING:
    Future = asyncio.Future[Any]
    Task = asyncio.Task[Any]
else:
    Future = asyncio.Future
    Task = asyncio.Task


async def guard(
        coro: Coroutine[Any, Any, Any],
        name: str,
        *,
        logger: typedefs.Logger,
) -> None:
    """
    Run a presumably eternal coroutine, and log how it has ended if it did.

    The failures are logged and re-raised, so that the relay could stop.
    """
    try:
        await coro
    except asyncio.CancelledError:
        logger.debug(f"{name.capitalize()} is cancelled.")
        raise
    except Exception as e:
        logger.exception(f"{name.capitalize()} has failed: {e}")
        raise
    else:
        logger.warning(f"{name.capitalize()} has finished unexpectedly.")


def create_guarded_task(
        coro: Coroutine[Any, Any, Any],
        name: str,
        *,
        logger: typedefs.Logger,
) -> Task:
    return asyncio.create_task(guard(coro, name, logger=logger), name=name)


async def wait(
        tasks: Collection[Task],
        *,
        timeout: float | None = None,
        return_when: str = asyncio.ALL_COMPLETED,
) -> tuple[set[Task], set[Task]]:
    """ Same as :func:`asyncio.wait`, but an empty collection is not an error. """
    if not tasks:
        return set(), set()
    return await asyncio.wait(tasks, timeout=timeout, return_when=return_when)


async def stop(
        tasks: Collection[Task],
        *,
        title: str,
        interval: float | None = None,
        quiet: bool = False,
        logger: typedefs.Logger | None = None,
) -> set[Task]:
    """
    Cancel the tasks and wait until all of them are finished.

    The tasks that ignore the cancellation are reported every ``interval``
    seconds (if set), and are waited for anyway. Returns the stopped tasks.
    """
    for task in tasks:
        task.cancel()

    stopped: set[Task] = set()
    pending: set[Task] = set(tasks)
    while pending:
        done, pending = await wait(pending, timeout=interval)
        stopped |= done
        if pending and logger is not None:
            logger.debug(f"{title.capitalize()} tasks are still stopping: {pending!r}")

    if tasks and logger is not None and not quiet:
        logger.debug(f"{title.capitalize()} tasks are stopped: {len(stopped)} of them.")
    return stopped


def reraise(tasks: Collection[Task]) -> None:
    """ Re-raise the first failure of the finished tasks; ignore the cancelled ones. """
    for task in tasks:
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore[misc]


def all_tasks(*, ignored: Collection[Task] = frozenset()) -> set[Task]:
    """ All unfinished tasks of the loop, except the current one and the ignored ones. """
    current = asyncio.current_task()
    return {task for task in asyncio.all_tasks() if task is not current and task not in ignored}
