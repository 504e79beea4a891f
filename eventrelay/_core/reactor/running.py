"""
The relay's lifecycle: startup, the root tasks, and the graceful shutdown.

There are only a few root tasks: the informer of events, the health reporter,
and the stop-flag checker. They all run until any of them exits, after which
all of them are stopped, and the relay exits too.
"""
import asyncio
import contextlib
import logging
import signal
import threading
from collections.abc import Collection

from eventrelay._cogs.aiokits import aioflags, aiotasks
from eventrelay._cogs.clients import api, auth
from eventrelay._cogs.configs import configuration
from eventrelay._cogs.structs import credentials, references
from eventrelay._core.engines import delivery, probing
from eventrelay._core.intents import piggybacking
from eventrelay._core.reactor import dispatching, informing

logger = logging.getLogger(__name__)

# How long the tasks left after the root tasks are given to finish on their own.
HUNG_TASKS_TIMEOUT = 5.0


def run(
        *,
        settings: configuration.RelaySettings | None = None,
        handler: dispatching.ChangeHandler | None = None,
        connection_info: credentials.ConnectionInfo | None = None,
        stop_flag: aioflags.Flag | None = None,
        ready_flag: aioflags.Flag | None = None,
) -> None:
    """ Run the relay in a new event-loop until it is stopped. """
    with contextlib.suppress(asyncio.CancelledError):
        asyncio.run(relay(
            settings=settings,
            handler=handler,
            connection_info=connection_info,
            stop_flag=stop_flag,
            ready_flag=ready_flag,
        ))


async def relay(
        *,
        settings: configuration.RelaySettings | None = None,
        handler: dispatching.ChangeHandler | None = None,
        connection_info: credentials.ConnectionInfo | None = None,
        stop_flag: aioflags.Flag | None = None,
        ready_flag: aioflags.Flag | None = None,
) -> None:
    """
    Run the relay in the current event-loop until it is stopped.

    The startup is strict: if the API is not accessible with the configured
    credentials, the relay fails instead of retrying forever.
    If no handler is given, the events are delivered to the configured destination.
    """
    settings = settings if settings is not None else configuration.RelaySettings()
    if connection_info is None:
        connection_info = piggybacking.login(settings=settings, logger=logger)

    async with contextlib.AsyncExitStack() as stack:
        context = await stack.enter_async_context(auth.APIContext(connection_info))
        version = await api.read_version(context=context, settings=settings, logger=logger)
        logger.info(f"Connected to the API server of version {version.get('gitVersion')!r}.")

        if handler is None:
            handler = await stack.enter_async_context(delivery.EventReporter(settings=settings))

        # Only the tasks spawned by the root tasks are hung ones, not the pre-existing ones.
        existing_tasks = aiotasks.all_tasks()
        root_tasks = await spawn_tasks(
            context=context,
            settings=settings,
            handler=handler,
            stop_flag=stop_flag,
            ready_flag=ready_flag,
        )
        await run_tasks(root_tasks, ignored=existing_tasks)


async def spawn_tasks(
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        handler: dispatching.ChangeHandler,
        stop_flag: aioflags.Flag | None = None,
        ready_flag: aioflags.Flag | None = None,
) -> Collection[aiotasks.Task]:
    """
    Start the root tasks of the relay, and subscribe to the OS signals.
    """
    signal_flag: aiotasks.Future = asyncio.get_running_loop().create_future()
    tasks = [
        asyncio.create_task(_stop_flag_checker(signal_flag=signal_flag, stop_flag=stop_flag),
                            name="stop-flag checker"),
        aiotasks.create_guarded_task(
            informing.informer(
                context=context,
                settings=settings,
                handler=handler,
                resource=references.EVENTS,
                namespace=references.NAMESPACE_ALL,
                ready_flag=ready_flag,
            ),
            name="informer of events",
            logger=logger,
        ),
    ]
    if settings.probing.enabled:
        tasks.append(aiotasks.create_guarded_task(
            probing.health_reporter(settings=settings), name="health reporter", logger=logger))

    _subscribe_to_signals(signal_flag)
    return tasks


def _subscribe_to_signals(signal_flag: aiotasks.Future) -> None:
    """ Translate SIGINT & SIGTERM (Ctrl+C & the pod's termination) into the signal flag. """

    def set_signal(signum: signal.Signals) -> None:
        if not signal_flag.done():
            signal_flag.set_result(signum)

    if threading.current_thread() is not threading.main_thread():
        logger.warning("OS signals are ignored: the relay runs not in the main thread.")
        return

    loop = asyncio.get_running_loop()
    try:
        for signum in [signal.SIGINT, signal.SIGTERM]:
            loop.add_signal_handler(signum, set_signal, signum)
    except NotImplementedError:  # e.g. on Windows
        logger.warning("OS signals are ignored: they are not supported by the event-loop.")


async def run_tasks(
        root_tasks: Collection[aiotasks.Task],
        *,
        ignored: Collection[aiotasks.Task] = frozenset(),
) -> None:
    """
    Run the root tasks until any of them exits, then stop them all.

    The tasks that were spawned by the root tasks and still run after them
    (the hung tasks) are given a few seconds to finish, and are then cancelled.
    If the relay itself is cancelled, everything is cancelled at once.
    The first failure of the root tasks is re-raised.
    """
    cancelled = False
    try:
        await aiotasks.wait(root_tasks, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        cancelled = True
        raise
    finally:
        await aiotasks.stop(root_tasks, title="root", interval=10, logger=logger)
        hung_tasks = aiotasks.all_tasks(ignored=ignored)
        if hung_tasks and not cancelled:
            await aiotasks.wait(hung_tasks, timeout=HUNG_TASKS_TIMEOUT)
        await aiotasks.stop([task for task in hung_tasks if not task.done()],
                            title="hung", interval=1, logger=logger)

    aiotasks.reraise(root_tasks)


async def _stop_flag_checker(
        signal_flag: aiotasks.Future,
        stop_flag: aioflags.Flag | None,
) -> None:
    """
    A root task that exits once an OS signal comes or the stop-flag is raised.

    Its exit stops all other root tasks, i.e. the whole relay.
    """
    waiters: list[aiotasks.Future] = [signal_flag]
    if stop_flag is not None:
        waiters.append(asyncio.create_task(aioflags.wait_flag(stop_flag), name="stop-flag waiter"))

    try:
        done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        return  # the relay is stopping for another reason
    finally:
        for waiter in waiters[1:]:
            waiter.cancel()

    # Events report True when set, futures report their result (None if raised as a flag).
    result = done.pop().result()
    match result:
        case signal.Signals():
            logger.info(f"Signal {result.name} is received. The relay is stopping.")
        case None | True:
            logger.info("Stop-flag is raised. The relay is stopping.")
        case _:
            logger.info(f"Stop-flag is set to {result!r}. The relay is stopping.")
