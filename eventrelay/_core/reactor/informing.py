"""
The informer: a never-ending loop of listing & watching of one resource.

Every cycle of the informer does the same:

* Lists all the objects and compares them with the local mirror:
  the initially empty mirror makes all of them "added" (the bootstrap),
  later listings report only the difference (the re-sync).
* Watches the objects from the listing's resource version on,
  and dispatches the changes as they come.
* Ends the watch when either the resource version is gone (expired),
  or when the re-sync period is over, and re-lists.

The errors of listing & watching are logged and retried after a short pause,
starting with a new listing. The informer gives up only when cancelled.

All the notifications are dispatched in the informer's own task,
one at a time, in the order of their arrival.
"""
import asyncio
import logging

import aiohttp

from eventrelay._cogs.aiokits import aioflags, aiotasks
from eventrelay._cogs.clients import auth, errors, fetching, watching
from eventrelay._cogs.configs import configuration
from eventrelay._cogs.structs import changes, references
from eventrelay._core.reactor import dispatching, mirroring

logger = logging.getLogger(__name__)


async def informer(
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        handler: dispatching.ChangeHandler,
        resource: references.Resource = references.EVENTS,
        namespace: references.Namespace = references.NAMESPACE_ALL,
        mirror: mirroring.Mirror | None = None,
        ready_flag: aioflags.Flag | None = None,
        _iterations: int | None = None,  # for tests only: a limited number of cycles
) -> None:
    """
    Keep the mirror in sync with the cluster, and dispatch all its changes.
    """
    mirror = mirror if mirror is not None else mirroring.Mirror()
    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
    iteration = 0
    while _iterations is None or iteration < _iterations:
        iteration += 1
        try:
            await _inform_once(
                context=context,
                settings=settings,
                handler=handler,
                resource=resource,
                namespace=namespace,
                mirror=mirror,
                ready_flag=ready_flag,
            )
        except errors.APITooManyRequestsError as e:
            details = e.details or {}
            delay = details.get('retryAfterSeconds') or settings.informing.error_backoff
            logger.warning(f"Too many requests for {resource} {where}; retrying in {delay}s.")
            await asyncio.sleep(delay)
        except (errors.APIError, watching.WatchingError) as e:
            delay = settings.informing.error_backoff
            logger.error(f"Failed to list or watch {resource} {where}; retrying in {delay}s: {e}")
            await asyncio.sleep(delay)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            delay = settings.informing.error_backoff
            logger.error(f"Failed to reach the API for {resource} {where}; "
                         f"retrying in {delay}s: {e!r}")
            await asyncio.sleep(delay)


async def _inform_once(
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        handler: dispatching.ChangeHandler,
        resource: references.Resource,
        namespace: references.Namespace,
        mirror: mirroring.Mirror,
        ready_flag: aioflags.Flag | None,
) -> None:
    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'

    items, resource_version = await fetching.list_objs(
        context=context,
        settings=settings,
        resource=resource,
        namespace=namespace,
        logger=logger,
    )
    initial = mirror.resource_version is None
    logger.debug(f"Listed {len(items)} {resource} {where} @ {resource_version!r}.")
    await _dispatch_all(mirror.replace(items, resource_version),
                        handler=handler, settings=settings, resource=resource)
    if initial:
        logger.info(f"Mirrored {len(mirror)} {resource} {where}; watching for changes.")

    if ready_flag is not None and not aioflags.check_flag(ready_flag):
        await aioflags.raise_flag(ready_flag)

    # The re-sync timer interrupts the watch-stream as if it was closed by the server.
    resync_waiter = asyncio.create_task(
        asyncio.sleep(settings.informing.resync_period), name=f"re-sync timer for {resource}")
    try:
        stream = watching.continuous_watch(
            context=context,
            settings=settings,
            resource=resource,
            namespace=namespace,
            since=mirror.resource_version,
            stopper=resync_waiter,
        )
        async for raw_event in stream:
            await _dispatch_all(mirror.apply(raw_event),
                                handler=handler, settings=settings, resource=resource)
    finally:
        expired = not resync_waiter.done()
        await aiotasks.stop([resync_waiter], title="re-sync timer", quiet=True, logger=logger)

    if expired:
        logger.info(f"The resource version of {resource} {where} has expired; re-listing.")
    else:
        logger.debug(f"Re-syncing {resource} {where}.")


async def _dispatch_all(
        notifications: list[changes.Change],
        *,
        handler: dispatching.ChangeHandler,
        settings: configuration.RelaySettings,
        resource: references.Resource,
) -> None:
    for change in notifications:
        await dispatching.dispatch(change, handler=handler, settings=settings, resource=resource)
