"""
Watching and streaming watch-events.

The watch-streams of K8s API are long-lived HTTP responses with one JSON
document per line. Every document is a watch-event with its type
(``ADDED``, ``MODIFIED``, ``DELETED``, ``BOOKMARK``, or ``ERROR``)
and the object in its latest known state.

The watch-stream continues from a resource version (the consistency marker)
and is closed server-side from time to time, even if everything is fine.
It is then re-opened from the last seen resource version,
as long as the resource version is still known to the server.

Once the server forgets the resource version ("410 Gone"), the streaming ends,
and it is the caller's duty to re-list the objects and to start a new stream.
"""
import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from typing import cast

import aiohttp

from eventrelay._cogs.aiokits import aiotasks
from eventrelay._cogs.clients import api, auth, errors
from eventrelay._cogs.configs import configuration
from eventrelay._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

HTTP_GONE_CODE = 410
KNOWN_TYPES = frozenset({'ADDED', 'MODIFIED', 'DELETED', 'BOOKMARK'})


class WatchingError(Exception):
    """
    Raised when an unexpected error happens in the watch-stream API.
    """


class _ResourceVersionGone(Exception):
    pass


def _check_event(raw_input: object) -> bodies.RawEvent | None:
    """
    Validate one document of the stream; ``None`` if it should be skipped.

    The expired resource version is signalled with `_ResourceVersionGone`.
    Everything else unexpected is a `WatchingError`.
    """
    if not isinstance(raw_input, Mapping):
        raise WatchingError(f"Malformed event in the watch-stream: {raw_input!r}")

    raw_type = raw_input.get('type')
    raw_object = raw_input.get('object')
    if not isinstance(raw_type, str) or not isinstance(raw_object, Mapping):
        raise WatchingError(f"Malformed event in the watch-stream: {raw_input!r}")

    if raw_type == 'ERROR':
        # K8s forgets the resource versions in a few minutes, e.g. when nothing happens.
        if cast(bodies.RawError, raw_object).get('code') == HTTP_GONE_CODE:
            raise _ResourceVersionGone()
        raise WatchingError(f"Error in the watch-stream: {raw_object}")

    if raw_type not in KNOWN_TYPES:
        logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
        return None

    return cast(bodies.RawEvent, raw_input)


async def continuous_watch(
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        resource: references.Resource,
        namespace: references.Namespace,
        since: str | None,
        stopper: aiotasks.Future,
) -> AsyncIterator[bodies.RawEvent]:
    """
    Stream the watch-events from a resource version on, across disconnects.

    The stream ends normally when the resource version is gone (expired),
    or when the stopper is done; the caller cannot (and should not) know which.
    Other errors in the stream are escalated.
    """
    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
    resource_version = since
    while not stopper.done():
        try:
            async for raw_input in watch_objs(
                context=context,
                settings=settings,
                resource=resource,
                namespace=namespace,
                since=resource_version,
                stopper=stopper,
            ):
                raw_event = _check_event(raw_input)
                if raw_event is not None:
                    # Bookmarks are yielded too: the caller needs their versions for re-listing.
                    body = cast(bodies.RawBody, raw_event['object'])
                    resource_version = bodies.get_resource_version(body) or resource_version
                    yield raw_event

        # Either in the stream, or when the stream is requested with an expired version.
        except (_ResourceVersionGone, errors.APIGoneError):
            logger.debug(f"Resource version {resource_version!r} is gone for {resource} {where}.")
            return

        # Servers close the streams after a timeout: re-open them from the last seen version.
        if not stopper.done():
            logger.debug(f"Reconnecting the watch-stream for {resource} {where}.")
            await asyncio.sleep(settings.watching.reconnect_backoff)


async def watch_objs(
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        resource: references.Resource,
        namespace: references.Namespace,
        since: str | None = None,
        stopper: aiotasks.Future,
) -> AsyncIterator[bodies.RawInput]:
    """
    Watch objects of a specific resource type, once, until disconnected.

    A disconnect is a normal end of the stream, not an error.
    Undecodable lines are a broken stream, and it cannot be continued.
    """
    watching = settings.watching
    params = {'watch': 'true'}
    if since is not None:
        params['resourceVersion'] = since
    if watching.bookmarks:
        params['allowWatchBookmarks'] = 'true'
    if watching.server_timeout is not None:
        params['timeoutSeconds'] = str(round(watching.server_timeout))

    connect_timeout = watching.connect_timeout
    if connect_timeout is None:
        connect_timeout = settings.networking.connect_timeout
    if connect_timeout is None:
        connect_timeout = settings.networking.request_timeout
    timeout = aiohttp.ClientTimeout(total=watching.client_timeout, sock_connect=connect_timeout)

    url = resource.get_url(namespace=namespace, params=params)
    try:
        async for raw_input in api.stream(url, context=context, settings=settings,
                                          timeout=timeout, stopper=stopper, logger=logger):
            yield raw_input
    except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError):
        pass
    except ValueError as e:
        raise WatchingError(f"Undecodable line in the watch-stream: {e}") from e
