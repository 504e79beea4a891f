"""
Low-level requests to the K8s API: plain reads, retried, and streams.

The relay never writes to the API, so only ``GET`` requests exist here.
"""
import asyncio
import json
from collections.abc import AsyncIterator, Iterable, Mapping
from typing import Any

import aiohttp

from eventrelay._cogs.aiokits import aiotasks
from eventrelay._cogs.clients import auth, errors
from eventrelay._cogs.configs import configuration
from eventrelay._cogs.helpers import typedefs


def _get_backoffs(settings: configuration.RelaySettings) -> list[float]:
    backoffs = settings.networking.error_backoffs
    return list(backoffs) if isinstance(backoffs, Iterable) else [backoffs]


async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        timeout: aiohttp.ClientTimeout | None = None,
        retried: bool = True,
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Make a request and check its status; return the unread response.

    Connection errors, timeouts, and 5xx errors are retried after the backoffs
    from the settings, if allowed. The last error is escalated as is.
    """
    if '://' not in url:
        url = context.server.rstrip('/') + '/' + url.lstrip('/')
    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    what = f"{method.upper()} {url}"
    backoffs = _get_backoffs(settings) if retried else []
    attempts = len(backoffs) + 1
    for attempt in range(1, attempts + 1):
        try:
            response = await context.session.request(method, url, timeout=timeout)
            await errors.check_response(response)
            return response
        except errors.APIError as e:
            if e.status < 500 or attempt == attempts:
                raise
            failure: Exception = e
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            if attempt == attempts:
                logger.error(f"Request #{attempt}/{attempts} failed; escalating: {what} -> {e!r}")
                raise
            failure = e

        backoff = backoffs[attempt - 1]
        logger.error(f"Request #{attempt}/{attempts} failed; retrying in {backoff}s: "
                     f"{what} -> {failure!r}")
        await asyncio.sleep(backoff)

    raise RuntimeError("Unreachable: the last attempt either returns or raises.")


async def get(
        url: str,  # relative to the server/api root.
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        logger: typedefs.Logger,
) -> Any:
    response = await request('get', url, context=context, settings=settings, logger=logger)
    async with response:
        return await response.json()


async def read_version(
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        logger: typedefs.Logger,
) -> Mapping[str, str]:
    """
    Fetch the API server's version, mostly to check the connectivity early.

    A misconfigured server or credentials are better reported at startup
    than retried forever in the watch-streams.
    """
    return await get('/version', context=context, settings=settings, logger=logger)


async def stream(
        url: str,  # relative to the server/api root.
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        timeout: aiohttp.ClientTimeout | None = None,
        stopper: aiotasks.Future | None = None,
        logger: typedefs.Logger,
) -> AsyncIterator[Any]:
    """
    Yield the decoded JSON lines of a long-lived response (a watch-stream).

    The streaming requests are not retried: the caller decides where to resume.
    Once the stopper is done, the response is closed, and the stream ends
    without errors, as if it was closed by the server.
    Lines that are not JSON (or not UTF-8) raise ``ValueError``.
    """
    response = await request('get', url, timeout=timeout, retried=False,
                             context=context, settings=settings, logger=logger)

    def close_response(_: object) -> None:
        response.close()

    if stopper is not None:
        stopper.add_done_callback(close_response)
    try:
        async with response:
            async for line in iter_jsonlines(response.content):
                yield json.loads(line.decode('utf-8'))
    except aiohttp.ClientConnectionError:
        if stopper is None or not stopper.done():
            raise
    finally:
        if stopper is not None:
            stopper.remove_done_callback(close_response)


async def iter_jsonlines(
        content: aiohttp.StreamReader,
        chunk_size: int = 1024 * 1024,
) -> AsyncIterator[bytes]:
    """
    Yield the non-empty lines of a response, however long they are.

    ``aiohttp``'s own line iteration fails on lines above 128 KB, while the K8s
    objects can be megabytes long. The content is therefore read in big chunks,
    and split into lines here. The unterminated tail is yielded at the end.
    """
    tail = b''
    async for chunk in content.iter_chunked(chunk_size):
        *lines, tail = (tail + chunk).split(b'\n')
        for line in lines:
            if line:
                yield line
    if tail:
        yield tail
