import asyncio
import logging

import aiohttp.web

from eventrelay._cogs.aiokits import aioflags
from eventrelay._cogs.configs import configuration

logger = logging.getLogger(__name__)


async def health_reporter(
        *,
        settings: configuration.RelaySettings,
        ready_flag: aioflags.Flag | None = None,  # used for testing
) -> None:
    """
    Simple HTTP server to report the relay's liveness to K8s probes.

    Runs forever until cancelled (which happens if any other root task
    is cancelled or failed). Once it will stop responding for any reason,
    Kubernetes will assume the pod is not alive anymore, and will restart it.
    """

    async def get_health(
            request: aiohttp.web.Request,
    ) -> aiohttp.web.Response:
        return aiohttp.web.Response(text='ok')

    host = settings.probing.host
    port = settings.probing.port
    path = settings.probing.path

    # Everything under the path is healthy, e.g. any URL at all for the default root path.
    app = aiohttp.web.Application()
    app.add_routes([
        aiohttp.web.get(path, get_health),
        aiohttp.web.get(path.rstrip('/') + '/{tail:.*}', get_health),
    ])

    runner = aiohttp.web.AppRunner(app, handle_signals=False, shutdown_timeout=1.0)
    await runner.setup()

    site = aiohttp.web.TCPSite(runner, host, port)
    await site.start()

    logger.debug(f"Serving the liveness status at http://{host}:{port}{path}")
    await aioflags.raise_flag(ready_flag)

    try:
        # Sleep forever. No activity is needed.
        await asyncio.Event().wait()
    finally:
        # On any reason of exit, stop reporting the health.
        await asyncio.shield(runner.cleanup())
