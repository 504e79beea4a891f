"""
Delivery of the events to the collector (the destination) via HTTP.

Every notification is delivered with exactly one HTTP POST request
with the event wrapped into an envelope with the cluster's identification.
The delivery is attempted only once: whatever fails (the serialization,
the connection, the collector itself), is logged, and the event is dropped.

The delivery is done inline with the informer: a slow collector slows
the processing of the whole stream, but never breaks it.
"""
import asyncio
import dataclasses
import json
from typing import Any, Literal

import aiohttp

from eventrelay._cogs.configs import configuration
from eventrelay._cogs.helpers import typedefs
from eventrelay._cogs.structs import bodies, changes
from eventrelay._core.actions import loggers

EventType = Literal['add', 'update', 'delete']


@dataclasses.dataclass(frozen=True)
class DeliveryEnvelope:
    """
    The event with the cluster's identification, as expected by the collector.
    """
    payload: Any
    cluster_id: int
    cluster_api: str
    event_type: EventType

    def as_json(self) -> dict[str, Any]:
        return {
            'k8sEvent': self.payload,
            'clusterId': self.cluster_id,
            'clusterApi': self.cluster_api,
            'eventType': self.event_type,
        }


def build_envelope(
        body: bodies.RawBody,
        *,
        event_type: EventType | changes.ChangeType,
        settings: configuration.RelaySettings,
) -> DeliveryEnvelope:
    return DeliveryEnvelope(
        payload=body,
        cluster_id=settings.delivery.cluster_id,
        cluster_api=settings.delivery.cluster_api,
        event_type=changes.ChangeType(event_type).value,  # type: ignore[arg-type]
    )


async def deliver(
        envelope: DeliveryEnvelope,
        *,
        destination: str,
        session: aiohttp.ClientSession,
        settings: configuration.RelaySettings,
        logger: typedefs.Logger,
) -> bool:
    """
    Make one attempt to deliver the envelope. Never raise; only log the failures.

    The result is for information only: the event is dropped either way.
    """
    try:
        data = json.dumps(envelope.as_json())
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to serialize the {envelope.event_type!r} event; dropping it: {e}")
        return False

    timeout = aiohttp.ClientTimeout(total=settings.delivery.timeout)
    headers = {'Content-Type': settings.delivery.content_type}
    try:
        async with session.post(destination, data=data, headers=headers, timeout=timeout) as rsp:
            if 200 <= rsp.status < 300:
                logger.debug(f"Delivered the {envelope.event_type!r} event: {rsp.status}.")
                return True

            try:
                text = await rsp.text()
            except (aiohttp.ClientError, UnicodeDecodeError) as e:
                logger.warning(f"Failed to read the collector's response: {e!r}")
                text = ''
            logger.warning(f"The collector rejected the {envelope.event_type!r} event "
                           f"with HTTP {rsp.status}: {text[:200]!r}")
            return False

    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.error(f"Failed to deliver the {envelope.event_type!r} event "
                     f"to {destination}; dropping it: {e!r}")
        return False


class EventReporter:
    """
    A handler of the changes that delivers them to the collector.

    It owns its own HTTP session, separate from the API's one: the collector
    has nothing to do with the cluster's credentials.
    """

    def __init__(
            self,
            *,
            settings: configuration.RelaySettings,
            session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__()
        if not settings.delivery.destination:
            raise ValueError("The destination of the events is not configured.")
        self.settings = settings
        self.destination: str = settings.delivery.destination
        self._session = session
        self._own_session = session is None

    async def __aenter__(self) -> "EventReporter":
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._own_session:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("The reporter is used outside of its context manager.")
        return self._session

    async def on_added(self, body: bodies.RawBody) -> None:
        await self._report(body, changes.ChangeType.ADD)

    async def on_deleted(self, body: bodies.RawBody) -> None:
        await self._report(body, changes.ChangeType.DELETE)

    async def on_updated(self, old: bodies.RawBody, new: bodies.RawBody) -> None:
        await self._report(new, changes.ChangeType.UPDATE)

    async def _report(self, body: bodies.RawBody, event_type: changes.ChangeType) -> None:
        logger = loggers.ObjectLogger(body=body)
        envelope = build_envelope(body, event_type=event_type, settings=self.settings)
        await deliver(
            envelope,
            destination=self.destination,
            session=self.session,
            settings=self.settings,
            logger=logger,
        )
