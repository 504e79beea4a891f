"""
Dispatching of the high-level changes to the handler of the relay.

The dispatcher is the only place which decides what is delivered and what is
not: e.g. the updates are delivered only if explicitly enabled, and the
objects of unexpected kinds are ignored.

The handler's failures never propagate to the informer: one failed object
should not stop the processing of all other objects.
"""
import logging
from typing import Protocol, cast

from eventrelay._cogs.configs import configuration
from eventrelay._cogs.structs import bodies, changes, references

logger = logging.getLogger(__name__)


class ChangeHandler(Protocol):
    """ Anything that can react to the changes of the watched objects. """

    async def on_added(self, body: bodies.RawBody) -> None: ...

    async def on_deleted(self, body: bodies.RawBody) -> None: ...

    async def on_updated(self, old: bodies.RawBody, new: bodies.RawBody) -> None: ...


def is_acceptable(
        body: object,
        *,
        resource: references.Resource,
) -> bool:
    if not bodies.is_identifiable(body):
        return False
    kind = cast(bodies.RawBody, body).get('kind')
    return kind is None or resource.kind is None or kind == resource.kind


async def dispatch(
        change: changes.Change,
        *,
        handler: ChangeHandler,
        settings: configuration.RelaySettings,
        resource: references.Resource = references.EVENTS,
) -> None:
    if not is_acceptable(change.body, resource=resource):
        logger.debug(f"Ignoring a malformed or unexpected object: {change.body!r}")
        return

    try:
        match change:
            case changes.Added(body=body):
                await handler.on_added(body)
            case changes.Deleted(body=body):
                await handler.on_deleted(body)
            case changes.Updated(old=old, new=new) if settings.delivery.report_updates:
                await handler.on_updated(old, new)
            case changes.Updated():
                logger.debug(f"Ignoring an update of {change.key}.")
    except Exception:
        logger.exception(f"Handler failed on {change.type} of {change.key}; ignoring.")
