"""
The local mirror of a remote collection of objects.

The mirror is the relay's memory of what exists in the cluster: the last seen
state of every object, keyed by its namespace & name, plus the resource version
(the consistency marker) up to which all the changes are known.

The mirror is fed from two sources:

* Full listings, which replace the whole state at once (see `Mirror.replace`).
* Watch-events, which change one object at a time (see `Mirror.apply`).

Either way, the mirror converts the incoming data into the high-level changes
by comparing them with what was known before. This guarantees that the same
object is never reported as added twice without being reported as deleted
in between -- regardless of duplicates in the streams, reconnects, re-listings.

The objects that vanished while nobody was watching (e.g. between the watch
disconnect and the re-listing) are detected only by the re-listing diff;
their intermediate states, if any, are lost.

The mirror is owned by one informer only and is not protected by locks.
"""
import logging
from collections.abc import Iterable, Iterator

from eventrelay._cogs.structs import bodies, changes

logger = logging.getLogger(__name__)


class Mirror:

    def __init__(self) -> None:
        super().__init__()
        self._objects: dict[bodies.ObjectKey, bodies.RawBody] = {}
        self._resource_version: str | None = None

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {len(self)} objects @ {self._resource_version!r}>'

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[bodies.ObjectKey]:
        return iter(self._objects)

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def get(self, key: bodies.ObjectKey) -> bodies.RawBody | None:
        return self._objects.get(key)

    @property
    def resource_version(self) -> str | None:
        """ The consistency marker: all changes up to it are known to the mirror. """
        return self._resource_version

    def replace(
            self,
            items: Iterable[bodies.RawBody],
            resource_version: str | None,
    ) -> list[changes.Change]:
        """
        Replace the whole mirrored state with a new listing, and return the diff.

        The deletions go first, then the additions & updates in the listing's order.
        """
        listed: dict[bodies.ObjectKey, bodies.RawBody] = {}
        for body in items:
            if not bodies.is_identifiable(body):
                logger.warning(f"Ignoring a listed object with no name: {body!r}")
                continue
            listed[bodies.get_key(body)] = body

        result: list[changes.Change] = []
        for key, old in self._objects.items():
            if key not in listed:
                result.append(changes.Deleted(old))
        for key, new in listed.items():
            result.extend(_compare(self._objects.get(key), new))

        self._objects = listed
        if resource_version is not None:
            self._resource_version = resource_version
        return result

    def apply(
            self,
            raw_event: bodies.RawEvent,
    ) -> list[changes.Change]:
        """
        Apply one watch-event to the mirrored state, and return the changes.

        Repeated events of an already known state of an object (as it happens
        on reconnects from a slightly older resource version) yield nothing.
        """
        raw_type = raw_event['type']
        body = raw_event['object']

        result: list[changes.Change] = []
        if raw_type == 'BOOKMARK':
            pass
        elif not bodies.is_identifiable(body):
            logger.warning(f"Ignoring a watch-event of an object with no name: {raw_event!r}")
        elif raw_type == 'DELETED':
            # An unknown object is either deleted already, or never seen: nothing to report.
            if self._objects.pop(bodies.get_key(body), None) is not None:
                result.append(changes.Deleted(body))
        else:
            key = bodies.get_key(body)
            result.extend(_compare(self._objects.get(key), body))
            self._objects[key] = body

        self._resource_version = bodies.get_resource_version(body) or self._resource_version
        return result


def _compare(
        old: bodies.RawBody | None,
        new: bodies.RawBody,
) -> list[changes.Change]:
    # An object re-created under the same name is a different object: report it as such.
    old_uid = bodies.get_uid(old) if old is not None else None
    new_uid = bodies.get_uid(new)
    if old is None:
        return [changes.Added(new)]
    elif old_uid is not None and new_uid is not None and old_uid != new_uid:
        return [changes.Deleted(old), changes.Added(new)]
    elif bodies.get_resource_version(old) != bodies.get_resource_version(new):
        return [changes.Updated(old, new)]
    else:
        return []
