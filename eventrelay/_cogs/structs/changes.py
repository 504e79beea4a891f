"""
Change notifications: what happened with an object, as seen by the mirror.

The low-level watch-events are limited in information: an ``ADDED`` event
can come for an object that is already known (e.g. after a reconnect),
and the objects that disappeared while the stream was down are not reported
at all. The conversion of low-level *events* to high-level *changes* is done
by comparing the object with the locally mirrored state of the collection
(see :mod:`eventrelay._core.reactor.mirroring`).

The changes are ephemeral: they exist only for the duration of one dispatch.
"""
import dataclasses
import enum

from eventrelay._cogs.structs import bodies


class ChangeType(str, enum.Enum):
    ADD = 'add'
    UPDATE = 'update'
    DELETE = 'delete'

    def __str__(self) -> str:
        return str(self.value)


@dataclasses.dataclass(frozen=True)
class Added:
    body: bodies.RawBody
    type = ChangeType.ADD

    @property
    def key(self) -> bodies.ObjectKey:
        return bodies.get_key(self.body)


@dataclasses.dataclass(frozen=True)
class Updated:
    old: bodies.RawBody
    new: bodies.RawBody
    type = ChangeType.UPDATE

    @property
    def key(self) -> bodies.ObjectKey:
        return bodies.get_key(self.new)

    @property
    def body(self) -> bodies.RawBody:
        return self.new


@dataclasses.dataclass(frozen=True)
class Deleted:
    body: bodies.RawBody
    type = ChangeType.DELETE

    @property
    def key(self) -> bodies.ObjectKey:
        return bodies.get_key(self.body)


Change = Added | Updated | Deleted
