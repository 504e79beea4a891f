"""
All the structures coming from/to the Kubernetes API.

Everything marked "raw" is a plain unwrapped unprocessed data as JSON-decoded
from Kubernetes API, usually as retrieved in watching or fetching API calls.
"Input" is a parsed JSON as is, while "event" is an "input" without "errors".
All non-used payload falls into `Any`, and is not type-checked.

Mind the naming clash: the "events" here are the watch-events of the API
(``{"type": "ADDED", "object": {...}}``), while the watched objects themselves
are also called events (``kind: Event``). The latter are always "bodies".
"""
from collections.abc import Mapping
from typing import Any, Literal, NamedTuple, TypedDict, cast

RawInputType = Literal['ADDED', 'MODIFIED', 'DELETED', 'BOOKMARK', 'ERROR']
RawEventType = Literal['ADDED', 'MODIFIED', 'DELETED', 'BOOKMARK']


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    resourceVersion: str
    creationTimestamp: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta


# A special payload for type==ERROR (this is not a connection or client error).
class RawError(TypedDict, total=False):
    apiVersion: str     # usually: Literal['v1']
    kind: str           # usually: Literal['Status']
    metadata: Mapping[Any, Any]
    code: int
    reason: str
    status: str
    message: str


# As received from the stream before processing the errors and special cases.
class RawInput(TypedDict, total=True):
    type: RawInputType
    object: RawBody | RawError


# As passed to the informer after processing the errors and special cases.
class RawEvent(TypedDict, total=True):
    type: RawEventType
    object: RawBody


class ObjectReference(TypedDict, total=False):
    apiVersion: str
    kind: str
    namespace: str | None
    name: str
    uid: str


class ObjectKey(NamedTuple):
    """
    The identity of an object within its resource kind.

    The namespace is ``None`` for cluster-scoped objects.
    """
    namespace: str | None
    name: str

    def __str__(self) -> str:
        return f'{self.namespace}/{self.name}' if self.namespace else self.name


def get_key(body: RawBody) -> ObjectKey:
    meta = body.get('metadata', {})
    return ObjectKey(namespace=meta.get('namespace'), name=meta['name'])


def get_uid(body: RawBody) -> str | None:
    return body.get('metadata', {}).get('uid')


def get_resource_version(body: RawBody) -> str | None:
    return body.get('metadata', {}).get('resourceVersion')


def is_identifiable(body: object) -> bool:
    """ Check if the payload is an object with a name, i.e. usable as a mirror's entry. """
    if not isinstance(body, Mapping):
        return False
    meta = body.get('metadata')
    return isinstance(meta, Mapping) and isinstance(meta.get('name'), str) and bool(meta['name'])


def build_object_reference(body: RawBody) -> ObjectReference:
    """
    Identify the object in the logs by its type and its identity, not by its content.

    Only the present fields are used: e.g. the cluster-scoped objects have no namespace.
    """
    meta = body.get('metadata', {})
    fields = {
        'apiVersion': body.get('apiVersion'),
        'kind': body.get('kind'),
        'namespace': meta.get('namespace'),
        'name': meta.get('name'),
        'uid': meta.get('uid'),
    }
    return cast(ObjectReference, {key: value for key, value in fields.items() if value})
