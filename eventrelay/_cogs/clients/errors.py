"""
Errors of the K8s API, as seen by the relay.

The relay only reads from the API, so only a few statuses deserve their own
classes: the credentials (401, 403), the missing resource (404), the expired
resource version (410), and the server-side throttling (429). Everything else
is a generic :class:`APIError`; 5xx errors are retried by the requests.

Networking failures (connections, timeouts, TLS) are not wrapped: they are
raised from ``aiohttp`` as they are.

The error's payload is the K8s ``Status`` object from the response, if any.
Other response bodies are never kept, since they can contain anything.
"""
from typing import Literal, TypedDict

import aiohttp


class RawStatusDetails(TypedDict, total=False):
    name: str
    kind: str
    retryAfterSeconds: int


# https://kubernetes.io/docs/reference/kubernetes-api/common-definitions/status/
class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    status: Literal["Success", "Failure"]
    code: int
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):
    """ A non-successful HTTP response from the K8s API. """

    def __init__(self, payload: RawStatus | None, *, status: int) -> None:
        super().__init__(payload.get('message') if payload else None, payload)
        self.status = status
        self.payload = payload

    @property
    def code(self) -> int | None:
        return None if self.payload is None else self.payload.get('code')

    @property
    def message(self) -> str | None:
        return None if self.payload is None else self.payload.get('message')

    @property
    def details(self) -> RawStatusDetails | None:
        return None if self.payload is None else self.payload.get('details')


class APIUnauthorizedError(APIError):
    pass


class APIForbiddenError(APIError):
    pass


class APINotFoundError(APIError):
    pass


class APIGoneError(APIError):
    pass


class APITooManyRequestsError(APIError):
    pass


ERRORS_BY_STATUS: dict[int, type[APIError]] = {
    401: APIUnauthorizedError,
    403: APIForbiddenError,
    404: APINotFoundError,
    410: APIGoneError,
    429: APITooManyRequestsError,
}


async def check_response(response: aiohttp.ClientResponse) -> None:
    """
    Raise the relay's own error for a failed response; do nothing otherwise.

    The response is read and closed on errors, so it cannot be used afterwards.
    """
    if response.status < 400:
        return

    payload: RawStatus | None = None
    try:
        data = await response.json(content_type=None)
    except (ValueError, aiohttp.ClientError):
        data = None
    if isinstance(data, dict) and data.get('kind') == 'Status':
        payload = data  # type: ignore[assignment]

    cls = ERRORS_BY_STATUS.get(response.status, APIError)
    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise cls(payload, status=response.status) from e
