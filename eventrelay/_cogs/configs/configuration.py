"""
All configuration flags, options, settings to fine-tune the relay.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

The settings are constructed once at startup (usually by the CLI)
and are passed explicitly to every component that needs them;
there are no module-level or process-wide configuration variables.

Some of the settings are flags, some are scalars, some are optional,
some are not (but most of them have reasonable defaults).
"""
import dataclasses
from collections.abc import Iterable


@dataclasses.dataclass
class ClusterSettings:
    """
    How to reach the source cluster's API.
    """

    in_cluster: bool = True
    """
    Use the pod's service account (``True``) or a kubeconfig file (``False``).
    """

    apiserver: str | None = None
    """
    The URL of the API server. Overrides the one from the service account
    or the kubeconfig. Required if not running in the cluster.
    """

    token: str | None = None
    """
    A bearer token for the API server. Overrides the one from the kubeconfig.
    When set for a kubeconfig-based login, TLS verification is disabled.
    """

    kubeconfig: str | None = None
    """
    A path to the kubeconfig file. If not set, ``$KUBECONFIG``
    or ``~/.kube/config`` is used.
    """


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: float | None = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the regular (non-streaming) API requests: e.g. the listing.
    """

    connect_timeout: float | None = None
    """
    A timeout for the TCP connection to the API server.
    """

    error_backoffs: float | Iterable[float] = (1, 1, 2, 3, 5, 8, 13, 21, 34, 55)
    """
    Backoffs (in seconds) between the retries of a failed regular API request.
    The number of retries is the number of backoffs; an empty list disables it.
    Streaming requests (watching) are never retried this way.
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: float | None = None
    """
    The maximum duration of one streaming request. Passed to the API server.
    The server closes the stream after it, and the relay re-opens it again.
    """

    client_timeout: float | None = None
    """
    The maximum duration of one streaming request. Enforced client-side.
    """

    connect_timeout: float | None = None
    """
    A timeout for the TCP connection of the watch-streams.
    """

    reconnect_backoff: float = 0.1
    """
    A pause between the watch requests (to prevent flooding the API).
    """

    bookmarks: bool = True
    """
    Ask the server for bookmarks to keep the resource version fresh
    even when nothing happens with the watched objects.
    """


@dataclasses.dataclass
class InformingSettings:

    resync_period: float = 5 * 60
    """
    How often (in seconds) to re-list all objects and compare them
    with the local mirror, even if the watch-stream is healthy.
    """

    error_backoff: float = 1.0
    """
    A pause before re-listing after a listing or watching error.
    """


@dataclasses.dataclass
class DeliverySettings:

    destination: str | None = None
    """
    The URL of the collector to which the events are POSTed.
    """

    cluster_id: int = 0
    """
    The cluster identifier, as known to the collector.
    """

    cluster_api: str = ''
    """
    The cluster's API address, as reported to the collector.
    """

    content_type: str = 'application/json;charset=UTF-8'
    """
    The value of the ``Content-Type`` header of the delivery requests.
    """

    timeout: float | None = 30
    """
    The total timeout of one delivery request. Nothing is retried on timeout.
    """

    report_updates: bool = False
    """
    Deliver the in-place modifications of the events as ``"update"``.
    By default, only additions and deletions are delivered.
    """


@dataclasses.dataclass
class ProbingSettings:

    enabled: bool = True
    """
    Serve the liveness endpoint at all.
    """

    host: str = '0.0.0.0'
    """
    The interface to listen on. All interfaces by default.
    """

    port: int = 80
    """
    The port of the liveness endpoint.
    """

    path: str = '/'
    """
    The URL path of the liveness endpoint.
    """


@dataclasses.dataclass
class RelaySettings:
    cluster: ClusterSettings = dataclasses.field(default_factory=ClusterSettings)
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    informing: InformingSettings = dataclasses.field(default_factory=InformingSettings)
    delivery: DeliverySettings = dataclasses.field(default_factory=DeliverySettings)
    probing: ProbingSettings = dataclasses.field(default_factory=ProbingSettings)
