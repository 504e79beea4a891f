"""
References to the watched resources, and the API URLs built from them.
"""
import dataclasses
import urllib.parse
from collections.abc import Mapping

# An explicit marker of all namespaces; used for clarity instead of a bare `None`.
Namespace = str | None
NAMESPACE_ALL: Namespace = None


@dataclasses.dataclass(frozen=True)
class Resource:
    """
    A resource kind as addressed in the API: its group, version, and plural name.

    The core API has an empty group (``""``) and lives under ``/api/v1``;
    all other groups live under ``/apis/{group}/{version}``.
    """
    group: str
    version: str
    plural: str
    kind: str | None = None
    namespaced: bool = True

    def __str__(self) -> str:
        return '.'.join(part for part in [self.plural, self.version, self.group] if part)

    @property
    def api_root(self) -> str:
        return f'/api/{self.version}' if not self.group else f'/apis/{self.group}/{self.version}'

    def get_url(
            self,
            *,
            namespace: Namespace = NAMESPACE_ALL,
            params: Mapping[str, str] | None = None,
    ) -> str:
        """
        Build the URL of the resource's collection, relative to the API server.

        With no namespace, the URL is cluster-wide (all namespaces).
        """
        if namespace is not None and not self.namespaced:
            raise ValueError(f"{self} is cluster-scoped and has no namespaces, got {namespace!r}.")
        scope = f'/namespaces/{namespace}' if namespace is not None else ''
        query = f'?{urllib.parse.urlencode(params)}' if params else ''
        return f'{self.api_root}{scope}/{self.plural}{query}'


# The only resource the relay is interested in: the core v1 events.
EVENTS = Resource('', 'v1', 'events', kind='Event', namespaced=True)
