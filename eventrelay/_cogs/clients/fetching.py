from eventrelay._cogs.clients import api, auth
from eventrelay._cogs.configs import configuration
from eventrelay._cogs.helpers import typedefs
from eventrelay._cogs.structs import bodies, references


async def list_objs(
        *,
        context: auth.APIContext,
        settings: configuration.RelaySettings,
        resource: references.Resource,
        namespace: references.Namespace,
        logger: typedefs.Logger,
) -> tuple[list[bodies.RawBody], str | None]:
    """
    List the objects of specific resource type, with the list's resource version.

    The cluster-wide call is used when the namespace is not specified.

    The listed items have no ``kind`` & ``apiVersion`` of their own,
    so they are restored from the list's kind (``EventList`` -> ``Event``),
    to look the same as the objects that arrive via the watch-streams.
    """
    url = resource.get_url(namespace=namespace)
    rsp = await api.get(url, context=context, settings=settings, logger=logger)

    defaults: dict[str, str] = {}
    if 'kind' in rsp:
        defaults['kind'] = rsp['kind'].removesuffix('List')
    if 'apiVersion' in rsp:
        defaults['apiVersion'] = rsp['apiVersion']

    items: list[bodies.RawBody] = [defaults | item for item in rsp.get('items') or []]
    return items, (rsp.get('metadata') or {}).get('resourceVersion')
