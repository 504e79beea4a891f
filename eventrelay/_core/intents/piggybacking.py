"""
Rudimentary logins to the K8s API from the well-known credential sources.

The relay is not a client library, and avoids bringing too much logic
for proper authentication, especially all the complex auth-providers.

Only two sources are supported: the pod's service account (in-cluster),
and a kubeconfig file (out-of-cluster, e.g. on a developer's machine).
Both can be overridden by the explicitly configured API server and token.

.. seealso::
    :mod:`credentials` and :class:`auth.APIContext`.
"""
import dataclasses
import os
from typing import Any

import yaml

from eventrelay._cogs.configs import configuration
from eventrelay._cogs.helpers import typedefs
from eventrelay._cogs.structs import credentials

# Keep as constants to make them patchable in tests.
SERVICE_ACCOUNT_ROOT = '/var/run/secrets/kubernetes.io/serviceaccount'
SERVICE_ACCOUNT_SERVER = 'https://kubernetes.default.svc'
DEFAULT_KUBECONFIG = '~/.kube/config'


def login(
        *,
        settings: configuration.RelaySettings,
        logger: typedefs.Logger,
) -> credentials.ConnectionInfo:
    """
    Retrieve the credentials as configured, and apply the explicit overrides.

    In the cluster, the service account is mandatory. Out of the cluster,
    the kubeconfig is optional if the API server is explicitly specified.
    """
    cluster = settings.cluster
    info: credentials.ConnectionInfo | None
    if cluster.in_cluster:
        info = login_with_service_account()
        if info is None:
            raise credentials.LoginError("No service account is mounted into the pod.")
        logger.debug("Logged in with the service account.")
    else:
        info = login_with_kubeconfig(path=cluster.kubeconfig)
        if info is not None:
            logger.debug("Logged in with the kubeconfig.")
        elif cluster.apiserver:
            logger.debug("No kubeconfig is found; using the API server as is.")
            info = credentials.ConnectionInfo(server=cluster.apiserver)
        else:
            raise credentials.LoginError("Neither a kubeconfig nor an API server is available.")

        # An explicit token disables the TLS verification: it is usually a dev cluster.
        if cluster.token:
            info = dataclasses.replace(info, token=cluster.token, scheme=None, insecure=True)

    if cluster.apiserver:
        info = dataclasses.replace(info, server=cluster.apiserver)

    if not info.server:
        raise credentials.LoginError("The API server is not known from the credentials.")

    logger.info(f"Using the API server at {info.server} "
                f"({'with' if info.token else 'without'} a token).")
    return info


def _read_secret(name: str) -> str | None:
    path = os.path.join(SERVICE_ACCOUNT_ROOT, name)
    if not os.path.exists(path):
        return None
    with open(path, encoding='utf-8') as f:
        return f.read().strip() or None


def login_with_service_account(**_: Any) -> credentials.ConnectionInfo | None:
    """
    Take the pod's service account as mounted by K8s, if it is mounted at all.

    The token is the marker of the service account: without it, nothing is used.
    """
    if not os.path.exists(os.path.join(SERVICE_ACCOUNT_ROOT, 'token')):
        return None

    ca_path = os.path.join(SERVICE_ACCOUNT_ROOT, 'ca.crt')
    return credentials.ConnectionInfo(
        server=SERVICE_ACCOUNT_SERVER,
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=_read_secret('token'),
        default_namespace=_read_secret('namespace'),
    )


def _find_kubeconfigs(path: str | None) -> list[str]:
    value = path or os.environ.get('KUBECONFIG')
    if not value and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG)):
        value = DEFAULT_KUBECONFIG
    return [os.path.expanduser(p.strip()) for p in (value or '').split(os.pathsep) if p.strip()]


def _load_kubeconfig(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise credentials.LoginError(f"Cannot read the kubeconfig {path!r}: {e}") from e
    if not isinstance(config, dict):
        raise credentials.LoginError(f"Cannot read the kubeconfig {path!r}: not a mapping.")
    return config


def login_with_kubeconfig(path: str | None = None, **_: Any) -> credentials.ConnectionInfo | None:
    """
    Take the current context of the kubeconfig file(s), if there are any.

    Several files can be listed in ``$KUBECONFIG``; they are merged
    the way ``kubectl`` merges them: the first mention of every name wins.
    Only the static credentials are used; the auth-providers are never executed,
    but their cached access tokens are taken as is.
    """
    paths = _find_kubeconfigs(path)
    if not paths:
        return None

    current_context: str | None = None
    sections: dict[str, dict[str, Any]] = {'contexts': {}, 'clusters': {}, 'users': {}}
    for config in map(_load_kubeconfig, paths):
        current_context = current_context or config.get('current-context')
        for section, named_items in sections.items():
            field = section[:-1]  # e.g. 'cluster' in 'clusters'
            for item in config.get(section) or []:
                named_items.setdefault(item['name'], item.get(field) or {})

    if current_context is None:
        raise credentials.LoginError('Current context is not set in kubeconfigs.')
    try:
        context = sections['contexts'][current_context]
        cluster = sections['clusters'][context['cluster']]
        user = sections['users'].get(context.get('user'), {})
    except KeyError as e:
        raise credentials.LoginError(f"The kubeconfig's context is incomplete: {e}") from e

    provider = user.get('auth-provider') or {}
    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token') or (provider.get('config') or {}).get('access-token'),
        default_namespace=context.get('namespace'),
    )
