"""
The authenticated HTTP session to the API server.

The relay logs in once at startup, so the session is built once too
and lives until the relay exits; there is no credentials re-fetching.
"""
import base64
import contextlib
import os
import ssl
import tempfile

import aiohttp

from eventrelay._cogs.helpers import versions
from eventrelay._cogs.structs import credentials


class APIContext:
    """
    An ``aiohttp`` session to the API server, and the server's root URL.

    Used as an async context manager: the session is closed on exit.
    """

    session: aiohttp.ClientSession
    server: str
    default_namespace: str | None

    def __init__(self, info: credentials.ConnectionInfo) -> None:
        super().__init__()
        self.server = info.server
        self.default_namespace = info.default_namespace
        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=make_ssl_context(info)),
            headers=make_headers(info),
            auth=(aiohttp.BasicAuth(info.username, info.password)
                  if info.username and info.password else None),
        )

    async def __aenter__(self) -> "APIContext":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.session.close()


def make_headers(info: credentials.ConnectionInfo) -> dict[str, str]:
    headers = {'User-Agent': f'eventrelay/{versions.version or "unknown"}'}
    if info.token:
        headers['Authorization'] = f'{info.scheme or "Bearer"} {info.token}'
    elif info.scheme:
        headers['Authorization'] = info.scheme
    return headers


def make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    """
    Build the TLS context: the cluster's CA and the client certificate, if any.

    The in-memory certificates go through temporary files, which are deleted
    right after loading; nothing is written at all if only paths are given.
    """
    context = ssl.create_default_context(
        purpose=ssl.Purpose.SERVER_AUTH,
        cafile=info.ca_path,
        cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
    )
    with contextlib.ExitStack() as stack:
        cert_path = info.certificate_path or _materialize(stack, info.certificate_data)
        pkey_path = info.private_key_path or _materialize(stack, info.private_key_data)
        if cert_path and pkey_path:
            context.load_cert_chain(certfile=cert_path, keyfile=pkey_path)

    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _materialize(
        stack: contextlib.ExitStack,
        data: str | bytes | None,
) -> str | os.PathLike[str] | None:
    if not data:
        return None
    file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
    file.write(decode_to_pem(data).encode('ascii'))
    return file.name


def decode_to_pem(data: str | bytes) -> str:
    """ Accept the PEM data either as is, or base64-encoded (as in kubeconfigs). """
    match data:
        case str() if data.startswith('-----BEGIN '):
            return data
        case bytes() if data.startswith(b'-----BEGIN '):
            return data.decode('ascii')
        case _:
            return base64.b64decode(data).decode('ascii')
