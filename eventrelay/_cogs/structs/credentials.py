"""
Authentication-related structures.

The relay handles only the rudimentary authentication: the information
passed to the HTTP protocol and TCP/SSL connection, i.e. everything usable
in a generic HTTP client, and nothing more than that:

* TCP server host & port.
* SSL verification/ignorance flag.
* SSL certificate authority.
* SSL client certificate and its private key.
* HTTP ``Authorization: Basic username:password``.
* HTTP ``Authorization: Bearer token`` (or other schemes).

.. seealso::
    :mod:`eventrelay._core.intents.piggybacking`.
"""
import dataclasses


class LoginError(Exception):
    """ Raised when the relay cannot login to the API. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    """
    A single endpoint with specific credentials and connection flags to use.
    """
    server: str  # e.g. "https://localhost:443"
    ca_path: str | None = None
    ca_data: bytes | None = None
    insecure: bool | None = None
    username: str | None = None
    password: str | None = None
    scheme: str | None = None  # RFC-7235/5.1: e.g. Bearer, Basic, Digest, etc.
    token: str | None = None
    certificate_path: str | None = None
    certificate_data: bytes | None = None
    private_key_path: str | None = None
    private_key_data: bytes | None = None
    default_namespace: str | None = None

    def __repr__(self) -> str:
        # Never leak the secrets into the logs, even in the debug mode.
        token = '...' if self.token else None
        password = '...' if self.password else None
        return (f'{self.__class__.__name__}(server={self.server!r}, '
                f'insecure={self.insecure!r}, token={token!r}, '
                f'username={self.username!r}, password={password!r})')
