"""TLS contexts for connections between internal services."""

from __future__ import annotations

import socket
import ssl
from dataclasses import dataclass
from typing import Callable, Iterable

_CIPHERS = {
    "TLS_ECDHE_RSA_WITH_AES_128_GCM_SHA256": "ECDHE-RSA-AES128-GCM-SHA256",
    "TLS_ECDHE_RSA_WITH_AES_256_GCM_SHA384": "ECDHE-RSA-AES256-GCM-SHA384",
}
_DEFAULT_CIPHERS = ":".join(_CIPHERS.values())

ContextOption = Callable[[ssl.SSLContext], None]


class TLSConfigError(ValueError):
    """Raised when certificates or keys cannot be loaded."""


@dataclass(frozen=True)
class ClientContext:
    """A client TLS context together with the server name it verifies."""

    context: ssl.SSLContext
    server_name: str

    def wrap_socket(self, sock: socket.socket) -> ssl.SSLSocket:
        """Wrap ``sock`` as a client connection to ``server_name``."""
        return self.context.wrap_socket(sock, server_hostname=self.server_name)


def with_cipher_suites(ciphers: Iterable[str]) -> ContextOption:
    """Option restricting a context to the named cipher suites.

    Unknown names are ignored; ValueError is raised if none are known.
    """
    names = [_CIPHERS[c] for c in ciphers if c in _CIPHERS]
    if not names:
        raise ValueError("no valid ciphers provided for TLS configuration")
    spec = ":".join(names)

    def apply(context: ssl.SSLContext) -> None:
        context.set_ciphers(spec)

    return apply


def _internal_service_defaults(context: ssl.SSLContext) -> None:
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.maximum_version = ssl.TLSVersion.TLSv1_2
    context.set_ciphers(_DEFAULT_CIPHERS)


def _load(context: ssl.SSLContext, cert_file: str, key_file: str, ca_file: str) -> None:
    try:
        context.load_cert_chain(cert_file, key_file)
    except (ssl.SSLError, OSError) as exc:
        raise TLSConfigError(f"failed to load keypair: {exc}") from exc
    try:
        context.load_verify_locations(cafile=ca_file)
    except (ssl.SSLError, OSError) as exc:
        raise TLSConfigError(f"unable to load authority from {ca_file}: {exc}") from exc


def new_client_context(
    cert_file: str, key_file: str, ca_file: str, server_name: str
) -> ClientContext:
    """Build a client context presenting the given identity and trusting ``ca_file``."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    _internal_service_defaults(context)
    _load(context, cert_file, key_file, ca_file)
    return ClientContext(context=context, server_name=server_name)


def new_server_context(
    cert_file: str, key_file: str, ca_file: str, *args: ContextOption
) -> ssl.SSLContext:
    """Build a server context that requires client certificates signed by ``ca_file``."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    _internal_service_defaults(context)
    context.verify_mode = ssl.CERT_REQUIRED
    _load(context, cert_file, key_file, ca_file)
    for option in args:
        option(context)
    return context