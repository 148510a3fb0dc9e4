from __future__ import annotations

import os
import ssl
from collections.abc import Mapping

import aiohttp
import certifi

from skills_cli.constant import USER_AGENT

# Standard environment variable for custom CA certificates.
# Used by corporate proxies and other enterprise environments.
_SSL_CERT_FILE_ENV = "SSL_CERT_FILE"


def _get_ssl_ca_file() -> str:
    """
    Get the CA certificate file path for SSL verification.

    Respects the standard SSL_CERT_FILE environment variable and falls back to
    certifi's bundled certificates when it is not set.
    """
    return os.environ.get(_SSL_CERT_FILE_ENV) or certifi.where()


_ssl_context = ssl.create_default_context(cafile=_get_ssl_ca_file())


def new_client_session(
    *,
    timeout: float | None = None,
    headers: Mapping[str, str] | None = None,
) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(
        connector=aiohttp.TCPConnector(ssl=_ssl_context),
        timeout=aiohttp.ClientTimeout(total=timeout),
        headers={"User-Agent": USER_AGENT, **(headers or {})},
    )
