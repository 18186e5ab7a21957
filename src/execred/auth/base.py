"""Abstract base class for token providers.

This module defines the two foundational types of the auth subsystem:

- :class:`AuthResult` -- a plain container for the credential material a
  provider produces: a bearer token, client TLS data, or both.
- :class:`TokenProvider` -- the abstract base class every credential
  source extends.

To implement a new source, subclass :class:`TokenProvider` and implement
:meth:`~TokenProvider.get_credential`. Override :meth:`~TokenProvider.refresh`
when the source can be forced to mint a new credential, and the ``a``-prefixed
coroutines when the source has a better way to avoid blocking the event loop
than the default executor offload.

See Also:
    :class:`~execred.auth.exec_provider.ExecTokenProvider` for the
    exec-plugin implementation.
    :class:`~execred.client.auth.ExecAuth` for attaching the result to
    httpx requests.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional


class AuthResult:
    """Credential material ready to attach to outgoing requests.

    A bearer token is exposed through :attr:`headers`; certificate and key
    data are left for the transport's TLS configuration.

    Args:
        token: Bearer token, if the plugin returned one.
        client_certificate_data: PEM-encoded client certificate.
        client_key_data: PEM-encoded client private key.
        expires_at: UTC expiry time. ``None`` means the credential never expires.

    Example::

        result = AuthResult(token="tok123")
        assert result.headers["Authorization"] == "Bearer tok123"
    """

    def __init__(
        self,
        token: Optional[str] = None,
        client_certificate_data: Optional[str] = None,
        client_key_data: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ):
        self.token = token
        self.client_certificate_data = client_certificate_data
        self.client_key_data = client_key_data
        self.expires_at = expires_at

    @property
    def headers(self) -> dict[str, str]:
        """HTTP headers to add; empty when there is no bearer token."""
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    @property
    def has_client_certificate(self) -> bool:
        return bool(self.client_certificate_data) and bool(self.client_key_data)


class TokenProvider(ABC):
    """Abstract base class for credential sources.

    Implementations own their cache. :meth:`get_credential` may return a
    cached value; :meth:`refresh` must not.
    """

    @abstractmethod
    def get_credential(self) -> AuthResult:
        """Return a usable credential, refreshing it first if needed.

        Returns:
            An :class:`AuthResult` for the current credential.

        Raises:
            ExecredError: If a refresh was needed and failed.
        """
        ...

    def refresh(self) -> AuthResult:
        """Force a new credential and return it.

        The default implementation simply defers to :meth:`get_credential`.
        Subclasses that cache should override this to bypass the cache.
        """
        return self.get_credential()

    async def aget_credential(self) -> AuthResult:
        """Non-blocking variant of :meth:`get_credential`.

        Runs the blocking call on the event loop's default executor.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_credential)

    async def arefresh(self) -> AuthResult:
        """Non-blocking variant of :meth:`refresh`."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.refresh)
