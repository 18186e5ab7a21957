"""httpx authentication flow backed by a token provider.

:class:`ExecAuth` plugs a :class:`~execred.auth.base.TokenProvider` into
httpx's auth hook:

- **Header injection** -- ``Authorization: Bearer <token>`` is set on every
  request from the provider's current (possibly cached) credential.
- **Refresh on 401** -- when the server rejects the token, the provider is
  forced to refresh once and the request is replayed with the new token.

Certificate-only credentials produce no header; presenting client TLS
material is the transport's job (see
:attr:`~execred.auth.base.AuthResult.has_client_certificate`).

Example::

    provider = ExecTokenProvider(exec_config)
    with httpx.Client(base_url=server, auth=ExecAuth(provider)) as client:
        client.get("/api/v1/namespaces")
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Generator

import httpx

from execred.auth.base import AuthResult, TokenProvider

logger = logging.getLogger(__name__)


class ExecAuth(httpx.Auth):
    """Attach provider-issued bearer tokens to httpx requests.

    Args:
        provider: Source of credentials.
        refresh_on_unauthorized: Force one refresh and retry when the
            server answers ``401 Unauthorized``.
    """

    def __init__(self, provider: TokenProvider, refresh_on_unauthorized: bool = True) -> None:
        self._provider = provider
        self._refresh_on_unauthorized = refresh_on_unauthorized

    def sync_auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        _apply(request, self._provider.get_credential())
        response = yield request

        if self._should_retry(response):
            response.read()
            _apply(request, self._provider.refresh())
            yield request

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        _apply(request, await self._provider.aget_credential())
        response = yield request

        if self._should_retry(response):
            await response.aread()
            _apply(request, await self._provider.arefresh())
            yield request

    def _should_retry(self, response: httpx.Response) -> bool:
        if not self._refresh_on_unauthorized:
            return False
        if response.status_code != 401:
            return False
        logger.debug("Server returned 401, refreshing exec credential")
        return True


def _apply(request: httpx.Request, result: AuthResult) -> None:
    request.headers.update(result.headers)
