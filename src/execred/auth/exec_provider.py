"""Exec-plugin token provider.

This module provides :class:`ExecTokenProvider`, which implements the
client side of the Kubernetes out-of-tree credential plugin protocol
(``client.authentication.k8s.io``). A user-configured executable is run on
demand; its stdout is validated as an ``ExecCredential`` and cached until
30 seconds before its ``expirationTimestamp``.

Credentials without an expiry (typically static client certificates) are
cached for the lifetime of the provider. Nothing is persisted to disk.

The blocking refresh is guarded by a lock so that concurrent callers start
at most one plugin process per provider; the async entry points run it on
the default executor and kill the child if the awaiting task is cancelled.

See Also:
    :mod:`execred.auth.process` for how the plugin is launched.
    :mod:`execred.auth.response` for how its output is validated.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from execred.auth.base import AuthResult, TokenProvider
from execred.auth.process import DEFAULT_EXECUTION_TIMEOUT, ExecInvoker, SubprocessInvoker
from execred.auth.response import parse_exec_credential
from execred.exceptions import ExecutionError, ExecutionFailure
from execred.models import ExecConfig, ExecCredential

logger = logging.getLogger(__name__)

REFRESH_SAFETY_MARGIN = timedelta(seconds=30)
"""Lead time before expiry at which a cached credential is treated as expired."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecTokenProvider(TokenProvider):
    """Obtain credentials by running an exec plugin, caching them until near expiry.

    Args:
        config: How to run the plugin.
        execution_timeout: Wall-clock bound on each plugin run, in seconds.
        interactive: Let the plugin prompt on the terminal. Defaults to
            ``config.interactive``.
        invoker: Runs the plugin. Defaults to :class:`SubprocessInvoker`.
        clock: Returns the current UTC time. Injectable for tests.

    Example::

        provider = ExecTokenProvider(config, execution_timeout=30.0)
        result = provider.get_credential()
        httpx.get(url, headers=result.headers)
    """

    def __init__(
        self,
        config: ExecConfig,
        execution_timeout: float = DEFAULT_EXECUTION_TIMEOUT,
        interactive: Optional[bool] = None,
        invoker: Optional[ExecInvoker] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._execution_timeout = execution_timeout
        self._interactive = config.interactive if interactive is None else interactive
        self._invoker = invoker if invoker is not None else SubprocessInvoker()
        self._clock = clock
        self._response: Optional[ExecCredential] = None
        self._refresh_lock = threading.Lock()

    @property
    def config(self) -> ExecConfig:
        return self._config

    @property
    def cached(self) -> Optional[ExecCredential]:
        """The last validated plugin response, or ``None``."""
        return self._response

    def needs_refresh(self) -> bool:
        """Return ``True`` if the plugin has to run before a credential can be returned."""
        response = self._response
        if response is None or response.status is None:
            return True
        expiry = response.status.expiration_timestamp
        if expiry is None:
            return False
        return self._clock() >= expiry - REFRESH_SAFETY_MARGIN

    # ------------------------------------------------------------------ #
    # Blocking API
    # ------------------------------------------------------------------ #

    def get_credential(self) -> AuthResult:
        """Return the cached credential, running the plugin first if it is missing or expiring.

        Raises:
            ConfigurationError: If the exec configuration is malformed.
            ExecutionError: If the plugin fails to run to a clean exit.
            ValidationError: If the plugin output is rejected.
        """
        if self.needs_refresh():
            return _to_auth_result(self._refresh_if_needed())
        return _to_auth_result(self._response)

    def refresh(self) -> AuthResult:
        """Run the plugin unconditionally and replace the cache on success."""
        with self._refresh_lock:
            return _to_auth_result(self._refresh())

    def cached_result(self) -> Optional[AuthResult]:
        """Return the last good credential without running the plugin.

        Useful after a failed refresh: the previous credential is never
        evicted by a failure and may still be within its lifetime.
        """
        response = self._response
        if response is None:
            return None
        return _to_auth_result(response)

    # ------------------------------------------------------------------ #
    # Async API
    # ------------------------------------------------------------------ #

    async def aget_credential(self) -> AuthResult:
        """Non-blocking :meth:`get_credential`.

        The plugin run happens on the default executor. Cancelling the
        awaiting task kills the plugin process.
        """
        if not self.needs_refresh():
            return _to_auth_result(self._response)
        response = await self._offload(self._refresh_if_needed)
        return _to_auth_result(response)

    async def arefresh(self) -> AuthResult:
        """Non-blocking :meth:`refresh`, with the same cancellation behaviour."""

        def _locked(cancel_event: threading.Event) -> ExecCredential:
            with self._refresh_lock:
                return self._refresh(cancel_event)

        response = await self._offload(_locked)
        return _to_auth_result(response)

    async def _offload(
        self, func: Callable[[threading.Event], ExecCredential]
    ) -> ExecCredential:
        cancel_event = threading.Event()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, func, cancel_event)
        try:
            return await future
        except asyncio.CancelledError:
            cancel_event.set()
            raise

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _refresh_if_needed(
        self, cancel_event: Optional[threading.Event] = None
    ) -> ExecCredential:
        with self._refresh_lock:
            # Another caller may have refreshed while we waited for the lock.
            if not self.needs_refresh():
                return self._response
            return self._refresh(cancel_event)

    def _refresh(self, cancel_event: Optional[threading.Event] = None) -> ExecCredential:
        if cancel_event is not None and cancel_event.is_set():
            # Cancelled while waiting for the lock.
            raise ExecutionError(
                "external exec was cancelled before it started",
                reason=ExecutionFailure.CANCELLED,
            )
        raw = self._invoker.invoke(
            self._config,
            self._execution_timeout,
            self._interactive,
            cancel_event,
        )
        response = parse_exec_credential(raw, self._config.api_version)
        self._response = response
        logger.debug(
            "Refreshed exec credential from %s (expires %s)",
            self._config.command,
            response.status.expiration_timestamp or "never",
        )
        return response


def _to_auth_result(response: ExecCredential) -> AuthResult:
    status = response.status
    return AuthResult(
        token=status.token,
        client_certificate_data=status.client_certificate_data,
        client_key_data=status.client_key_data,
        expires_at=status.expiration_timestamp,
    )
