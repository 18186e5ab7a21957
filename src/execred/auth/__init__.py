"""Exec-plugin credential providers for execred.

This package implements the client side of the out-of-tree credential
plugin protocol: an external executable is run on demand, its
``ExecCredential`` output is validated, and the result is cached until it
nears expiry.

The main entry points are:

- :class:`TokenProvider` -- abstract base class for credential sources.
- :class:`ExecTokenProvider` -- runs an exec plugin and caches its result.
- :class:`SubprocessInvoker` -- launches the plugin process; replaceable by
  any :class:`ExecInvoker`.
- :func:`parse_exec_credential` -- validates plugin output.

Typical usage::

    from execred.auth import ExecTokenProvider

    provider = ExecTokenProvider(exec_config)
    auth_result = provider.get_credential()
    # auth_result.headers is ready to inject into requests.
"""

from execred.auth.base import AuthResult, TokenProvider
from execred.auth.exec_provider import REFRESH_SAFETY_MARGIN, ExecTokenProvider
from execred.auth.process import (
    DEFAULT_EXECUTION_TIMEOUT,
    EXEC_INFO_ENV,
    ExecInvoker,
    ProcessSpec,
    SubprocessInvoker,
    build_process_spec,
)
from execred.auth.response import parse_exec_credential

__all__ = [
    "AuthResult",
    "DEFAULT_EXECUTION_TIMEOUT",
    "EXEC_INFO_ENV",
    "ExecInvoker",
    "ExecTokenProvider",
    "ProcessSpec",
    "REFRESH_SAFETY_MARGIN",
    "SubprocessInvoker",
    "TokenProvider",
    "build_process_spec",
    "parse_exec_credential",
]
