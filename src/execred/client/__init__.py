"""HTTP transport integration for execred.

Exports :class:`ExecAuth`, an :class:`httpx.Auth` that attaches the bearer
token from any :class:`~execred.auth.base.TokenProvider` to outgoing
requests. Works with both :class:`httpx.Client` and :class:`httpx.AsyncClient`.
"""

from execred.client.auth import ExecAuth

__all__ = ["ExecAuth"]
