"""Canonical Pydantic models shared across all execred modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- supplied by a kubeconfig ``users[].user.exec``
section (see :mod:`execred.config`) or built directly by callers:
    :class:`ExecConfig`.

**Wire models** -- the JSON exchanged with the exec plugin across the
process boundary:
    :class:`ExecInfo` (written to ``KUBERNETES_EXEC_INFO``),
    :class:`ExecCredentialStatus` and :class:`ExecCredential` (read from
    the plugin's stdout).

All models are frozen Pydantic v2 models. Wire names are camelCase and are
mapped through aliases; Python field names are accepted as well, so both
``ExecConfig(apiVersion=...)`` and ``ExecConfig(api_version=...)`` work.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXEC_INFO_KIND = "ExecCredentials"
"""The ``kind`` written into the ``KUBERNETES_EXEC_INFO`` payload."""


# --- Configuration ---


class ExecConfig(BaseModel):
    """How to run an exec plugin.

    Mirrors the ``exec`` section of a kubeconfig user entry. Environment
    entries are kept as raw mappings here; they are checked for ``name``
    and ``value`` keys when the process spec is built, so a bad entry is
    reported before anything is started.

    Example::

        ExecConfig(
            apiVersion="client.authentication.k8s.io/v1",
            command="aws",
            args=["eks", "get-token", "--cluster-name", "prod"],
            env=[{"name": "AWS_PROFILE", "value": "prod"}],
        )
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_version: str = Field(
        alias="apiVersion",
        description="ExecCredential schema version the plugin must emit",
    )
    command: str = Field(description="Executable to run")
    args: list[str] = Field(default_factory=list, description="Arguments, in order")
    env: list[dict[str, str]] = Field(
        default_factory=list,
        description="Extra environment entries, each with 'name' and 'value'",
    )
    interactive: bool = Field(
        default=False,
        description="Pass stdin/stderr through so the plugin can prompt",
    )
    install_hint: Optional[str] = Field(
        default=None,
        alias="installHint",
        description="Shown to the user when the command cannot be started",
    )


# --- Exec plugin wire format ---


class ExecInfoSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    interactive: bool


class ExecInfo(BaseModel):
    """Payload of the ``KUBERNETES_EXEC_INFO`` environment variable."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_version: str = Field(alias="apiVersion")
    kind: str = EXEC_INFO_KIND
    spec: ExecInfoSpec


class ExecCredentialStatus(BaseModel):
    """Credential material returned by the exec plugin.

    A status is usable when it carries a non-empty ``token``, or a
    non-empty client certificate *and* key. See :meth:`is_valid`.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    token: Optional[str] = None
    client_certificate_data: Optional[str] = Field(
        default=None, alias="clientCertificateData"
    )
    client_key_data: Optional[str] = Field(default=None, alias="clientKeyData")
    expiration_timestamp: Optional[datetime] = Field(
        default=None,
        alias="expirationTimestamp",
        description="When the credential expires (None = never)",
    )

    @field_validator("expiration_timestamp")
    @classmethod
    def _ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def is_valid(self) -> bool:
        """Return ``True`` if this status carries a token or a certificate/key pair."""
        if self.token:
            return True
        return bool(self.client_certificate_data) and bool(self.client_key_data)


class ExecCredential(BaseModel):
    """The document an exec plugin prints on stdout.

    ``kind`` is recorded but never checked. ``api_version`` and ``status``
    are optional at the model level so that
    :func:`~execred.auth.response.parse_exec_credential` can report a
    version mismatch or missing credential with a precise message instead
    of a generic schema error.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_version: Optional[str] = Field(default=None, alias="apiVersion")
    kind: Optional[str] = None
    status: Optional[ExecCredentialStatus] = None

    def to_wire(self) -> dict:
        """Serialise back to the camelCase JSON shape, omitting unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
