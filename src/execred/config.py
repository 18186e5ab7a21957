"""Configuration sources: kubeconfig exec sections and runtime settings.

This module supplies the :class:`~execred.models.ExecConfig` that a
:class:`~execred.auth.exec_provider.ExecTokenProvider` runs, plus the
execution timeout:

* **Kubeconfig location** -- ``$KUBECONFIG`` (first entry of the
  path list) or ``~/.kube/config``. See :func:`default_kubeconfig_path`.
* **Kubeconfig loading** -- :func:`load_kubeconfig` parses YAML (and
  therefore JSON) with :func:`yaml.safe_load`.
* **User resolution** -- :func:`get_exec_config` picks a user by name, by
  context, or through ``current-context`` and converts its ``exec``
  section.
* **Precedence resolution** -- :func:`resolve_execution_timeout` merges the
  CLI flag, the ``EXECRED_EXEC_TIMEOUT`` environment variable, and the
  built-in default.

Every failure surfaces as :class:`~execred.exceptions.ConfigurationError`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from execred.auth.process import DEFAULT_EXECUTION_TIMEOUT, host_is_interactive
from execred.exceptions import ConfigurationError
from execred.models import ExecConfig

_KUBECONFIG_ENV = "KUBECONFIG"
_TIMEOUT_ENV = "EXECRED_EXEC_TIMEOUT"


# --- Kubeconfig ---


def default_kubeconfig_path() -> Path:
    """Return the kubeconfig path from ``$KUBECONFIG`` or ``~/.kube/config``.

    ``$KUBECONFIG`` may hold several paths separated by :data:`os.pathsep`;
    only the first non-empty one is used.
    """
    env_value = os.environ.get(_KUBECONFIG_ENV, "")
    for candidate in env_value.split(os.pathsep):
        if candidate:
            return Path(candidate).expanduser()
    return Path.home() / ".kube" / "config"


def load_kubeconfig(path: Optional[str | Path] = None) -> dict[str, Any]:
    """Load and parse a kubeconfig file.

    Args:
        path: File to read. Defaults to :func:`default_kubeconfig_path`.

    Returns:
        The parsed document as a dictionary.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not valid
            YAML, or not a mapping.
    """
    file_path = Path(path).expanduser() if path is not None else default_kubeconfig_path()
    if not file_path.is_file():
        raise ConfigurationError(f"Kubeconfig not found at {file_path}")
    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Invalid kubeconfig at {file_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid kubeconfig at {file_path}: expected a mapping")
    return data


def _find_named(items: Any, name: str, section: str) -> dict[str, Any]:
    """Return the inner ``section`` mapping of the entry called *name*."""
    for item in items or []:
        if isinstance(item, dict) and item.get("name") == name:
            return item.get(section) or {}
    raise ConfigurationError(f"{section.capitalize()} '{name}' not found in kubeconfig")


def _resolve_user_name(
    kubeconfig: dict[str, Any],
    user: Optional[str],
    context: Optional[str],
) -> str:
    if user:
        return user
    context_name = context or kubeconfig.get("current-context")
    if not context_name:
        raise ConfigurationError(
            "No user selected: pass a user or context, or set current-context"
        )
    ctx = _find_named(kubeconfig.get("contexts"), context_name, "context")
    user_name = ctx.get("user")
    if not user_name:
        raise ConfigurationError(f"Context '{context_name}' does not name a user")
    return user_name


def _interactive_from_mode(mode: Optional[str]) -> bool:
    """Map a kubeconfig ``interactiveMode`` to a plain flag."""
    if mode is None or mode == "Never":
        return False
    if mode == "Always":
        return True
    if mode == "IfAvailable":
        return host_is_interactive()
    raise ConfigurationError(
        f"Invalid interactiveMode '{mode}': expected Never, IfAvailable, or Always"
    )


def get_exec_config(
    kubeconfig: dict[str, Any],
    user: Optional[str] = None,
    context: Optional[str] = None,
) -> ExecConfig:
    """Build an :class:`~execred.models.ExecConfig` from a kubeconfig user entry.

    Precedence for choosing the user (high to low):
        1. ``user`` argument
        2. the user of the ``context`` argument
        3. the user of ``current-context``

    Args:
        kubeconfig: A document returned by :func:`load_kubeconfig`.
        user: Explicit user name.
        context: Explicit context name.

    Returns:
        The validated exec configuration.

    Raises:
        ConfigurationError: If the user, its context, or its ``exec``
            section cannot be found, or the section is invalid.
    """
    user_name = _resolve_user_name(kubeconfig, user, context)
    user_entry = _find_named(kubeconfig.get("users"), user_name, "user")
    exec_section = user_entry.get("exec")
    if not isinstance(exec_section, dict):
        raise ConfigurationError(f"User '{user_name}' has no exec section")

    data = dict(exec_section)
    mode = data.pop("interactiveMode", None)
    data.setdefault("interactive", _interactive_from_mode(mode))
    # Accepted by client-go but meaningless without cluster info.
    data.pop("provideClusterInfo", None)
    data["env"] = data.get("env") or []
    data["args"] = data.get("args") or []
    try:
        return ExecConfig.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid exec section for user '{user_name}': {exc}") from exc


# --- Precedence resolution ---


def resolve_execution_timeout(cli_value: Optional[float] = None) -> float:
    """Resolve the plugin execution timeout in seconds.

    Precedence (high to low):
        1. CLI flag (``cli_value``)
        2. Environment variable (``EXECRED_EXEC_TIMEOUT``)
        3. :data:`~execred.auth.process.DEFAULT_EXECUTION_TIMEOUT`

    Raises:
        ConfigurationError: If the resolved value is not a positive number.
    """
    if cli_value is not None:
        value: Any = cli_value
        origin = "--timeout"
    else:
        raw = os.environ.get(_TIMEOUT_ENV, "").strip()
        if not raw:
            return DEFAULT_EXECUTION_TIMEOUT
        value = raw
        origin = _TIMEOUT_ENV
    try:
        seconds = float(value)
    except ValueError as exc:
        raise ConfigurationError(f"{origin} must be a number of seconds, got {value!r}") from exc
    if seconds <= 0:
        raise ConfigurationError(f"{origin} must be positive, got {seconds}")
    return seconds
