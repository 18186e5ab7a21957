"""Shared test fixtures for execred.

Provides reusable fixtures for building exec configurations that run the
fake plugin in ``fixtures/plugins``, a scriptable in-process invoker, a
controllable clock, kubeconfig files, and the CLI runner. These fixtures
are automatically discovered by pytest and available to all test modules
without explicit imports.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import pytest
import yaml

from execred.models import ExecConfig
from execred.output import reset_output


FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_PLUGIN = FIXTURES_DIR / "plugins" / "fake_plugin.py"
API_VERSION = "client.authentication.k8s.io/v1beta1"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of config resolution."""
    for var in ["KUBECONFIG", "EXECRED_EXEC_TIMEOUT", "FAKE_API_VERSION", "FAKE_TOKEN"]:
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# Exec configuration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def plugin_config() -> Callable[..., ExecConfig]:
    """Factory for an ExecConfig that runs the fake plugin in *mode*."""

    def _make(mode: str, *args: str, env: Optional[list[dict[str, str]]] = None, **kwargs: Any) -> ExecConfig:
        return ExecConfig(
            api_version=kwargs.pop("api_version", API_VERSION),
            command=sys.executable,
            args=[str(FAKE_PLUGIN), mode, *args],
            env=env or [],
            **kwargs,
        )

    return _make


def credential_payload(
    token: Optional[str] = "tok",
    api_version: Optional[str] = API_VERSION,
    expires: Optional[datetime] = None,
    **status: Any,
) -> bytes:
    """Encode an ExecCredential document the way a plugin would print it."""
    body: dict[str, Any] = dict(status)
    if token is not None:
        body["token"] = token
    if expires is not None:
        body["expirationTimestamp"] = expires.strftime("%Y-%m-%dT%H:%M:%SZ")
    doc: dict[str, Any] = {"kind": "ExecCredential", "status": body}
    if api_version is not None:
        doc["apiVersion"] = api_version
    return json.dumps(doc).encode()


@pytest.fixture
def payload() -> Callable[..., bytes]:
    """Factory for raw plugin stdout. See :func:`credential_payload`."""
    return credential_payload


class FakeInvoker:
    """In-process ExecInvoker that replays scripted outputs.

    Each call consumes the next entry; the last entry repeats. An entry
    that is an exception is raised instead of returned.
    """

    def __init__(self, *outputs: Any) -> None:
        self.outputs = list(outputs)
        self.calls: list[dict[str, Any]] = []

    def invoke(self, config, timeout, interactive, cancel_event=None) -> bytes:
        self.calls.append(
            {
                "config": config,
                "timeout": timeout,
                "interactive": interactive,
                "cancel_event": cancel_event,
            }
        )
        out = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if isinstance(out, BaseException):
            raise out
        return out


@pytest.fixture
def fake_invoker() -> type[FakeInvoker]:
    return FakeInvoker


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: Optional[datetime] = None) -> None:
        self.now = now or datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Kubeconfig fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def write_kubeconfig(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a kubeconfig with one context per user exec section."""

    def _write(users: dict[str, dict[str, Any]], current: Optional[str] = None) -> Path:
        doc = {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [{"name": "c", "cluster": {"server": "https://k8s.example.com"}}],
            "users": [{"name": name, "user": {"exec": section}} for name, section in users.items()],
            "contexts": [
                {"name": f"{name}-ctx", "context": {"cluster": "c", "user": name}}
                for name in users
            ],
        }
        if current is not None:
            doc["current-context"] = current
        path = tmp_path / "kubeconfig.yaml"
        path.write_text(yaml.safe_dump(doc))
        return path

    return _write


@pytest.fixture
def fake_plugin_exec() -> Callable[..., dict[str, Any]]:
    """Factory for a kubeconfig ``exec`` section running the fake plugin."""

    def _make(mode: str, *args: str, **extra: Any) -> dict[str, Any]:
        section: dict[str, Any] = {
            "apiVersion": API_VERSION,
            "command": sys.executable,
            "args": [str(FAKE_PLUGIN), mode, *args],
        }
        section.update(extra)
        return section

    return _make


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
