"""Launching exec plugins as child processes.

This module turns an :class:`~execred.models.ExecConfig` into a running
plugin process and hands back whatever the plugin printed on stdout. It
knows nothing about the ExecCredential schema; that is the job of
:mod:`execred.auth.response`.

The pieces are:

- :func:`build_process_spec` -- a pure function that produces a
  :class:`ProcessSpec` (program, arguments, environment overlay) and
  rejects malformed environment entries before anything is started.
- :class:`ExecInvoker` -- the narrow protocol the provider depends on.
  Tests substitute fakes that never spawn a process.
- :class:`SubprocessInvoker` -- the real implementation built on
  :class:`subprocess.Popen`, with a hard wall-clock timeout and a
  cooperative cancel signal.

Environment contract: the child always receives ``KUBERNETES_EXEC_INFO``
containing ``{"apiVersion": ..., "kind": "ExecCredentials",
"spec": {"interactive": ...}}`` as compact JSON, followed by every
configured environment entry (overriding inherited values of the same name).
"""

from __future__ import annotations

import json
import logging
import os
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import IO, Callable, Mapping, Optional, Protocol

from execred.exceptions import ConfigurationError, ExecutionError, ExecutionFailure
from execred.models import ExecConfig, ExecInfo, ExecInfoSpec

logger = logging.getLogger(__name__)

EXEC_INFO_ENV = "KUBERNETES_EXEC_INFO"
"""Environment variable carrying the JSON-encoded :class:`~execred.models.ExecInfo`."""

DEFAULT_EXECUTION_TIMEOUT = 120.0
"""Default wall-clock bound on a plugin run, in seconds."""

KILL_GRACE_PERIOD = 5.0
"""How long to wait for a killed plugin to be reaped, in seconds."""

_POLL_INTERVAL = 0.05


def host_is_interactive() -> bool:
    """Return ``True`` when this process is attached to an interactive terminal."""
    stdin = sys.stdin
    if stdin is None:
        return False
    try:
        return stdin.isatty()
    except ValueError:
        # Closed stdin.
        return False


@dataclass(frozen=True)
class ProcessSpec:
    """Everything needed to start one plugin run.

    Attributes:
        program: Executable to run.
        args: Arguments in order.
        env_overlay: Variables layered over the inherited environment.
        capture_stderr: Whether stderr is piped and collected for error
            messages. ``False`` for interactive runs.
        interactive: Whether stdin is passed through to the plugin.
    """

    program: str
    args: tuple[str, ...] = ()
    env_overlay: Mapping[str, str] = field(default_factory=dict)
    capture_stderr: bool = True
    interactive: bool = False

    @property
    def arguments(self) -> str:
        """The arguments joined by single spaces, as shown to users."""
        return " ".join(self.args)

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    @property
    def exec_info(self) -> dict:
        """The decoded ``KUBERNETES_EXEC_INFO`` payload."""
        return json.loads(self.env_overlay[EXEC_INFO_ENV])

    def environment(self, base: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Return the full child environment: *base* (default ``os.environ``) plus the overlay."""
        env = dict(os.environ if base is None else base)
        env.update(self.env_overlay)
        return env


def encode_exec_info(api_version: str, interactive: bool) -> str:
    """Encode the ``KUBERNETES_EXEC_INFO`` payload as compact JSON."""
    info = ExecInfo(api_version=api_version, spec=ExecInfoSpec(interactive=interactive))
    return json.dumps(info.model_dump(by_alias=True), separators=(",", ":"))


def build_process_spec(
    config: ExecConfig,
    capture_stderr: bool = True,
    interactive: bool = False,
) -> ProcessSpec:
    """Build the child-process description for *config*.

    Args:
        config: The exec configuration.
        capture_stderr: Pipe and collect stderr. Pass ``False`` for
            interactive runs so prompts reach the user.
        interactive: Pass stdin through to the plugin.

    Returns:
        A :class:`ProcessSpec`. Equal configurations give equal specs.

    Raises:
        ConfigurationError: If an environment entry lacks ``name`` or
            ``value``. No process is started.
    """
    overlay: dict[str, str] = {
        EXEC_INFO_ENV: encode_exec_info(config.api_version, host_is_interactive()),
    }
    for entry in config.env:
        name = entry.get("name")
        value = entry.get("value")
        if not name or value is None:
            bad = ",".join(f"{k}={v}" for k, v in entry.items())
            raise ConfigurationError(f"Invalid environment variable defined: {bad}")
        overlay[name] = value

    return ProcessSpec(
        program=config.command,
        args=tuple(config.args),
        env_overlay=overlay,
        capture_stderr=capture_stderr,
        interactive=interactive,
    )


class ExecInvoker(Protocol):
    """Runs an exec plugin and returns its raw stdout.

    Implementations raise :class:`~execred.exceptions.ExecutionError` for
    any failure to run the plugin to a clean exit, and
    :class:`~execred.exceptions.ConfigurationError` for configuration that
    cannot be turned into a process.
    """

    def invoke(
        self,
        config: ExecConfig,
        timeout: float,
        interactive: bool,
        cancel_event: Optional[threading.Event] = None,
    ) -> bytes:
        ...


def _pump(stream: IO[bytes], sink: Callable[[bytes], None]) -> threading.Thread:
    """Drain *stream* line by line into *sink* on a daemon thread."""

    def _run() -> None:
        with stream:
            for chunk in iter(stream.readline, b""):
                sink(chunk)

    thread = threading.Thread(target=_run, daemon=True)
    thread.start()
    return thread


class SubprocessInvoker:
    """Run exec plugins with :class:`subprocess.Popen`.

    Stdout is always captured. Stderr is captured only for non-interactive
    runs, line by line as it arrives, so that a timeout error can still
    show what the plugin said before it hung.

    Args:
        poll_interval: How often, in seconds, the wait loop checks the
            cancel signal.

    Example::

        invoker = SubprocessInvoker()
        raw = invoker.invoke(config, timeout=30.0, interactive=False)
    """

    def __init__(self, poll_interval: float = _POLL_INTERVAL) -> None:
        self._poll_interval = poll_interval

    def invoke(
        self,
        config: ExecConfig,
        timeout: float = DEFAULT_EXECUTION_TIMEOUT,
        interactive: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> bytes:
        """Run the plugin described by *config* and return its stdout.

        Args:
            config: The exec configuration.
            timeout: Wall-clock bound on the run, in seconds. Starting the
                process is not covered by it.
            interactive: Pass stdin and stderr through to the terminal.
            cancel_event: When set, the plugin is killed and the run fails.

        Returns:
            Everything the plugin wrote to stdout.

        Raises:
            ConfigurationError: If an environment entry is malformed.
            ExecutionError: If the plugin cannot be started, times out, is
                cancelled, or exits non-zero.
        """
        spec = build_process_spec(config, capture_stderr=not interactive, interactive=interactive)
        return self.run(spec, timeout, cancel_event, install_hint=config.install_hint)

    def run(
        self,
        spec: ProcessSpec,
        timeout: float = DEFAULT_EXECUTION_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
        install_hint: Optional[str] = None,
    ) -> bytes:
        """Run a prepared :class:`ProcessSpec`. See :meth:`invoke`.

        Non-interactive plugins run in their own process group, so a timeout
        or cancellation also kills any helper the plugin left behind holding
        its stdout open.
        """
        own_group = not spec.interactive and os.name == "posix"
        logger.debug("Starting exec plugin %s %s", spec.program, spec.arguments)
        try:
            proc = subprocess.Popen(
                spec.argv,
                env=spec.environment(),
                stdin=None if spec.interactive else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE if spec.capture_stderr else None,
                start_new_session=own_group,
            )
        except OSError as exc:
            message = f"external exec failed to start {spec.program!r}: {exc}"
            if install_hint:
                message += f"\n\n{install_hint}"
            raise ExecutionError(message, reason=ExecutionFailure.START) from exc

        stdout_chunks: list[bytes] = []
        stderr_lines: list[str] = []
        readers = [_pump(proc.stdout, stdout_chunks.append)]
        if spec.capture_stderr:
            readers.append(
                _pump(
                    proc.stderr,
                    lambda line: stderr_lines.append(line.decode("utf-8", errors="replace")),
                )
            )

        deadline = time.monotonic() + timeout
        try:
            returncode = self._wait(proc, deadline, cancel_event)
            # The plugin may have exited while a child of its own still holds the pipes.
            self._drain(readers, deadline, cancel_event)
        except _Interrupted as interrupted:
            alive = self._kill(proc, own_group)
            for reader in readers:
                reader.join(KILL_GRACE_PERIOD)
            stderr = "".join(stderr_lines)
            if interrupted.reason is ExecutionFailure.TIMEOUT:
                message = f"external exec failed due to timeout after {timeout}s. stderr:\n{stderr}"
            else:
                message = f"external exec was cancelled. stderr:\n{stderr}"
            if alive:
                message += f"\n(process {proc.pid} did not exit after kill)"
            raise ExecutionError(message, reason=interrupted.reason, stderr=stderr) from None
        except BaseException:
            self._kill(proc, own_group)
            raise

        stderr = "".join(stderr_lines)
        logger.debug("Exec plugin %s exited with code %d", spec.program, returncode)

        if returncode != 0:
            raise ExecutionError(
                f"external exec failed with exit code {returncode}. stderr:\n{stderr}",
                reason=ExecutionFailure.NON_ZERO_EXIT,
                returncode=returncode,
                stderr=stderr,
            )
        return b"".join(stdout_chunks)

    def _wait(
        self,
        proc: subprocess.Popen,
        deadline: float,
        cancel_event: Optional[threading.Event],
    ) -> int:
        while True:
            remaining = _time_left(deadline, cancel_event)
            try:
                return proc.wait(timeout=min(remaining, self._poll_interval))
            except subprocess.TimeoutExpired:
                continue

    def _drain(
        self,
        readers: list[threading.Thread],
        deadline: float,
        cancel_event: Optional[threading.Event],
    ) -> None:
        for reader in readers:
            while reader.is_alive():
                remaining = _time_left(deadline, cancel_event)
                reader.join(min(remaining, self._poll_interval))

    @staticmethod
    def _kill(proc: subprocess.Popen, own_group: bool = False) -> bool:
        """Kill *proc* (and its process group) and try to reap it.

        Returns ``True`` if it is still running.
        """
        try:
            if own_group:
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            # Already gone, along with the rest of its group.
            pass
        except OSError as exc:
            logger.warning("Failed to kill exec plugin (pid %d): %s", proc.pid, exc)
        try:
            proc.wait(timeout=KILL_GRACE_PERIOD)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Exec plugin (pid %d) still running %.0fs after kill",
                proc.pid,
                KILL_GRACE_PERIOD,
            )
            return True
        return False


def _time_left(deadline: float, cancel_event: Optional[threading.Event]) -> float:
    """Return the seconds left before *deadline*, or raise :class:`_Interrupted`."""
    if cancel_event is not None and cancel_event.is_set():
        raise _Interrupted(ExecutionFailure.CANCELLED)
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise _Interrupted(ExecutionFailure.TIMEOUT)
    return remaining


class _Interrupted(Exception):
    def __init__(self, reason: ExecutionFailure) -> None:
        super().__init__(reason.value)
        self.reason = reason
