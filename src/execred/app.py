"""Typer application and CLI entry point for execred.

The CLI runs a kubeconfig user's exec plugin through
:class:`~execred.auth.exec_provider.ExecTokenProvider`, the same way an API
client would, so plugin authors and operators can see exactly what the
client sees:

    execred get-token --user sso          # validated ExecCredential JSON
    execred get-token --user sso --header # Authorization header line
    execred exec-info --user sso          # what would be run, without running it

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.

See Also:
    :mod:`execred.config`: Kubeconfig and timeout resolution.
    :mod:`execred.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
from typing import Any, Optional

import typer

from execred import __version__
from execred.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INVALID_USAGE


app = typer.Typer(
    name="execred",
    help="Obtain API credentials from Kubernetes-style exec plugins.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"execred {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~execred.output.OutputManager` and, with
    ``--verbose``, routes library log records to stderr.
    """
    from execred.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(
        OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    )
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


_kubeconfig_option = typer.Option(
    None, "--kubeconfig", help="Kubeconfig file (default: $KUBECONFIG or ~/.kube/config)."
)
_user_option = typer.Option(None, "--user", help="Kubeconfig user whose exec plugin to run.")
_context_option = typer.Option(None, "--context", help="Kubeconfig context to take the user from.")


def _load_exec_config(kubeconfig: Optional[str], user: Optional[str], context: Optional[str]):
    from execred.config import get_exec_config, load_kubeconfig

    return get_exec_config(load_kubeconfig(kubeconfig), user=user, context=context)


@app.command("get-token")
def get_token(
    kubeconfig: Optional[str] = _kubeconfig_option,
    user: Optional[str] = _user_option,
    context: Optional[str] = _context_option,
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Plugin timeout in seconds (default: $EXECRED_EXEC_TIMEOUT or 120)."
    ),
    interactive: Optional[bool] = typer.Option(
        None,
        "--interactive/--no-interactive",
        help="Let the plugin prompt on this terminal (default: from kubeconfig).",
    ),
    header: bool = typer.Option(
        False, "--header", help="Print an Authorization header line instead of JSON."
    ),
) -> None:
    """Run the exec plugin and print the credential it returned.

    Raises:
        typer.Exit: With the error's exit code when configuration, plugin
            execution, or output validation fails.
    """
    from execred.auth import ExecTokenProvider
    from execred.config import resolve_execution_timeout
    from execred.exceptions import ExecredError
    from execred.output import debug, error, format_document, info, print_data, warning

    try:
        exec_config = _load_exec_config(kubeconfig, user, context)
        provider = ExecTokenProvider(
            exec_config,
            execution_timeout=resolve_execution_timeout(timeout),
            interactive=interactive,
        )
        debug(f"Running {exec_config.command} (apiVersion {exec_config.api_version})")
        result = provider.get_credential()
    except ExecredError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if result.expires_at is None:
        info("Credential has no expiry.")
    else:
        info(f"Credential expires at {result.expires_at.isoformat()}.")

    if header:
        if not result.token:
            error("The plugin returned client certificate data but no bearer token.")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        if result.has_client_certificate:
            warning("The plugin also returned client certificate data; it is not part of the header.")
        print_data(f"Authorization: {result.headers['Authorization']}")
        return

    format_document(provider.cached.to_wire())


@app.command("exec-info")
def exec_info(
    kubeconfig: Optional[str] = _kubeconfig_option,
    user: Optional[str] = _user_option,
    context: Optional[str] = _context_option,
) -> None:
    """Show how the exec plugin would be run, without running it.

    Environment values are not printed; only their names are.
    """
    from execred.auth import EXEC_INFO_ENV, build_process_spec
    from execred.exceptions import ExecredError
    from execred.output import error, format_document

    try:
        exec_config = _load_exec_config(kubeconfig, user, context)
        spec = build_process_spec(
            exec_config,
            capture_stderr=not exec_config.interactive,
            interactive=exec_config.interactive,
        )
    except ExecredError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    document: dict[str, Any] = {
        "command": spec.program,
        "arguments": spec.arguments,
        "interactive": spec.interactive,
        "env": sorted(name for name in spec.env_overlay if name != EXEC_INFO_ENV),
        EXEC_INFO_ENV: spec.exec_info,
    }
    format_document(document)


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """CLI entry point invoked by the ``execred`` console script.

    Unhandled :class:`~execred.exceptions.ExecredError` instances cause a
    clean exit with the error's ``exit_code``; anything else exits with
    :data:`~execred.exit_codes.EXIT_GENERIC_FAILURE`.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from execred.exceptions import ExecredError
        from execred.output import error

        if isinstance(exc, ExecredError):
            error(str(exc))
            sys.exit(exc.exit_code)
        error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
