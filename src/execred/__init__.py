"""execred -- exec-plugin credential provider for Kubernetes-style API clients.

This package obtains short-lived bearer tokens (or client TLS material) by
running an external, user-configured executable, validating the
``ExecCredential`` JSON it prints, and caching the result until it nears
expiry.

Typical usage::

    from execred.auth import ExecTokenProvider
    from execred.models import ExecConfig

    provider = ExecTokenProvider(
        ExecConfig(apiVersion="client.authentication.k8s.io/v1", command="my-plugin")
    )
    headers = provider.get_credential().headers

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for exec configuration and plugin output.
    config: Kubeconfig loading and timeout resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
