"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~execred.exceptions.ExecredError` subclass.
Shell wrappers can inspect the exit code to tell a broken kubeconfig from a
failing plugin without parsing stderr.

Example::

    $ execred get-token --user sso
    $ echo $?
    4   # EXIT_EXECUTION_FAILURE -- the plugin exited non-zero
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_CONFIGURATION_ERROR = 3
"""The exec configuration or kubeconfig is invalid."""

EXIT_EXECUTION_FAILURE = 4
"""The exec plugin could not be started, timed out, or exited non-zero."""

EXIT_VALIDATION_FAILURE = 5
"""The exec plugin printed output that is not a usable ExecCredential."""
