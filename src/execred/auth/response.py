"""Validation of exec plugin output.

:func:`parse_exec_credential` is the only entry point. It decodes the raw
stdout of a plugin run and enforces, in order:

1. the payload is a JSON document matching :class:`~execred.models.ExecCredential`;
2. its ``apiVersion`` is exactly the configured one;
3. its ``status`` carries a token or a client certificate/key pair.

Each failure raises :class:`~execred.exceptions.ValidationError` with the
matching :class:`~execred.exceptions.ValidationFailure` reason.
"""

from __future__ import annotations

import json

from pydantic import ValidationError as PydanticValidationError

from execred.exceptions import ValidationError, ValidationFailure
from execred.models import ExecCredential


def parse_exec_credential(raw: bytes | str, expected_api_version: str) -> ExecCredential:
    """Decode and validate plugin output.

    Args:
        raw: Everything the plugin wrote to stdout.
        expected_api_version: The ``apiVersion`` from the exec configuration.

    Returns:
        The validated, immutable :class:`~execred.models.ExecCredential`.

    Raises:
        ValidationError: If the output is malformed, reports a different
            ``apiVersion``, or carries neither a token nor a
            certificate/key pair.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError(
            f"external exec failed due to failed deserialization process: {exc}",
            reason=ValidationFailure.MALFORMED,
            expected=expected_api_version,
        ) from exc

    credential = None
    if data is not None:
        try:
            credential = ExecCredential.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"external exec failed due to failed deserialization process: {exc}",
                reason=ValidationFailure.MALFORMED,
                expected=expected_api_version,
            ) from exc

    actual = credential.api_version if credential is not None else None
    if credential is None or actual != expected_api_version:
        raise ValidationError(
            f"external exec failed because api version {actual} "
            f"does not match {expected_api_version}",
            reason=ValidationFailure.VERSION_MISMATCH,
            expected=expected_api_version,
            actual=actual,
        )

    if credential.status is None or not credential.status.is_valid():
        raise ValidationError(
            "external exec failed missing token or clientCertificateData "
            "field in plugin output",
            reason=ValidationFailure.MISSING_CREDENTIALS,
            expected=expected_api_version,
            actual=actual,
        )

    return credential
