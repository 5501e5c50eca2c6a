"""Process exit codes for the `airgap` CLI.

Scripts driving the CLI branch on these, so the values are stable.
"""

from enum import IntEnum

from airgap.domain.shared.error import (
    AirgapError,
    BundleExists,
    BundleIOError,
    ConfigError,
    IntegrityError,
    InvalidReference,
    ManifestError,
    MissingDependency,
    MissingRecord,
    NoImages,
    RetryExhausted,
)


class ExitCode(IntEnum):
    OK = 0
    FAILURE = 1  # generic failure, checksum mismatch
    MISSING_RECORD = 2
    INVALID_REFERENCE = 3
    PULL_FAILED = 4
    MISSING_DEPENDENCY = 5
    IO_ERROR = 6
    INTEGRITY = 7
    BUNDLE = 8  # manifest or bundle layout problem
    CONFIG = 9  # invalid configuration or option values


# Most specific first; the first isinstance match wins.
_ERROR_CODES: tuple[tuple[type[AirgapError], ExitCode], ...] = (
    (MissingRecord, ExitCode.MISSING_RECORD),
    (InvalidReference, ExitCode.INVALID_REFERENCE),
    (NoImages, ExitCode.INVALID_REFERENCE),
    (RetryExhausted, ExitCode.PULL_FAILED),
    (MissingDependency, ExitCode.MISSING_DEPENDENCY),
    (BundleIOError, ExitCode.IO_ERROR),
    (IntegrityError, ExitCode.INTEGRITY),
    (ManifestError, ExitCode.BUNDLE),
    (BundleExists, ExitCode.BUNDLE),
    (ConfigError, ExitCode.CONFIG),
)


def exit_code_for(error: BaseException) -> ExitCode:
    """Map an error raised by a command to its process exit code."""
    for error_type, code in _ERROR_CODES:
        if isinstance(error, error_type):
            return code
    return ExitCode.FAILURE
