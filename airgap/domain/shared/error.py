"""Error hierarchy for airgap.

Error layers:
- AirgapError: Base class for all airgap errors
- DomainError: Bad input or bundle contents (references, manifests, checksums)
- InfrastructureError: Failures of the host environment (runtime, tools, filesystem)
- ConfigError: Invalid configuration (environment, config file or CLI flags)

Each concrete error maps to a distinct CLI exit code in airgap.cli.util.exit_codes.
"""

from pathlib import Path


class AirgapError(Exception):
    """Base class for all airgap errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(message)


# =============================================================================
# Domain Errors (bad input or bad bundle contents, never retried)
# =============================================================================


class DomainError(AirgapError):
    """Base class for domain errors."""


class InvalidReference(DomainError):
    """An image reference string is malformed."""

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"Invalid image reference {reference!r}: {reason}")
        self.reference = reference
        self.reason = reason


class NoImages(DomainError):
    """A bundle was requested without any images."""

    def __init__(self) -> None:
        super().__init__("No images provided; nothing to bundle")


class MissingRecord(DomainError):
    """Checksum verification was requested but no record file exists."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Checksum record not found: {path}")
        self.path = path


class IntegrityError(DomainError):
    """A file does not match its checksum record."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class ManifestError(DomainError):
    """A bundle manifest is unreadable or inconsistent with the bundle."""


class UnsupportedSchema(ManifestError):
    """The manifest schema version is newer than this tool understands."""

    def __init__(self, found: int, supported: int) -> None:
        super().__init__(
            f"Bundle schema version {found} is newer than supported version {supported}"
        )
        self.found = found
        self.supported = supported


class ManifestMismatch(ManifestError):
    """The manifest disagrees with the files present in the bundle."""


class BundleExists(DomainError):
    """The target bundle directory already holds files."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Bundle directory is not empty: {path}")
        self.path = path


# =============================================================================
# Infrastructure Errors (host environment failures)
# =============================================================================


class InfrastructureError(AirgapError):
    """Base class for infrastructure/system errors."""


class RetryExhausted(InfrastructureError):
    """An operation kept failing until the attempt budget ran out."""

    def __init__(self, attempts: int, last_error: BaseException, what: str = "operation") -> None:
        super().__init__(f"{what} failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class PullFailed(RetryExhausted):
    """An image could not be pulled within the retry budget."""

    def __init__(self, image: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(attempts, last_error, what=f"Pull of {image}")
        self.image = image


class MissingDependency(InfrastructureError):
    """A required external tool is not installed."""

    def __init__(self, tool: str, purpose: str) -> None:
        super().__init__(f"Required tool {tool!r} not found (needed for {purpose})")
        self.tool = tool
        self.purpose = purpose


class BundleIOError(InfrastructureError):
    """Filesystem failure on a specific path."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"I/O error on {path}: {reason}")
        self.path = path
        self.reason = reason


class RuntimeCommandError(InfrastructureError):
    """An external command (container runtime, compressor) exited non-zero."""

    def __init__(self, command: list[str], returncode: int, stderr: str = "") -> None:
        detail = stderr.strip()[:500]
        super().__init__(
            f"Command {' '.join(command)!r} exited with code {returncode}"
            + (f": {detail}" if detail else "")
        )
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(AirgapError):
    """Configuration values (environment, config file, CLI flags) failed validation."""
