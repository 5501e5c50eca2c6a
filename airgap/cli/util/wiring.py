"""Startup and object wiring shared by the CLI commands."""

import sys
from dataclasses import dataclass
from typing import NoReturn

import logfire

from airgap.cli.console import get_console
from airgap.cli.util.exit_codes import ExitCode, exit_code_for
from airgap.config import Config, configure_logging, load_config
from airgap.domain.bundle.service import ArchiveBuilder, BundleComposer, BundleLoader
from airgap.domain.checksum import ChecksumEngine
from airgap.domain.shared.error import AirgapError, ConfigError
from airgap.infrastructure.compression import ToolCompressor
from airgap.infrastructure.oci.runtime import RuntimeChoice, detect_runtime

_HINTS: dict[ExitCode, str] = {
    ExitCode.MISSING_RECORD: "Re-create the record with 'airgap checksum write' on the build host",
    ExitCode.MISSING_DEPENDENCY: "Install the missing tool on this host and retry",
    ExitCode.INTEGRITY: "Do not load this bundle; transfer it again from the build host",
    ExitCode.PULL_FAILED: "Check registry connectivity and credentials, then retry",
    ExitCode.CONFIG: "Check AIRGAP_* variables, the config file and command options",
}


def bootstrap() -> Config:
    """Load configuration and set up logging; call first in every command.

    Exits with ExitCode.CONFIG when the configuration is invalid.
    """
    logfire.configure(send_to_logfire="if-token-present", console=False, service_name="airgap")
    try:
        config = load_config()
    except ConfigError as e:
        abort(e)
    configure_logging(config.logging)
    return config


@dataclass
class Services:
    checksums: ChecksumEngine
    composer: BundleComposer
    loader: BundleLoader


def build_services(config: Config, runtime: RuntimeChoice | None = None) -> Services:
    """Wire adapters into the bundle services.

    Raises:
        MissingDependency: if no container runtime is installed.
    """
    engine = detect_runtime(runtime or config.runtime)
    compressor = ToolCompressor()
    checksums = ChecksumEngine()
    builder = ArchiveBuilder(engine, compressor, checksums)
    return Services(
        checksums=checksums,
        composer=BundleComposer(engine, builder, checksums),
        loader=BundleLoader(engine, compressor, checksums),
    )


def abort(error: AirgapError) -> NoReturn:
    """Report `error` on stderr and exit with its mapped code."""
    code = exit_code_for(error)
    hint = _HINTS.get(code)
    logfire.error("Command failed: {error}", error=error.message, code=error.code, exit_code=int(code))
    get_console().error(error.message, hint=hint)
    sys.exit(code)
