"""CLI utilities (exit codes, configuration and service wiring)."""

from airgap.cli.util.exit_codes import ExitCode, exit_code_for
from airgap.cli.util.wiring import Services, abort, bootstrap, build_services

__all__ = [
    "ExitCode",
    "Services",
    "abort",
    "bootstrap",
    "build_services",
    "exit_code_for",
]
