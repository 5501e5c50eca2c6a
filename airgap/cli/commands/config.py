"""Config commands."""

import json

import cyclopts

from airgap.cli.console import get_console
from airgap.cli.util import bootstrap

app = cyclopts.App(name="config", help="Inspect airgap configuration")


@app.command
def show() -> None:
    """Show current effective config (defaults, YAML file, .env and AIRGAP_* variables)."""
    config = bootstrap()
    get_console().print_json(json.dumps(config.model_dump(mode="json"), default=str))
