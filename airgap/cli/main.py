"""Main CLI application using Cyclopts.

Commands build their services per invocation; nothing is shared between runs.
"""

import cyclopts

from airgap import __version__
from airgap.cli.commands import bundle, checksum, config, ref

app = cyclopts.App(
    name="airgap",
    help="Package container images for air-gapped hosts and load them there",
    version=__version__,
)

app.command(bundle.app, name="bundle")
app.command(checksum.app, name="checksum")
app.command(ref.app, name="ref")
app.command(config.app, name="config")
