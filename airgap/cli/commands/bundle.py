"""Bundle commands: create on the connected host, load and inspect on the isolated one."""

import asyncio
import sys
from pathlib import Path
from typing import Literal

import cyclopts
import logfire

from airgap.cli.console import get_console
from airgap.cli.util import ExitCode, abort, bootstrap, build_services
from airgap.domain.bundle.model import Compression
from airgap.domain.bundle.service import BundleInspector
from airgap.domain.reference import gather_images, load_versions_file, validate_references
from airgap.domain.shared.error import AirgapError

app = cyclopts.App(name="bundle", help="Create, load and inspect image bundles")


@app.command
def create(
    output: Path,
    *images: str,
    compression: Compression | None = None,
    versions_file: Path | None = None,
    overwrite: bool = False,
    package: bool | None = None,
    runtime: Literal["auto", "docker", "podman"] | None = None,
    concurrency: int | None = None,
) -> None:
    """Pull images and package them into a bundle directory.

    Args:
        output: Bundle directory to create.
        images: Image references (repo[:tag][@sha256:...]).
        compression: none, gzip or zstd. Defaults to AIRGAP_COMPRESSION (gzip).
        versions_file: Pin file whose *_IMAGE entries are bundled too.
        overwrite: Replace an existing bundle in OUTPUT.
        package: Also write OUTPUT.tar.gz and its .sha256 next to OUTPUT for transfer.
        runtime: Container runtime to use. Defaults to AIRGAP_RUNTIME (auto).
        concurrency: Number of parallel pulls.
    """
    config = bootstrap()
    console = get_console()
    try:
        settings = config.bundle_settings(
            compression=compression,
            versions_file=versions_file,
            overwrite=overwrite,
            pull_concurrency=concurrency,
            package=package,
        )
        pins = load_versions_file(settings.versions_file) if settings.versions_file else None
        refs = gather_images(validate_references(images), pins)
        services = build_services(config, runtime)
        with logfire.span("bundle create {output}", output=str(output), images=len(refs)):
            with console.status(f"Bundling {len(refs)} image(s)..."):
                manifest = asyncio.run(services.composer.compose(output, refs, settings))
            if settings.package:
                with console.status(f"Packing {output}..."):
                    tarball = asyncio.run(
                        services.composer.package(output, overwrite=settings.overwrite)
                    )
    except AirgapError as e:
        abort(e)

    console.success(f"Bundle written to {output}")
    console.table(
        [{"n": i, "image": image} for i, image in enumerate(manifest.images, 1)],
        [("n", "#"), ("image", "Image")],
    )
    console.info(f"Archive {manifest.archive} ({manifest.compression}), runtime {manifest.runtime}")
    if settings.package:
        console.success(f"Transfer {tarball} and {tarball}.sha256 to the target host")


@app.command
def load(
    path: Path,
    /,
    *,
    verify_after_load: bool | None = None,
    require_checksum: bool | None = None,
    runtime: Literal["auto", "docker", "podman"] | None = None,
) -> None:
    """Verify a bundle (or bare archive) and load its images.

    Args:
        path: Bundle directory or archive file.
        verify_after_load: List runtime images afterwards. Defaults to AIRGAP_VERIFY_AFTER_LOAD.
        require_checksum: Refuse to load when the checksum record is missing.
        runtime: Container runtime to use. Defaults to AIRGAP_RUNTIME (auto).
    """
    config = bootstrap()
    console = get_console()
    try:
        settings = config.bundle_settings(
            verify_after_load=verify_after_load,
            require_checksum=require_checksum,
        )
        services = build_services(config, runtime)
        with logfire.span("bundle load {path}", path=str(path)):
            with console.status(f"Loading {path}..."):
                result = asyncio.run(services.loader.load(path, settings))
    except AirgapError as e:
        abort(e)

    if not result.checksum_verified:
        console.warning(f"{result.archive.name} was loaded WITHOUT checksum verification")
    console.success(f"Loaded {result.archive.name}")
    if result.images:
        console.table([{"image": image} for image in result.images], [("image", "Runtime images")])


@app.command
def inspect(path: Path, /) -> None:
    """Audit a bundle directory without loading it.

    Checks the manifest, archive checksum, required files and looks for
    files that should never be shipped (keys, editor backups).

    Args:
        path: Bundle directory.
    """
    bootstrap()
    console = get_console()
    if not path.is_dir():
        console.error(f"{path} is not a directory")
        sys.exit(ExitCode.IO_ERROR)

    report = BundleInspector().inspect(path)
    console.inspection(report)
    if not report.ok:
        console.error("Bundle failed inspection")
        sys.exit(ExitCode.FAILURE)
    console.success("Bundle passed inspection")
