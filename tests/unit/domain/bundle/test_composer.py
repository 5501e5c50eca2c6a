"""Tests for BundleComposer."""

import json
import os
import stat
import tarfile

import pytest

from airgap import __version__
from airgap.domain.bundle.model import BundleManifest, BundleSettings, Compression
from airgap.domain.bundle.service import ArchiveBuilder, BundleComposer
from airgap.domain.checksum import ChecksumEngine
from airgap.domain.reference import validate_references
from airgap.domain.shared.error import BundleExists, BundleIOError, NoImages, PullFailed
from airgap.domain.shared.retry import RetryPolicy
from tests.fakes import FakeCompressor, FakeRuntime, no_sleep

IMAGES = ["busybox:1.36", "registry.local:5000/team/app@sha256:" + "c" * 64]


def make_composer(runtime=None, compressor=None):
    runtime = runtime or FakeRuntime()
    builder = ArchiveBuilder(runtime, compressor or FakeCompressor(), sleep=no_sleep)
    return BundleComposer(runtime, builder)


class TestBundleComposer:
    async def test_composes_complete_bundle(self, tmp_path):
        bundle = tmp_path / "bundle"
        manifest = await make_composer().compose(
            bundle, validate_references(IMAGES), BundleSettings()
        )

        assert sorted(p.name for p in bundle.iterdir()) == [
            "README",
            "images.tar.gz",
            "images.tar.gz.sha256",
            "manifest.json",
        ]
        assert manifest.images == IMAGES
        assert manifest.archive == "images.tar.gz"
        assert manifest.compression is Compression.GZIP
        assert manifest.runtime == "docker"
        assert manifest.tool_version == __version__
        assert ChecksumEngine().verify(bundle / "images.tar.gz")

    async def test_manifest_on_disk_matches_returned(self, tmp_path):
        manifest = await make_composer().compose(
            tmp_path, validate_references(IMAGES), BundleSettings(compression=Compression.NONE)
        )
        data = json.loads((tmp_path / "manifest.json").read_text())
        assert data["schema_version"] == 1
        assert data["images"] == IMAGES
        assert data["archive"] == "images.tar"
        assert data["compression"] == "none"
        assert BundleManifest.read(tmp_path) == manifest

    async def test_readme_lists_images_and_instructions(self, tmp_path):
        await make_composer().compose(tmp_path, validate_references(IMAGES), BundleSettings())
        readme = (tmp_path / "README").read_text()
        for image in IMAGES:
            assert image in readme
        assert "sha256sum -c images.tar.gz.sha256" in readme
        assert "docker load -i images.tar.gz" in readme

    async def test_zstd_readme_mentions_decompression(self, tmp_path):
        await make_composer().compose(
            tmp_path, validate_references(IMAGES), BundleSettings(compression=Compression.ZSTD)
        )
        readme = (tmp_path / "README").read_text()
        assert "zstd -d images.tar.zst" in readme

    async def test_versions_snapshot(self, tmp_path):
        versions = tmp_path / "versions.env"
        versions.write_text("APP_IMAGE=busybox:1.36\n")
        bundle = tmp_path / "bundle"
        await make_composer().compose(
            bundle, validate_references(IMAGES), BundleSettings(versions_file=versions)
        )
        assert (bundle / "versions.env").read_text() == "APP_IMAGE=busybox:1.36\n"

    async def test_missing_versions_file_is_skipped(self, tmp_path):
        bundle = tmp_path / "bundle"
        await make_composer().compose(
            bundle,
            validate_references(IMAGES),
            BundleSettings(versions_file=tmp_path / "absent.env"),
        )
        assert not (bundle / "versions.env").exists()

    async def test_existing_empty_dir_is_used(self, tmp_path):
        await make_composer().compose(tmp_path, validate_references(IMAGES), BundleSettings())
        assert (tmp_path / "manifest.json").exists()

    async def test_non_empty_dir_refused_without_overwrite(self, tmp_path):
        (tmp_path / "manifest.json").write_text("{}")
        runtime = FakeRuntime()
        with pytest.raises(BundleExists):
            await make_composer(runtime).compose(
                tmp_path, validate_references(IMAGES), BundleSettings()
            )
        assert runtime.pull_calls == []
        assert (tmp_path / "manifest.json").read_text() == "{}"

    async def test_overwrite_replaces_previous_bundle(self, tmp_path):
        await make_composer().compose(tmp_path, validate_references(IMAGES), BundleSettings())
        await make_composer().compose(
            tmp_path,
            validate_references(IMAGES[:1]),
            BundleSettings(compression=Compression.NONE, overwrite=True),
        )
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "README",
            "images.tar",
            "images.tar.sha256",
            "manifest.json",
        ]
        assert BundleManifest.read(tmp_path).images == IMAGES[:1]

    async def test_overwrite_refuses_unknown_files(self, tmp_path):
        (tmp_path / "notes.txt").write_text("keep me")
        with pytest.raises(BundleIOError):
            await make_composer().compose(
                tmp_path, validate_references(IMAGES), BundleSettings(overwrite=True)
            )
        assert (tmp_path / "notes.txt").read_text() == "keep me"

    async def test_no_images(self, tmp_path):
        with pytest.raises(NoImages):
            await make_composer().compose(tmp_path / "bundle", [], BundleSettings())
        assert not (tmp_path / "bundle").exists()

    async def test_failure_removes_created_directory(self, tmp_path):
        runtime = FakeRuntime(fail_pulls={"busybox:1.36": -1})
        bundle = tmp_path / "bundle"
        with pytest.raises(PullFailed):
            await make_composer(runtime).compose(
                bundle,
                validate_references(IMAGES),
                BundleSettings(retry=RetryPolicy(max_attempts=2)),
            )
        assert not bundle.exists()

    async def test_failure_in_existing_dir_keeps_dir(self, tmp_path):
        runtime = FakeRuntime(fail_pulls={"busybox:1.36": -1})
        with pytest.raises(PullFailed):
            await make_composer(runtime).compose(
                tmp_path,
                validate_references(IMAGES),
                BundleSettings(retry=RetryPolicy(max_attempts=1)),
            )
        assert tmp_path.exists()
        assert list(tmp_path.iterdir()) == []

    async def test_manifest_lists_digest_of_every_other_file(self, tmp_path):
        versions = tmp_path / "pins.env"
        versions.write_text("APP_IMAGE=busybox:1.36\n")
        bundle = tmp_path / "bundle"
        manifest = await make_composer().compose(
            bundle, validate_references(IMAGES), BundleSettings(versions_file=versions)
        )
        engine = ChecksumEngine()
        assert manifest.files == {
            name: engine.compute_digest(bundle / name)
            for name in [
                "README",
                "images.tar.gz",
                "images.tar.gz.sha256",
                "versions.env",
            ]
        }
        assert BundleManifest.read(bundle).files == manifest.files

    async def test_files_readable_by_others_under_umask_022(self, tmp_path):
        previous = os.umask(0o022)
        try:
            await make_composer().compose(
                tmp_path / "bundle", validate_references(IMAGES), BundleSettings()
            )
        finally:
            os.umask(previous)
        modes = {
            p.name: stat.S_IMODE(p.stat().st_mode) for p in (tmp_path / "bundle").iterdir()
        }
        assert modes == {
            "README": 0o644,
            "images.tar.gz": 0o644,
            "images.tar.gz.sha256": 0o644,
            "manifest.json": 0o644,
        }


class TestPackage:
    async def test_tarball_next_to_bundle_with_record(self, tmp_path):
        bundle = tmp_path / "bundle"
        composer = make_composer()
        await composer.compose(bundle, validate_references(IMAGES), BundleSettings())

        tarball = await composer.package(bundle)

        assert tarball == tmp_path / "bundle.tar.gz"
        assert ChecksumEngine().verify(tarball)
        assert (tmp_path / "bundle.tar.gz.sha256").is_file()
        assert not (bundle / "bundle.tar.gz").exists()
        with tarfile.open(tarball) as tar:
            members = {m.name: m for m in tar.getmembers()}
        assert sorted(members) == [
            "bundle",
            "bundle/README",
            "bundle/images.tar.gz",
            "bundle/images.tar.gz.sha256",
            "bundle/manifest.json",
        ]
        assert {(m.uid, m.gid, m.uname) for m in members.values()} == {(0, 0, "root")}

    async def test_dest_dir(self, tmp_path):
        bundle = tmp_path / "bundle"
        out = tmp_path / "out"
        out.mkdir()
        composer = make_composer()
        await composer.compose(bundle, validate_references(IMAGES), BundleSettings())
        assert await composer.package(bundle, dest_dir=out) == out / "bundle.tar.gz"

    async def test_refuses_destination_inside_bundle(self, tmp_path):
        bundle = tmp_path / "bundle"
        composer = make_composer()
        await composer.compose(bundle, validate_references(IMAGES), BundleSettings())
        with pytest.raises(BundleIOError, match="outside the bundle"):
            await composer.package(bundle, dest_dir=bundle)
        assert sorted(p.name for p in bundle.iterdir()) == [
            "README",
            "images.tar.gz",
            "images.tar.gz.sha256",
            "manifest.json",
        ]

    async def test_existing_tarball_needs_overwrite(self, tmp_path):
        bundle = tmp_path / "bundle"
        composer = make_composer()
        await composer.compose(bundle, validate_references(IMAGES), BundleSettings())
        (tmp_path / "bundle.tar.gz").write_bytes(b"old")
        with pytest.raises(BundleIOError, match="already exists"):
            await composer.package(bundle)
        assert (tmp_path / "bundle.tar.gz").read_bytes() == b"old"

        tarball = await composer.package(bundle, overwrite=True)
        assert ChecksumEngine().verify(tarball)

    async def test_missing_bundle_dir(self, tmp_path):
        with pytest.raises(BundleIOError):
            await make_composer().package(tmp_path / "absent")
        assert list(tmp_path.iterdir()) == []
