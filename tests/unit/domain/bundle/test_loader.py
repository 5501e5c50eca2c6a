"""Tests for BundleLoader."""

import gzip
import json

import pytest

from airgap.domain.bundle.model import BundleManifest, BundleSettings, BundleState, Compression
from airgap.domain.bundle.service import ArchiveBuilder, BundleComposer, BundleLoader
from airgap.domain.checksum import ChecksumEngine, record_path
from airgap.domain.reference import validate_references
from airgap.domain.shared.error import (
    BundleIOError,
    IntegrityError,
    ManifestError,
    ManifestMismatch,
    MissingDependency,
    MissingRecord,
    UnsupportedSchema,
)
from tests.fakes import ZSTD_MAGIC, FakeCompressor, FakeRuntime, no_sleep

IMAGES = ["busybox:1.36", "alpine:3.19"]


async def compose(bundle_dir, compression=Compression.GZIP):
    runtime = FakeRuntime()
    builder = ArchiveBuilder(runtime, FakeCompressor(), sleep=no_sleep)
    await BundleComposer(runtime, builder).compose(
        bundle_dir, validate_references(IMAGES), BundleSettings(compression=compression)
    )


def write_archive(path, images=IMAGES, *, compress=False, record=True):
    data = json.dumps({"images": images}).encode()
    path.write_bytes(gzip.compress(data) if compress else data)
    if record:
        ChecksumEngine().write_checksum_record(path)
    return path


class TestBundleLoader:
    @pytest.mark.parametrize("compression", list(Compression))
    async def test_round_trip(self, tmp_path, compression):
        await compose(tmp_path, compression)
        target = FakeRuntime()

        result = await BundleLoader(target, FakeCompressor()).load(tmp_path, BundleSettings())

        assert target.store == IMAGES
        assert result.state is BundleState.LOADED
        assert result.checksum_verified is True
        assert result.compression is compression
        assert result.manifest is not None
        assert result.manifest.images == IMAGES

    async def test_busybox_end_to_end_without_compression(self, tmp_path):
        """Build busybox by digest with no compression, verify, load, and list it back."""
        busybox = "busybox@sha256:" + "e" * 64
        source = FakeRuntime()
        builder = ArchiveBuilder(source, FakeCompressor(), sleep=no_sleep)
        await BundleComposer(source, builder).compose(
            tmp_path,
            validate_references([busybox]),
            BundleSettings(compression=Compression.NONE),
        )

        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "README",
            "images.tar",
            "images.tar.sha256",
            "manifest.json",
        ]
        data = json.loads((tmp_path / "manifest.json").read_text())
        assert data["images"] == [busybox]
        assert data["compression"] == "none"
        assert data["archive"] == "images.tar"
        assert source.save_calls == [[busybox]]
        assert ChecksumEngine().verify(tmp_path / "images.tar")

        target = FakeRuntime()
        result = await BundleLoader(target, FakeCompressor()).load(
            tmp_path, BundleSettings(verify_after_load=True)
        )
        assert result.state is BundleState.LOADED
        assert result.checksum_verified is True
        assert result.compression is Compression.NONE
        assert target.loaded_archives == [tmp_path / "images.tar"]
        assert result.images == [busybox]

    async def test_gzip_is_passed_to_runtime_directly(self, tmp_path):
        await compose(tmp_path, Compression.GZIP)
        target, compressor = FakeRuntime(), FakeCompressor()
        await BundleLoader(target, compressor).load(tmp_path, BundleSettings())
        assert target.loaded_archives == [tmp_path / "images.tar.gz"]
        assert compressor.calls == []

    async def test_zstd_is_decompressed_to_temp_outside_bundle(self, tmp_path):
        bundle = tmp_path / "bundle"
        await compose(bundle, Compression.ZSTD)
        target, compressor = FakeRuntime(), FakeCompressor()
        await BundleLoader(target, compressor).load(bundle, BundleSettings())

        assert compressor.calls == [("decompress", Compression.ZSTD)]
        (loaded,) = target.loaded_archives
        assert loaded.parent != bundle
        assert not loaded.exists()
        assert sorted(p.name for p in bundle.iterdir()) == [
            "README",
            "images.tar.zst",
            "images.tar.zst.sha256",
            "manifest.json",
        ]

    async def test_zstd_missing_tool(self, tmp_path):
        await compose(tmp_path, Compression.ZSTD)
        target = FakeRuntime()
        with pytest.raises(MissingDependency):
            await BundleLoader(target, FakeCompressor(missing={Compression.ZSTD})).load(
                tmp_path, BundleSettings()
            )
        assert target.loaded_archives == []

    async def test_corrupted_archive_never_reaches_runtime(self, tmp_path):
        await compose(tmp_path, Compression.GZIP)
        archive = tmp_path / "images.tar.gz"
        data = bytearray(archive.read_bytes())
        data[-5] ^= 0xFF
        archive.write_bytes(bytes(data))

        target = FakeRuntime()
        with pytest.raises(IntegrityError) as exc:
            await BundleLoader(target, FakeCompressor()).load(tmp_path, BundleSettings())
        assert exc.value.path == archive
        assert target.loaded_archives == []

    async def test_missing_record_reduced_trust(self, tmp_path, caplog):
        await compose(tmp_path, Compression.NONE)
        record_path(tmp_path / "images.tar").unlink()

        target = FakeRuntime()
        result = await BundleLoader(target, FakeCompressor()).load(tmp_path, BundleSettings())

        assert result.checksum_verified is False
        assert result.state is BundleState.LOADED
        assert target.store == IMAGES
        assert "reduced-trust" in caplog.text

    async def test_missing_record_required(self, tmp_path):
        await compose(tmp_path, Compression.NONE)
        record_path(tmp_path / "images.tar").unlink()

        target = FakeRuntime()
        with pytest.raises(MissingRecord):
            await BundleLoader(target, FakeCompressor()).load(
                tmp_path, BundleSettings(require_checksum=True)
            )
        assert target.loaded_archives == []

    async def test_bare_archive_file(self, tmp_path):
        archive = write_archive(tmp_path / "images.tar.gz", compress=True)
        target = FakeRuntime()
        result = await BundleLoader(target, FakeCompressor()).load(archive, BundleSettings())
        assert result.manifest is None
        assert result.compression is Compression.GZIP
        assert target.store == IMAGES

    async def test_directory_without_manifest_falls_back(self, tmp_path):
        write_archive(tmp_path / "images.tar")
        target = FakeRuntime()
        result = await BundleLoader(target, FakeCompressor()).load(tmp_path, BundleSettings())
        assert result.archive == tmp_path / "images.tar"
        assert result.manifest is None

    async def test_fallback_with_several_archives(self, tmp_path):
        write_archive(tmp_path / "images.tar")
        write_archive(tmp_path / "images.tar.gz", compress=True)
        with pytest.raises(ManifestMismatch):
            await BundleLoader(FakeRuntime(), FakeCompressor()).load(tmp_path, BundleSettings())

    async def test_empty_directory(self, tmp_path):
        with pytest.raises(ManifestError):
            await BundleLoader(FakeRuntime(), FakeCompressor()).load(tmp_path, BundleSettings())

    async def test_corrupt_manifest_falls_back(self, tmp_path):
        write_archive(tmp_path / "images.tar")
        (tmp_path / "manifest.json").write_text("{not json")
        result = await BundleLoader(FakeRuntime(), FakeCompressor()).load(
            tmp_path, BundleSettings()
        )
        assert result.manifest is None

    async def test_newer_schema_rejected(self, tmp_path):
        await compose(tmp_path, Compression.NONE)
        data = json.loads((tmp_path / "manifest.json").read_text())
        data["schema_version"] = 99
        (tmp_path / "manifest.json").write_text(json.dumps(data))

        target = FakeRuntime()
        with pytest.raises(UnsupportedSchema):
            await BundleLoader(target, FakeCompressor()).load(tmp_path, BundleSettings())
        assert target.loaded_archives == []

    async def test_manifest_names_missing_archive(self, tmp_path):
        await compose(tmp_path, Compression.GZIP)
        (tmp_path / "images.tar.gz").rename(tmp_path / "images.tar")
        with pytest.raises(ManifestMismatch, match="images.tar.gz"):
            await BundleLoader(FakeRuntime(), FakeCompressor()).load(tmp_path, BundleSettings())

    async def test_manifest_compression_disagrees_with_suffix(self, tmp_path):
        write_archive(tmp_path / "images.tar")
        BundleManifest(
            runtime="docker", compression=Compression.GZIP, archive="images.tar", images=IMAGES
        ).write(tmp_path)
        with pytest.raises(ManifestMismatch):
            await BundleLoader(FakeRuntime(), FakeCompressor()).load(tmp_path, BundleSettings())

    async def test_unknown_manifest_fields_ignored(self, tmp_path):
        await compose(tmp_path, Compression.NONE)
        data = json.loads((tmp_path / "manifest.json").read_text())
        data["signed_by"] = "ops"
        (tmp_path / "manifest.json").write_text(json.dumps(data))
        result = await BundleLoader(FakeRuntime(), FakeCompressor()).load(
            tmp_path, BundleSettings()
        )
        assert result.state is BundleState.LOADED

    async def test_nonexistent_path(self, tmp_path):
        with pytest.raises(BundleIOError):
            await BundleLoader(FakeRuntime(), FakeCompressor()).load(
                tmp_path / "nope", BundleSettings()
            )

    async def test_loader_never_modifies_bundle(self, tmp_path):
        await compose(tmp_path, Compression.ZSTD)
        before = {p.name: p.read_bytes() for p in tmp_path.iterdir()}
        await BundleLoader(FakeRuntime(), FakeCompressor()).load(tmp_path, BundleSettings())
        assert {p.name: p.read_bytes() for p in tmp_path.iterdir()} == before
        assert (tmp_path / "images.tar.zst").read_bytes().startswith(ZSTD_MAGIC)
