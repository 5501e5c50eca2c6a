"""Offline audit of a bundle directory before it is shipped or loaded."""

import hmac
import logging
from enum import StrEnum
from fnmatch import fnmatch
from pathlib import Path

from pydantic import Field

from airgap.domain.bundle.model.manifest import MANIFEST_NAME, BundleManifest
from airgap.domain.bundle.model.value import ARCHIVE_NAMES, Compression
from airgap.domain.bundle.service.composer import README_NAME
from airgap.domain.checksum.service import ChecksumEngine, record_path
from airgap.domain.shared.error import AirgapError
from airgap.domain.shared.model.value import ValueObject

logger = logging.getLogger(__name__)

SENSITIVE_PATTERNS = ("*.key", "*.pem", "id_rsa", "id_ed25519", "*.bak", "*.swp", "*.swo")


class CheckStatus(StrEnum):
    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class CheckResult(ValueObject):
    """Result of a single inspection check."""

    check: str
    status: CheckStatus
    message: str


class InspectionReport(ValueObject):
    bundle_dir: Path
    manifest: BundleManifest | None = None
    results: list[CheckResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.status is not CheckStatus.FAILED for r in self.results)


class BundleInspector:
    """Checks integrity, completeness and hygiene of a bundle directory.

    Every check runs even after a failure so the report is complete.
    """

    def __init__(self, checksums: ChecksumEngine | None = None) -> None:
        self._checksums = checksums or ChecksumEngine()

    def inspect(self, bundle_dir: Path) -> InspectionReport:
        results: list[CheckResult] = []
        manifest = self._check_manifest(bundle_dir, results)

        archive_name = manifest.archive if manifest else self._guess_archive(bundle_dir)
        if archive_name is None:
            results.append(
                CheckResult(check="archive", status=CheckStatus.FAILED, message="no archive found")
            )
        else:
            self._check_archive(bundle_dir / archive_name, manifest, results)

        if manifest:
            self._check_files(bundle_dir, manifest, results)
        self._check_required(bundle_dir, archive_name, results)
        self._check_sensitive(bundle_dir, results)

        report = InspectionReport(bundle_dir=bundle_dir, manifest=manifest, results=results)
        logger.info("Inspection of %s: %s", bundle_dir, "ok" if report.ok else "FAILED")
        return report

    def _check_manifest(
        self, bundle_dir: Path, results: list[CheckResult]
    ) -> BundleManifest | None:
        try:
            manifest = BundleManifest.read(bundle_dir)
        except AirgapError as e:
            results.append(CheckResult(check="manifest", status=CheckStatus.FAILED, message=e.message))
            return None
        results.append(
            CheckResult(
                check="manifest",
                status=CheckStatus.PASSED,
                message=f"schema {manifest.schema_version}, {len(manifest.images)} image(s)",
            )
        )
        unpinned = [ref for ref in manifest.references if not ref.is_reproducible]
        if unpinned:
            results.append(
                CheckResult(
                    check="digests",
                    status=CheckStatus.WARNING,
                    message="images without content digest: " + ", ".join(map(str, unpinned)),
                )
            )
        return manifest

    def _guess_archive(self, bundle_dir: Path) -> str | None:
        found = [n for n in ARCHIVE_NAMES if (bundle_dir / n).is_file()]
        return found[0] if len(found) == 1 else None

    def _check_archive(
        self, archive: Path, manifest: BundleManifest | None, results: list[CheckResult]
    ) -> None:
        if not archive.is_file():
            results.append(
                CheckResult(check="archive", status=CheckStatus.FAILED, message=f"{archive.name} missing")
            )
            return
        if manifest and Compression.from_filename(archive) is not manifest.compression:
            results.append(
                CheckResult(
                    check="archive",
                    status=CheckStatus.FAILED,
                    message=f"{archive.name} does not match compression {manifest.compression!s}",
                )
            )
        try:
            ok = self._checksums.verify(archive)
        except AirgapError as e:
            results.append(CheckResult(check="checksum", status=CheckStatus.FAILED, message=e.message))
            return
        results.append(
            CheckResult(
                check="checksum",
                status=CheckStatus.PASSED if ok else CheckStatus.FAILED,
                message=f"{archive.name} {'matches' if ok else 'does NOT match'} its record",
            )
        )

    def _check_files(
        self, bundle_dir: Path, manifest: BundleManifest, results: list[CheckResult]
    ) -> None:
        if not manifest.files:
            results.append(
                CheckResult(
                    check="files",
                    status=CheckStatus.WARNING,
                    message="manifest lists no file digests",
                )
            )
            return
        missing: list[str] = []
        changed: list[str] = []
        for name, expected in sorted(manifest.files.items()):
            path = bundle_dir / name
            if not path.is_file():
                missing.append(name)
                continue
            try:
                actual = self._checksums.compute_digest(path)
            except AirgapError:
                changed.append(name)
                continue
            if not hmac.compare_digest(actual, expected):
                changed.append(name)
        problems = [f"missing: {', '.join(missing)}"] if missing else []
        if changed:
            problems.append(f"modified: {', '.join(changed)}")
        if problems:
            results.append(
                CheckResult(check="files", status=CheckStatus.FAILED, message="; ".join(problems))
            )
        else:
            results.append(
                CheckResult(
                    check="files",
                    status=CheckStatus.PASSED,
                    message=f"{len(manifest.files)} file(s) match the manifest",
                )
            )

        listed = {*manifest.files, MANIFEST_NAME}
        extra = sorted(p.name for p in bundle_dir.iterdir() if p.is_file() and p.name not in listed)
        if extra:
            results.append(
                CheckResult(
                    check="unlisted-files",
                    status=CheckStatus.WARNING,
                    message="not listed in manifest: " + ", ".join(extra),
                )
            )

    def _check_required(
        self, bundle_dir: Path, archive_name: str | None, results: list[CheckResult]
    ) -> None:
        required = [MANIFEST_NAME, README_NAME]
        if archive_name:
            required += [archive_name, record_path(Path(archive_name)).name]
        missing = [name for name in required if not (bundle_dir / name).exists()]
        results.append(
            CheckResult(
                check="contents",
                status=CheckStatus.FAILED if missing else CheckStatus.PASSED,
                message=("missing: " + ", ".join(missing)) if missing else "all required files present",
            )
        )

    def _check_sensitive(self, bundle_dir: Path, results: list[CheckResult]) -> None:
        flagged = sorted(
            str(p.relative_to(bundle_dir))
            for p in bundle_dir.rglob("*")
            if p.is_file() and any(fnmatch(p.name, pat) for pat in SENSITIVE_PATTERNS)
        )
        results.append(
            CheckResult(
                check="sensitive-files",
                status=CheckStatus.FAILED if flagged else CheckStatus.PASSED,
                message=("found: " + ", ".join(flagged)) if flagged else "none found",
            )
        )
