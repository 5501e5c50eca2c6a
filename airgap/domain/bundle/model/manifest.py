from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from airgap.domain.bundle.model.value import Compression
from airgap.domain.reference.model import ImageReference
from airgap.domain.shared.error import (
    BundleIOError,
    InvalidReference,
    ManifestError,
    UnsupportedSchema,
)
from airgap.domain.shared.fs import atomic_write_text

MANIFEST_NAME = "manifest.json"
SCHEMA_VERSION = 1

_HEX_SHA256_RE = re.compile(r"^[a-f0-9]{64}$")


class BundleManifest(BaseModel):
    """Machine-readable description of a bundle directory.

    Readers ignore fields they do not know; a newer schema version is
    rejected before any other field is interpreted.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    schema_version: int = SCHEMA_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    runtime: str
    compression: Compression
    archive: str
    images: list[str] = Field(default_factory=list)
    tool_version: str | None = None
    # file name -> hex sha256, for every bundle file except the manifest itself
    files: dict[str, str] = Field(default_factory=dict)

    @field_validator("archive")
    @classmethod
    def _archive_is_basename(cls, v: str) -> str:
        if not v or Path(v).name != v or v in (".", ".."):
            raise ValueError("archive must be a file name inside the bundle directory")
        return v

    @field_validator("files")
    @classmethod
    def _files_are_hashed_basenames(cls, v: dict[str, str]) -> dict[str, str]:
        for name, digest in v.items():
            if not name or Path(name).name != name or name in (".", "..", MANIFEST_NAME):
                raise ValueError(f"bad file entry {name!r}")
            if not _HEX_SHA256_RE.match(digest):
                raise ValueError(f"bad sha256 for {name!r}")
        return v

    @field_validator("images")
    @classmethod
    def _images_parse(cls, v: list[str]) -> list[str]:
        for raw in v:
            try:
                ImageReference.parse(raw)
            except InvalidReference as e:
                raise ValueError(e.message) from e
        return v

    @property
    def references(self) -> list[ImageReference]:
        return [ImageReference.parse(raw) for raw in self.images]

    def to_json(self) -> str:
        data = self.model_dump(mode="json", exclude_none=True)
        return json.dumps(data, indent=2) + "\n"

    @classmethod
    def from_data(cls, data: Any, *, supported: int = SCHEMA_VERSION) -> BundleManifest:
        """Validate decoded manifest data with schema-version gating.

        Raises:
            UnsupportedSchema: if the schema version is newer than `supported`.
            ManifestError: if the data is not a valid manifest.
        """
        if not isinstance(data, dict):
            raise ManifestError("Manifest must be a JSON object")
        version = data.get("schema_version")
        if not isinstance(version, int) or isinstance(version, bool) or version < 1:
            raise ManifestError(f"Manifest has no valid schema_version: {version!r}")
        if version > supported:
            raise UnsupportedSchema(version, supported)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ManifestError(f"Invalid manifest: {e}") from e

    @classmethod
    def read(cls, bundle_dir: Path) -> BundleManifest:
        path = bundle_dir / MANIFEST_NAME
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ManifestError(f"Manifest not found: {path}") from e
        except OSError as e:
            raise BundleIOError(path, e.strerror or str(e)) from e
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Manifest is not valid JSON: {path}: {e}") from e
        return cls.from_data(data)

    def write(self, bundle_dir: Path) -> Path:
        path = bundle_dir / MANIFEST_NAME
        atomic_write_text(path, self.to_json())
        return path
