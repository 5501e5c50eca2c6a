from __future__ import annotations

import re
from typing import ClassVar, Literal

from pydantic import field_validator

from airgap.domain.shared.model.value import ValueObject

RECORD_SUFFIX = ".sha256"


class ChecksumRecord(ValueObject):
    """Digest of one file, valid only for its exact bytes at creation time."""

    algorithm: Literal["sha256"] = "sha256"
    value: str
    subject_filename: str

    _hex_re: ClassVar[re.Pattern] = re.compile(r"^[a-f0-9]{64}$")

    @field_validator("value")
    @classmethod
    def _hex_ok(cls, v: str) -> str:
        v = v.strip().lower()
        if not cls._hex_re.match(v):
            raise ValueError("checksum must be 64 hex characters")
        return v

    @field_validator("subject_filename")
    @classmethod
    def _basename_only(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("subject_filename must be a bare file name")
        return v

    def render(self) -> str:
        """`sha256sum`-compatible line."""
        return f"{self.value}  {self.subject_filename}\n"

    @classmethod
    def parse(cls, line: str) -> ChecksumRecord:
        """Parse `<hex>  <filename>`; a leading `*` (binary mode) is dropped."""
        value, _, name = line.strip().partition(" ")
        name = name.strip().removeprefix("*")
        return cls(value=value, subject_filename=name)
