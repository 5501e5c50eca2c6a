from __future__ import annotations

import re
from typing import ClassVar

from pydantic import ValidationError, field_validator

from airgap.domain.shared.error import InvalidReference
from airgap.domain.shared.model.value import ValueObject

DIGEST_RE = re.compile(r"^sha256:[a-f0-9]{64}$")


class ImageReference(ValueObject):
    """
    Normalized container image reference: repository[:tag][@digest].
    Examples: busybox:1.36, ghcr.io/org/app@sha256:..., registry:5000/ns/app:v1
    """

    repository: str
    tag: str | None = None
    digest: str | None = None

    # Optional registry host with port, then path components.
    _repo_re: ClassVar[re.Pattern] = re.compile(
        r"^(?:[A-Za-z0-9][A-Za-z0-9.-]*:[0-9]+/)?"
        r"[A-Za-z0-9][A-Za-z0-9._-]*(?:/[A-Za-z0-9][A-Za-z0-9._-]*)*$"
    )
    _tag_re: ClassVar[re.Pattern] = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]{0,127}$")

    @field_validator("repository")
    @classmethod
    def _repository_ok(cls, v: str) -> str:
        if not cls._repo_re.match(v):
            raise ValueError("repository may only contain letters, digits, '.', '_', '-' and '/'")
        return v

    @field_validator("tag")
    @classmethod
    def _tag_ok(cls, v: str | None) -> str | None:
        if v is not None and not cls._tag_re.match(v):
            raise ValueError("invalid tag")
        return v

    @field_validator("digest")
    @classmethod
    def _digest_ok(cls, v: str | None) -> str | None:
        if v is not None and not DIGEST_RE.match(v):
            raise ValueError("digest must be 'sha256:' followed by 64 lowercase hex characters")
        return v

    @property
    def is_reproducible(self) -> bool:
        """Only a content digest pins the exact image bytes."""
        return self.digest is not None

    @classmethod
    def parse(cls, raw: str) -> ImageReference:
        """Parse `repo[:tag][@digest]`, raising InvalidReference on any defect."""
        s = raw.strip()
        if not s:
            raise InvalidReference(raw, "empty reference")

        name, sep, digest = s.partition("@")
        if sep and not digest:
            raise InvalidReference(raw, "empty digest after '@'")

        tag: str | None = None
        slash = name.rfind("/")
        colon = name.rfind(":")
        if colon > slash:
            name, tag = name[:colon], name[colon + 1 :]
            if not tag:
                raise InvalidReference(raw, "empty tag after ':'")

        try:
            return cls(repository=name, tag=tag, digest=digest or None)
        except ValidationError as e:
            reason = "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())
            raise InvalidReference(raw, reason) from e

    def render(self) -> str:
        out = self.repository
        if self.tag:
            out += f":{self.tag}"
        if self.digest:
            out += f"@{self.digest}"
        return out

    def __str__(self) -> str:
        return self.render()
