"""Pydantic models for aumai-pushbuild."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import PushBuildError

__all__ = [
    "BuildVariant",
    "PushConfig",
    "PushReport",
    "PushState",
    "StageFile",
    "StageOutcome",
]

_WHITESPACE = re.compile(r"\s")


class BuildVariant(str, Enum):
    """Build-system variants a version can be read from."""

    BAZEL = "bazel"
    DOCKERIZED = "dockerized"


class PushConfig(BaseModel):
    """Values for a single push invocation. Never mutated once built."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    build_dir: str = "_output"
    docker_registry: str = ""
    extra_version_markers: str = ""   # comma separated, --ci only
    gcs_suffix: str = ""
    version_suffix: str = ""
    allow_dup: bool = False
    ci: bool = False
    no_update_latest: bool = False
    private_bucket: bool = False
    fast: bool = False                # linux/amd64 only
    validate_remote_image_digests: bool = False

    @field_validator("bucket")
    @classmethod
    def check_bucket(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("bucket must not be empty")
        if "/" in value:
            raise ValueError(f"bucket {value!r} must be a bare bucket name")
        return value

    @field_validator("gcs_suffix")
    @classmethod
    def check_gcs_suffix(cls, value: str) -> str:
        if "/" in value or _WHITESPACE.search(value):
            raise ValueError(f"GCS suffix {value!r} must be a single path segment")
        return value

    @field_validator("version_suffix")
    @classmethod
    def check_version_suffix(cls, value: str) -> str:
        if any(ch in value for ch in "/+") or _WHITESPACE.search(value):
            raise ValueError(f"version suffix {value!r} contains illegal characters")
        return value

    @property
    def extra_markers(self) -> list[str]:
        """Extra version marker names with empty entries dropped."""
        return [m.strip() for m in self.extra_version_markers.split(",") if m.strip()]


class StageFile(BaseModel):
    """A file copied from the build directory into the staging tree."""

    model_config = ConfigDict(frozen=True)

    src_path: str      # relative to the build directory
    dst_path: str      # relative to the staging directory
    required: bool = True


class PushState(str, Enum):
    """States of a push run, in the order they are reached."""

    INIT = "init"
    VERSION_RESOLVED = "version_resolved"
    PERMISSION_VERIFIED = "permission_verified"
    STAGED = "staged"
    ARTIFACTS_PUSHED = "artifacts_pushed"
    IMAGES_PUSHED = "images_pushed"
    MARKERS_PUBLISHED = "markers_published"
    DONE = "done"
    FAILED = "failed"


class StageOutcome(BaseModel):
    """Tagged success/failure result of one pipeline stage."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    stage: str
    ok: bool
    detail: str = ""
    value: Any = Field(default=None, exclude=True)
    error: PushBuildError | None = Field(default=None, exclude=True)


class PushReport(BaseModel):
    """Summary of a push run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: PushState = PushState.INIT
    version: str | None = None
    destination: str | None = None
    outcomes: list[StageOutcome] = Field(default_factory=list)
    failed_stage: str | None = None
    error: PushBuildError | None = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.state is PushState.DONE

    def raise_for_failure(self) -> None:
        """Re-raise the error that stopped the run, if any."""
        if self.error is not None:
            raise self.error
