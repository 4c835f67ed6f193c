"""Release version discovery and validation."""

from __future__ import annotations

import logging
import re
import tarfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from .errors import (
    DirtyBuildError,
    InvalidVersionError,
    UnsupportedBuildLayoutError,
    VersionReadError,
)
from .models import BuildVariant

__all__ = [
    "ReleaseVersion",
    "VersionResolver",
    "is_dirty_build",
    "is_valid_release_build",
]

logger = logging.getLogger(__name__)

BAZEL_TARBALL = "bazel-bin/build/release-tars/kubernetes.tar.gz"
BAZEL_VERSION_FILE = "bazel-genfiles/version"
DOCKERIZED_TARBALL = "release-tars/kubernetes.tar.gz"
DOCKERIZED_VERSION_MEMBER = "kubernetes/version"

_RELEASE_VERSION = re.compile(
    r"^(?P<prefix>v?)"
    r"(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


class ReleaseVersion(BaseModel):
    """A parsed semantic version, optionally ``v`` prefixed."""

    model_config = ConfigDict(frozen=True)

    major: int
    minor: int
    patch: int
    prerelease: str = ""
    build: str = ""
    prefix: str = ""

    @classmethod
    def parse(cls, version: str) -> ReleaseVersion:
        match = _RELEASE_VERSION.fullmatch(version.strip())
        if match is None:
            raise InvalidVersionError(
                f"build version {version} is not valid for release"
            )
        return cls(
            major=int(match["major"]),
            minor=int(match["minor"]),
            patch=int(match["patch"]),
            prerelease=match["prerelease"] or "",
            build=match["build"] or "",
            prefix=match["prefix"],
        )

    @property
    def is_dirty(self) -> bool:
        return is_dirty_build(str(self))

    def sort_key(self) -> tuple:
        """Precedence key; build metadata does not take part."""
        if not self.prerelease:
            return (self.major, self.minor, self.patch, 1, ())
        idents = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in self.prerelease.split(".")
        )
        return (self.major, self.minor, self.patch, 0, idents)

    def __str__(self) -> str:
        text = f"{self.prefix}{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


def is_valid_release_build(version: str) -> bool:
    """Return True when *version* is semantic-version release syntax."""
    return _RELEASE_VERSION.fullmatch(version) is not None


def is_dirty_build(version: str) -> bool:
    """Return True for builds made from a tree with uncommitted changes."""
    return "dirty" in version


class VersionResolver:
    """
    Finds the version of the build sitting in *build_dir*.

    Two build layouts are understood: a Bazel build, whose version lives in
    ``bazel-genfiles/version``, and a dockerized build, whose version is the
    ``kubernetes/version`` member of ``release-tars/kubernetes.tar.gz``.
    When both are present the most recently produced one wins.
    """

    def __init__(self, build_dir: str | Path) -> None:
        self.build_dir = Path(build_dir)

    def detect_variant(self) -> BuildVariant:
        bazel = self.build_dir / BAZEL_TARBALL
        dockerized = self.build_dir / DOCKERIZED_TARBALL
        has_bazel, has_dockerized = bazel.is_file(), dockerized.is_file()

        if has_bazel and has_dockerized:
            if bazel.stat().st_mtime >= dockerized.stat().st_mtime:
                return BuildVariant.BAZEL
            return BuildVariant.DOCKERIZED
        if has_bazel:
            return BuildVariant.BAZEL
        if has_dockerized:
            return BuildVariant.DOCKERIZED
        raise UnsupportedBuildLayoutError(
            f"neither {BAZEL_TARBALL} nor {DOCKERIZED_TARBALL} found in "
            f"{self.build_dir}"
        )

    def read_bazel_version(self) -> str:
        version_file = self.build_dir / BAZEL_VERSION_FILE
        try:
            version = version_file.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise VersionReadError(
                f"read Bazel build version from {version_file}: {exc}"
            ) from exc
        if not version:
            raise VersionReadError(f"Bazel version file {version_file} is empty")
        return version

    def read_dockerized_version(self) -> str:
        tarball = self.build_dir / DOCKERIZED_TARBALL
        try:
            with tarfile.open(tarball, "r:gz") as tar:
                fh = tar.extractfile(DOCKERIZED_VERSION_MEMBER)
                if fh is None:
                    raise VersionReadError(
                        f"{DOCKERIZED_VERSION_MEMBER} in {tarball} is not a file"
                    )
                version = fh.read().decode("utf-8").strip()
        except KeyError as exc:
            raise VersionReadError(
                f"{DOCKERIZED_VERSION_MEMBER} not found in {tarball}"
            ) from exc
        except (OSError, tarfile.TarError, UnicodeDecodeError) as exc:
            raise VersionReadError(
                f"read Dockerized build version from {tarball}: {exc}"
            ) from exc
        if not version:
            raise VersionReadError(f"Dockerized version in {tarball} is empty")
        return version

    def read_version(self, variant: BuildVariant) -> str:
        if variant is BuildVariant.BAZEL:
            logger.info("Using Bazel build version")
            return self.read_bazel_version()
        logger.info("Using Dockerized build version")
        return self.read_dockerized_version()

    def resolve(self, version_suffix: str = "", ci: bool = False) -> str:
        """
        Return the version to publish.

        Raises ``DirtyBuildError`` for dirty builds only when *ci* is set.
        The suffix is appended after validation.
        """
        version = self.read_version(self.detect_variant())
        logger.info("Found build version: %s", version)

        if not is_valid_release_build(version):
            raise InvalidVersionError(
                f"build version {version} is not valid for release"
            )

        if ci and is_dirty_build(version):
            raise DirtyBuildError(
                f"refusing to push dirty build {version} with --ci flag given"
            )

        if version_suffix:
            version += f"-{version_suffix}"
        return version
