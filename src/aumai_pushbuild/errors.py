"""Exception hierarchy for aumai-pushbuild.

Every failure raised by the push pipeline derives from ``PushBuildError``.
Each class carries the process exit code the CLI reports for it, so callers
can tell an expected "already published" condition apart from a real I/O
failure without parsing messages.
"""

from __future__ import annotations

__all__ = [
    "PushBuildError",
    "ConfigurationError",
    "AuthenticationError",
    "PermissionDeniedError",
    "PermissionCheckError",
    "VersionResolutionError",
    "UnsupportedBuildLayoutError",
    "VersionReadError",
    "InvalidVersionError",
    "DirtyBuildError",
    "StagingError",
    "RequiredFileMissingError",
    "PublishError",
    "AlreadyPublishedError",
    "ImagePublishError",
    "ImageDigestMismatchError",
    "MarkerPublishError",
]


class PushBuildError(Exception):
    """Base exception for all push failures."""

    exit_code = 1

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: list[str] = []
        if exit_code is not None:
            self.exit_code = exit_code

    def add_context(self, context: str) -> PushBuildError:
        """Prefix *context* to the message, outermost first."""
        self.context.insert(0, context)
        return self

    def __str__(self) -> str:
        return ": ".join([*self.context, self.message])


class ConfigurationError(PushBuildError):
    """Invalid bucket, suffix or other invocation value."""

    exit_code = 2


class AuthenticationError(PushBuildError):
    """Ambient cloud credentials could not be obtained."""

    exit_code = 3


class PermissionDeniedError(PushBuildError):
    """Caller lacks the write capability on the bucket."""

    exit_code = 4


class PermissionCheckError(PushBuildError):
    """The permission check itself failed."""

    exit_code = 4


class VersionResolutionError(PushBuildError):
    """The build in the build directory is not publishable."""

    exit_code = 5


class UnsupportedBuildLayoutError(VersionResolutionError):
    """Neither supported build-system variant was found."""


class VersionReadError(VersionResolutionError):
    """A variant's version artifact is missing or unreadable."""


class InvalidVersionError(VersionResolutionError):
    """The version string is not valid release-build syntax."""


class DirtyBuildError(VersionResolutionError):
    """A dirty build was offered for a CI push."""


class StagingError(PushBuildError):
    """Local staging of release artifacts failed."""

    exit_code = 6


class RequiredFileMissingError(StagingError):
    """A required stage file does not exist in the build directory."""

    def __init__(self, path: str) -> None:
        super().__init__(f"required file {path} does not exist")
        self.path = path


class PublishError(PushBuildError):
    """Copying the staged tree to the bucket failed."""

    exit_code = 7


class AlreadyPublishedError(PublishError):
    """An object already exists at the destination and duplicates are off."""

    exit_code = 8


class ImagePublishError(PushBuildError):
    """Pushing or validating container images failed."""

    exit_code = 9


class ImageDigestMismatchError(ImagePublishError):
    """A remote image digest differs from the locally built one."""


class MarkerPublishError(PushBuildError):
    """Writing version marker files failed."""

    exit_code = 10
