"""Version marker files ("latest" pointers) for CI pushes."""

from __future__ import annotations

import logging

from google.api_core import exceptions as gapi_exceptions
from google.auth.exceptions import GoogleAuthError

from .errors import InvalidVersionError, MarkerPublishError
from .storage import StorageClient, credentials_error
from .version import ReleaseVersion

__all__ = [
    "ReleaseMarkerPublisher",
    "latest_marker_names",
]

logger = logging.getLogger(__name__)


def latest_marker_names(version: ReleaseVersion, fast: bool = False) -> list[str]:
    """Names of the latest-family markers *version* should update."""
    if fast:
        return ["latest-fast"]
    return [
        "latest",
        f"latest-{version.major}",
        f"latest-{version.major}.{version.minor}",
    ]


class ReleaseMarkerPublisher:
    """Writes ``<root>/<marker>.txt`` files pointing at a pushed version."""

    def __init__(self, storage_client: StorageClient) -> None:
        self.storage = storage_client

    def publish_version(
        self,
        dest_path: str,
        version: str,
        build_dir: str,
        bucket: str,
        extra_markers: list[str] | None = None,
        private_bucket: bool = False,
        fast: bool = False,
        no_update_latest: bool = False,
    ) -> list[str]:
        """
        Point the version markers of *dest_path*'s root at *version*.

        Latest-family markers only ever move forward; extra markers are
        always overwritten. Returns the names of the objects written.
        """
        logger.info("Publishing version %s from %s", version, build_dir)
        try:
            parsed = ReleaseVersion.parse(version)
        except InvalidVersionError as exc:
            raise MarkerPublishError(str(exc)) from exc

        try:
            if not self.storage.exists(bucket, dest_path):
                raise MarkerPublishError(
                    f"release gs://{bucket}/{dest_path} has not been uploaded"
                )

            root = dest_path.strip("/").split("/", 1)[0]
            latest = [] if no_update_latest else latest_marker_names(parsed, fast)
            extras = [m for m in (extra_markers or []) if m]

            written: list[str] = []
            for marker in latest:
                name = f"{root}/{marker}.txt"
                if self._is_up_to_date(bucket, name, parsed):
                    continue
                self._write(bucket, name, version, private_bucket)
                written.append(name)
            for marker in extras:
                name = f"{root}/{marker}.txt"
                self._write(bucket, name, version, private_bucket)
                written.append(name)
        except GoogleAuthError as exc:
            raise credentials_error(exc).add_context("update version markers") from exc
        except gapi_exceptions.GoogleAPIError as exc:
            raise MarkerPublishError(f"update version markers: {exc}") from exc
        return written

    def _is_up_to_date(self, bucket: str, name: str, version: ReleaseVersion) -> bool:
        current = self.storage.read_text(bucket, name)
        if not current or not current.strip():
            return False
        try:
            existing = ReleaseVersion.parse(current.strip())
        except InvalidVersionError:
            logger.warning("Overwriting unparsable marker gs://%s/%s", bucket, name)
            return False
        if existing.sort_key() >= version.sort_key():
            logger.info(
                "Not updating gs://%s/%s: %s is not newer than %s",
                bucket, name, version, existing,
            )
            return True
        return False

    def _write(self, bucket: str, name: str, version: str, private_bucket: bool) -> None:
        logger.info("Writing %s to gs://%s/%s", version, bucket, name)
        self.storage.write_text(bucket, name, version, public=not private_bucket)
