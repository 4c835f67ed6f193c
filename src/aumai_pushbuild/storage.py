"""Object storage access: the bucket client and the permission check."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

from google.api_core import exceptions as gapi_exceptions
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from .errors import (
    AlreadyPublishedError,
    AuthenticationError,
    ConfigurationError,
    PermissionCheckError,
    PermissionDeniedError,
    PublishError,
)

__all__ = [
    "GCSStorageClient",
    "PermissionChecker",
    "REQUIRED_GCS_PERMISSIONS",
    "StorageClient",
    "credentials_error",
]

logger = logging.getLogger(__name__)

REQUIRED_GCS_PERMISSIONS = ["storage.objects.create"]
MARKER_CACHE_CONTROL = "private, max-age=0, no-transform"
AUTH_REMEDIATION = 'try running "gcloud auth application-default login"'


def credentials_error(exc: Exception) -> AuthenticationError:
    """Turn a google-auth failure into an ``AuthenticationError``."""
    return AuthenticationError(f"fetching gcloud credentials, {AUTH_REMEDIATION}: {exc}")


class StorageClient(Protocol):
    """The operations the push pipeline needs from a bucket store."""

    def test_permissions(self, bucket: str, permissions: list[str]) -> list[str]:
        ...

    def copy_dir(
        self, src: Path, bucket: str, prefix: str, no_clobber: bool = True
    ) -> list[str]:
        ...

    def exists(self, bucket: str, prefix: str) -> bool:
        ...

    def read_text(self, bucket: str, name: str) -> str | None:
        ...

    def write_text(
        self, bucket: str, name: str, content: str, public: bool = True
    ) -> None:
        ...


class GCSStorageClient:
    """
    ``StorageClient`` backed by Google Cloud Storage.

    The underlying ``storage.Client`` is created on first use so that missing
    credentials surface as ``AuthenticationError`` at the permission check.
    """

    def __init__(self, client: Any | None = None, project: str | None = None) -> None:
        self._client = client
        self._project = project

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = storage.Client(project=self._project)
            except GoogleAuthError as exc:
                raise credentials_error(exc) from exc
        return self._client

    def test_permissions(self, bucket: str, permissions: list[str]) -> list[str]:
        return list(self.client.bucket(bucket).test_iam_permissions(permissions))

    def copy_dir(
        self, src: Path, bucket: str, prefix: str, no_clobber: bool = True
    ) -> list[str]:
        """
        Upload every file under *src* to ``gs://<bucket>/<prefix>/``.

        With *no_clobber* the upload is refused when anything already exists
        under *prefix*, and each object is written with a generation-0
        precondition so a concurrent writer is detected too.
        """
        prefix = prefix.strip("/")
        if no_clobber and self.exists(bucket, prefix):
            raise AlreadyPublishedError(
                f"gs://{bucket}/{prefix} already exists, refusing to overwrite"
            )

        gcs_bucket = self.client.bucket(bucket)
        uploaded: list[str] = []
        for file_path in sorted(src.rglob("*")):
            if not file_path.is_file():
                continue
            name = f"{prefix}/{file_path.relative_to(src).as_posix()}"
            kwargs = {"if_generation_match": 0} if no_clobber else {}
            try:
                gcs_bucket.blob(name).upload_from_filename(str(file_path), **kwargs)
            except gapi_exceptions.PreconditionFailed as exc:
                raise AlreadyPublishedError(
                    f"gs://{bucket}/{name} already exists, refusing to overwrite"
                ) from exc
            except gapi_exceptions.GoogleAPIError as exc:
                raise PublishError(f"upload {file_path} to gs://{bucket}/{name}: {exc}") from exc
            logger.debug("Uploaded gs://%s/%s", bucket, name)
            uploaded.append(name)
        logger.info("Uploaded %s objects to gs://%s/%s", len(uploaded), bucket, prefix)
        return uploaded

    def exists(self, bucket: str, prefix: str) -> bool:
        """Return True when any object lives below the directory *prefix*."""
        directory = prefix.strip("/") + "/"
        blobs = self.client.list_blobs(bucket, prefix=directory, max_results=1)
        return any(True for _ in blobs)

    def read_text(self, bucket: str, name: str) -> str | None:
        try:
            return self.client.bucket(bucket).blob(name).download_as_text()
        except gapi_exceptions.NotFound:
            return None

    def write_text(
        self, bucket: str, name: str, content: str, public: bool = True
    ) -> None:
        blob = self.client.bucket(bucket).blob(name)
        blob.cache_control = MARKER_CACHE_CONTROL
        blob.upload_from_string(content, content_type="text/plain")
        if public:
            blob.make_public()


class PermissionChecker:
    """Confirms the caller may create objects in a bucket."""

    def __init__(
        self,
        storage_client: StorageClient,
        permissions: list[str] | None = None,
    ) -> None:
        self.storage = storage_client
        self.permissions = list(permissions or REQUIRED_GCS_PERMISSIONS)

    def check(self, bucket: str) -> None:
        """
        Raise unless exactly the requested permissions are granted.

        An empty answer, a longer-than-requested answer and an answer naming
        other permissions all count as insufficient.
        """
        if not bucket:
            raise ConfigurationError("identify specified bucket for artifacts: empty name")

        try:
            granted = self.storage.test_permissions(bucket, self.permissions)
        except GoogleAuthError as exc:
            raise credentials_error(exc) from exc
        except gapi_exceptions.GoogleAPIError as exc:
            raise PermissionCheckError(f"find release artifact bucket: {exc}") from exc

        if sorted(granted) != sorted(self.permissions):
            raise PermissionDeniedError(
                f"GCP user must have at least {self.permissions} permissions "
                f"on bucket {bucket}"
            )
        logger.info("Verified %s on bucket %s", ", ".join(granted), bucket)
