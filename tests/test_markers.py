"""Tests for aumai_pushbuild.markers."""

from __future__ import annotations

import pytest
from google.auth.exceptions import TransportError

from aumai_pushbuild.errors import AuthenticationError, MarkerPublishError
from aumai_pushbuild.markers import ReleaseMarkerPublisher, latest_marker_names
from aumai_pushbuild.version import ReleaseVersion

from conftest import FakeStorageClient

BUCKET = "bucket"


@pytest.fixture()
def uploaded(fake_storage: FakeStorageClient) -> FakeStorageClient:
    fake_storage.objects[(BUCKET, "ci/v1.20.0/kubernetes.tar.gz")] = b"tar"
    return fake_storage


def _publish(storage: FakeStorageClient, **kwargs: object) -> list[str]:
    options: dict = {
        "dest_path": "ci/v1.20.0",
        "version": "v1.20.0",
        "build_dir": "_output",
        "bucket": BUCKET,
    }
    options.update(kwargs)
    return ReleaseMarkerPublisher(storage).publish_version(**options)


class TestLatestMarkerNames:
    def test_regular(self) -> None:
        assert latest_marker_names(ReleaseVersion.parse("v1.20.3")) == [
            "latest", "latest-1", "latest-1.20",
        ]

    def test_fast(self) -> None:
        assert latest_marker_names(ReleaseVersion.parse("v1.20.3"), fast=True) == [
            "latest-fast"
        ]


class TestPublishVersion:
    def test_writes_latest_markers(self, uploaded: FakeStorageClient) -> None:
        written = _publish(uploaded)
        assert written == ["ci/latest.txt", "ci/latest-1.txt", "ci/latest-1.20.txt"]
        assert uploaded.read_text(BUCKET, "ci/latest.txt") == "v1.20.0"
        assert (BUCKET, "ci/latest.txt") in uploaded.public

    def test_private_bucket(self, uploaded: FakeStorageClient) -> None:
        _publish(uploaded, private_bucket=True)
        assert uploaded.public == set()

    def test_extra_markers(self, uploaded: FakeStorageClient) -> None:
        written = _publish(uploaded, extra_markers=["k8s-master", "", "k8s-beta"])
        assert "ci/k8s-master.txt" in written
        assert "ci/k8s-beta.txt" in written
        assert len(written) == 5

    def test_no_update_latest_keeps_extras(self, uploaded: FakeStorageClient) -> None:
        written = _publish(uploaded, no_update_latest=True, extra_markers=["k8s-master"])
        assert written == ["ci/k8s-master.txt"]

    def test_fast_marker_under_suffix_root(self, fake_storage: FakeStorageClient) -> None:
        fake_storage.objects[(BUCKET, "ci-custom/fast/v1.20.0/a")] = b""
        written = _publish(fake_storage, dest_path="ci-custom/fast/v1.20.0", fast=True)
        assert written == ["ci-custom/latest-fast.txt"]

    def test_older_version_does_not_move_marker(self, uploaded: FakeStorageClient) -> None:
        uploaded.write_text(BUCKET, "ci/latest.txt", "v1.21.0")
        written = _publish(uploaded)
        assert "ci/latest.txt" not in written
        assert uploaded.read_text(BUCKET, "ci/latest.txt") == "v1.21.0"

    def test_newer_version_moves_marker(self, uploaded: FakeStorageClient) -> None:
        uploaded.write_text(BUCKET, "ci/latest.txt", "v1.20.0-rc.1")
        assert "ci/latest.txt" in _publish(uploaded)
        assert uploaded.read_text(BUCKET, "ci/latest.txt") == "v1.20.0"

    def test_unparsable_marker_overwritten(self, uploaded: FakeStorageClient) -> None:
        uploaded.write_text(BUCKET, "ci/latest.txt", "garbage")
        assert "ci/latest.txt" in _publish(uploaded)

    def test_release_not_uploaded(self, fake_storage: FakeStorageClient) -> None:
        with pytest.raises(MarkerPublishError, match="has not been uploaded"):
            _publish(fake_storage)

    def test_invalid_version(self, uploaded: FakeStorageClient) -> None:
        with pytest.raises(MarkerPublishError):
            _publish(uploaded, version="nope")

    def test_auth_failure(self, uploaded: FakeStorageClient) -> None:
        def _expired(*args: object, **kwargs: object) -> str | None:
            raise TransportError("token endpoint unreachable")

        uploaded.read_text = _expired  # type: ignore[method-assign]
        with pytest.raises(AuthenticationError, match="update version markers"):
            _publish(uploaded)
