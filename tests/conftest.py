"""Shared test fixtures for aumai-pushbuild."""

from __future__ import annotations

import io
import os
import tarfile
from pathlib import Path

import pytest

from aumai_pushbuild.errors import AlreadyPublishedError, AuthenticationError
from aumai_pushbuild.models import PushConfig
from aumai_pushbuild.staging import GCP_STAGE_FILES, WINDOWS_STAGE_FILES


# ---------------------------------------------------------------------------
# Build directory helpers
# ---------------------------------------------------------------------------


def write_dockerized_tarball(build_dir: Path, version: str | None) -> Path:
    """Write release-tars/kubernetes.tar.gz, with a version member if given."""
    tars = build_dir / "release-tars"
    tars.mkdir(parents=True, exist_ok=True)
    tarball = tars / "kubernetes.tar.gz"
    with tarfile.open(tarball, "w:gz") as tar:
        payload = b"readme" if version is None else version.encode("utf-8") + b"\n"
        name = "kubernetes/README" if version is None else "kubernetes/version"
        info = tarfile.TarInfo(name)
        info.size = len(payload)
        tar.addfile(info, io.BytesIO(payload))
    return tarball


def write_bazel_build(build_dir: Path, version: str) -> Path:
    tarball = build_dir / "bazel-bin" / "build" / "release-tars" / "kubernetes.tar.gz"
    tarball.parent.mkdir(parents=True, exist_ok=True)
    tarball.write_bytes(b"bazel tarball")
    version_file = build_dir / "bazel-genfiles" / "version"
    version_file.parent.mkdir(parents=True, exist_ok=True)
    version_file.write_text(version + "\n", encoding="utf-8")
    return tarball


def make_build_dir(root: Path, version: str = "v1.20.0") -> Path:
    """A dockerized build directory with everything a push stages."""
    build_dir = root / "_output"
    write_dockerized_tarball(build_dir, version)
    (build_dir / "release-tars" / "kubernetes-client-linux-amd64.tar.gz").write_bytes(
        b"client tarball"
    )

    for stage_file in GCP_STAGE_FILES + WINDOWS_STAGE_FILES:
        src = build_dir / stage_file.src_path
        src.parent.mkdir(parents=True, exist_ok=True)
        src.write_text(f"# {stage_file.dst_path}\n", encoding="utf-8")
        os.chmod(src, 0o755)

    stage = build_dir / "release-stage"
    for kind, platform in [
        ("client", "linux-amd64"),
        ("server", "linux-amd64"),
        ("node", "linux-amd64"),
        ("client", "darwin-amd64"),
    ]:
        bin_dir = stage / kind / platform / "kubernetes" / kind / "bin"
        bin_dir.mkdir(parents=True)
        binary = {"client": "kubectl", "server": "kube-apiserver", "node": "kubelet"}[kind]
        (bin_dir / binary).write_bytes(f"{kind}-{platform}".encode("utf-8"))
    return build_dir


# ---------------------------------------------------------------------------
# In-memory storage
# ---------------------------------------------------------------------------


class FakeStorageClient:
    """Keeps objects in a dict keyed by (bucket, name)."""

    def __init__(
        self,
        granted: list[str] | None = None,
        authenticated: bool = True,
    ) -> None:
        self.granted = ["storage.objects.create"] if granted is None else granted
        self.authenticated = authenticated
        self.objects: dict[tuple[str, str], bytes] = {}
        self.public: set[tuple[str, str]] = set()

    def test_permissions(self, bucket: str, permissions: list[str]) -> list[str]:
        if not self.authenticated:
            raise AuthenticationError("fetching gcloud credentials")
        return list(self.granted)

    def copy_dir(
        self, src: Path, bucket: str, prefix: str, no_clobber: bool = True
    ) -> list[str]:
        prefix = prefix.strip("/")
        if no_clobber and self.exists(bucket, prefix):
            raise AlreadyPublishedError(f"gs://{bucket}/{prefix} already exists")
        names = []
        for file_path in sorted(src.rglob("*")):
            if file_path.is_file():
                name = f"{prefix}/{file_path.relative_to(src).as_posix()}"
                self.objects[(bucket, name)] = file_path.read_bytes()
                names.append(name)
        return names

    def exists(self, bucket: str, prefix: str) -> bool:
        prefix = prefix.strip("/") + "/"
        return any(b == bucket and n.startswith(prefix) for b, n in self.objects)

    def read_text(self, bucket: str, name: str) -> str | None:
        data = self.objects.get((bucket, name))
        return None if data is None else data.decode("utf-8")

    def write_text(
        self, bucket: str, name: str, content: str, public: bool = True
    ) -> None:
        self.objects[(bucket, name)] = content.encode("utf-8")
        if public:
            self.public.add((bucket, name))
        else:
            self.public.discard((bucket, name))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def build_dir(tmp_path: Path) -> Path:
    return make_build_dir(tmp_path)


@pytest.fixture()
def fake_storage() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture()
def push_config(build_dir: Path) -> PushConfig:
    return PushConfig(bucket="test-bucket", build_dir=str(build_dir))
