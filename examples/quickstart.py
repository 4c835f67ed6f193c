"""
aumai-pushbuild quickstart — resolve, stage and push a toy build.

Run directly:

    python examples/quickstart.py

The push demo writes to a local directory standing in for the bucket, so no
cloud credentials are needed. All demos use a temporary directory.
"""

from __future__ import annotations

import io
import pathlib
import shutil
import tarfile
import tempfile


# ---------------------------------------------------------------------------
# Demo 1: Create a toy dockerized build and resolve its version
# ---------------------------------------------------------------------------

def demo_resolve_version(root: pathlib.Path) -> pathlib.Path:
    """Lay out a minimal build directory and read its version."""
    print("\n=== Demo 1: Resolve the build version ===")

    from aumai_pushbuild.staging import GCP_STAGE_FILES, WINDOWS_STAGE_FILES
    from aumai_pushbuild.version import VersionResolver

    build_dir = root / "_output"
    tars = build_dir / "release-tars"
    tars.mkdir(parents=True)
    with tarfile.open(tars / "kubernetes.tar.gz", "w:gz") as tar:
        payload = b"v1.20.0-alpha.1.42+0123abcd\n"
        info = tarfile.TarInfo("kubernetes/version")
        info.size = len(payload)
        tar.addfile(info, io.BytesIO(payload))

    for stage_file in GCP_STAGE_FILES + WINDOWS_STAGE_FILES:
        src = build_dir / stage_file.src_path
        src.parent.mkdir(parents=True, exist_ok=True)
        src.write_text("# bring-up script\n", encoding="utf-8")

    bin_dir = build_dir / "release-stage/client/linux-amd64/kubernetes/client/bin"
    bin_dir.mkdir(parents=True)
    (bin_dir / "kubectl").write_bytes(b"\x7fELF")

    resolver = VersionResolver(build_dir)
    print(f"  Build variant : {resolver.detect_variant().value}")
    print(f"  Version       : {resolver.resolve()}")
    print(f"  With suffix   : {resolver.resolve(version_suffix='demo')}")
    return build_dir


# ---------------------------------------------------------------------------
# Demo 2: Stage the artifacts locally
# ---------------------------------------------------------------------------

def demo_stage(build_dir: pathlib.Path) -> None:
    print("\n=== Demo 2: Stage artifacts ===")

    from aumai_pushbuild.staging import ArtifactStager
    from aumai_pushbuild.version import VersionResolver

    version = VersionResolver(build_dir).resolve()
    stage_dir = ArtifactStager(build_dir).stage(version)
    for path in sorted(stage_dir.rglob("*")):
        if path.is_file() and not path.name.endswith((".sha256", ".sha512")):
            print(f"    {path.relative_to(stage_dir)}")


# ---------------------------------------------------------------------------
# Demo 3: Destination paths
# ---------------------------------------------------------------------------

def demo_destinations() -> None:
    print("\n=== Demo 3: Destination paths ===")

    from aumai_pushbuild.core import compute_destination
    from aumai_pushbuild.images import normalize_tag

    version = "v1.20.0+0123abcd"
    print(f"  devel      : {compute_destination(False, '', False, version)}")
    print(f"  ci         : {compute_destination(True, '', False, version)}")
    print(f"  ci, fast   : {compute_destination(True, '-canary', True, version)}")
    print(f"  image tag  : {normalize_tag(version)}")


# ---------------------------------------------------------------------------
# Demo 4: Push into a directory-backed bucket
# ---------------------------------------------------------------------------

class DirectoryBucket:
    """Keeps "bucket" objects as files below *root*."""

    def __init__(self, root: pathlib.Path) -> None:
        self.root = root

    def test_permissions(self, bucket: str, permissions: list[str]) -> list[str]:
        return list(permissions)

    def copy_dir(self, src, bucket, prefix, no_clobber=True):
        from aumai_pushbuild.errors import AlreadyPublishedError

        dest = self.root / bucket / prefix
        if no_clobber and dest.exists():
            raise AlreadyPublishedError(f"{dest} already exists")
        shutil.copytree(src, dest, dirs_exist_ok=True)
        return [p.relative_to(self.root / bucket).as_posix() for p in dest.rglob("*")]

    def exists(self, bucket: str, prefix: str) -> bool:
        return (self.root / bucket / prefix).exists()

    def read_text(self, bucket: str, name: str) -> str | None:
        path = self.root / bucket / name
        return path.read_text() if path.exists() else None

    def write_text(self, bucket, name, content, public=True):
        path = self.root / bucket / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def demo_push(build_dir: pathlib.Path, root: pathlib.Path) -> None:
    print("\n=== Demo 4: Push to a directory bucket ===")

    from aumai_pushbuild.core import PushOrchestrator
    from aumai_pushbuild.models import PushConfig

    bucket = DirectoryBucket(root / "gcs")
    config = PushConfig(bucket="demo-bucket", build_dir=str(build_dir), ci=True)

    report = PushOrchestrator(config, storage_client=bucket).run()
    print(f"  State       : {report.state.value}")
    print(f"  Destination : {report.destination}")
    print(f"  latest.txt  : {bucket.read_text('demo-bucket', 'ci/latest.txt')}")

    again = PushOrchestrator(config, storage_client=bucket).run()
    print(f"\n  Second push : {again.state.value} at stage {again.failed_stage!r}")
    print(f"  Reason      : {again.error}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    print("aumai-pushbuild quickstart demo")
    print("=" * 40)

    with tempfile.TemporaryDirectory() as tmp:
        root = pathlib.Path(tmp)
        build_dir = demo_resolve_version(root)
        demo_stage(build_dir)
        demo_destinations()
        demo_push(build_dir, root)

    print("\n" + "=" * 40)
    print("All demos completed successfully.")


if __name__ == "__main__":
    main()
