"""Local staging of release artifacts ahead of a bucket push."""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path

from .errors import PushBuildError, RequiredFileMissingError, StagingError
from .models import StageFile

__all__ = [
    "ArtifactStager",
    "GCP_STAGE_FILES",
    "GCS_STAGE_PATH",
    "WINDOWS_STAGE_FILES",
    "copy_binaries",
    "copy_dir_contents",
    "copy_stage_files",
    "remove_and_replace_dir",
    "write_checksums",
]

logger = logging.getLogger(__name__)

GCS_STAGE_PATH = "_gcs_stage"
RELEASE_TARS_PATH = "release-tars"
RELEASE_STAGE_PATH = "release-stage"
GCE_PATH = "cluster/gce"
GCI_PATH = "cluster/gce/gci"
WINDOWS_LOCAL_PATH = "cluster/gce/windows"

CHECKSUM_ALGORITHMS = ("sha256", "sha512")

GCP_STAGE_FILES: tuple[StageFile, ...] = (
    StageFile(
        src_path=f"{GCE_PATH}/configure-vm.sh",
        dst_path="extra/gce/configure-vm.sh",
        required=False,
    ),
    StageFile(src_path=f"{GCI_PATH}/node.yaml", dst_path="extra/gce/node.yaml"),
    StageFile(src_path=f"{GCI_PATH}/master.yaml", dst_path="extra/gce/master.yaml"),
    StageFile(src_path=f"{GCI_PATH}/configure.sh", dst_path="extra/gce/configure.sh"),
    StageFile(
        src_path=f"{GCI_PATH}/shutdown.sh",
        dst_path="extra/gce/shutdown.sh",
        required=False,
    ),
)

WINDOWS_STAGE_FILES: tuple[StageFile, ...] = (
    StageFile(
        src_path=f"{WINDOWS_LOCAL_PATH}/configure.ps1",
        dst_path="extra/gce/windows/configure.ps1",
    ),
    StageFile(
        src_path=f"{WINDOWS_LOCAL_PATH}/common.psm1",
        dst_path="extra/gce/windows/common.psm1",
    ),
    StageFile(
        src_path=f"{WINDOWS_LOCAL_PATH}/k8s-node-setup.psm1",
        dst_path="extra/gce/windows/k8s-node-setup.psm1",
    ),
    StageFile(
        src_path=f"{WINDOWS_LOCAL_PATH}/testonly/install-ssh.psm1",
        dst_path="extra/gce/windows/install-ssh.psm1",
    ),
    StageFile(
        src_path=f"{WINDOWS_LOCAL_PATH}/testonly/user-profile.psm1",
        dst_path="extra/gce/windows/user-profile.psm1",
    ),
)


def _file_digest(path: Path, algorithm: str) -> str:
    """Return the hex digest of the file at *path*."""
    h = hashlib.new(algorithm)
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def remove_and_replace_dir(path: Path) -> None:
    """Delete *path* if present and create it again, empty."""
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)


def copy_dir_contents(src: Path, dst: Path) -> None:
    """Recursively copy the contents of *src* into *dst*, keeping modes."""
    if not src.is_dir():
        raise FileNotFoundError(f"source directory {src} does not exist")
    shutil.copytree(src, dst, dirs_exist_ok=True)


def copy_stage_files(
    build_dir: Path, stage_dir: Path, files: tuple[StageFile, ...]
) -> list[Path]:
    """
    Copy each entry of *files* from *build_dir* into *stage_dir*.

    Required entries get their destination directory created up front and
    fail with ``RequiredFileMissingError`` when the source is absent.
    Optional entries with no source are skipped. Returns the copied paths.
    """
    copied: list[Path] = []
    for stage_file in files:
        src = build_dir / stage_file.src_path
        dst = stage_dir / stage_file.dst_path

        if stage_file.required:
            try:
                dst.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StagingError(
                    f"create destination path {stage_file.dst_path}: {exc}"
                ) from exc

        if not src.is_file():
            if stage_file.required:
                raise RequiredFileMissingError(str(src))
            logger.info("Skipping optional file %s, not found", src)
            continue

        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
        except OSError as exc:
            raise StagingError(f"copy {src} to {dst}: {exc}") from exc
        copied.append(dst)
    return copied


def copy_binaries(release_stage: Path, stage_dir: Path) -> list[Path]:
    """
    Copy plain binaries into ``bin/<os>/<arch>/`` under *stage_dir*.

    Client binaries are copied for every platform; server and node binaries
    exist for linux platforms only and are copied when present.
    """
    client_root = release_stage / "client"
    if not client_root.is_dir():
        raise FileNotFoundError(f"client binaries directory {client_root} does not exist")

    copied: list[Path] = []
    for platform_dir in sorted(client_root.iterdir()):
        if not platform_dir.is_dir():
            logger.warning("Skipping %s, not a platform directory", platform_dir)
            continue

        parts = platform_dir.name.split("-")
        if len(parts) != 2:
            raise ValueError(
                f"platform directory {platform_dir.name} is not of the form os-arch"
            )
        os_name, arch = parts
        dst = stage_dir / "bin" / os_name / arch

        kinds = ["client"]
        if os_name == "linux":
            kinds += ["server", "node"]
        for kind in kinds:
            src = release_stage / kind / platform_dir.name / "kubernetes" / kind / "bin"
            if not src.is_dir():
                if kind == "client":
                    raise FileNotFoundError(f"binaries directory {src} does not exist")
                continue
            logger.debug("Copying %s binaries for %s/%s", kind, os_name, arch)
            copy_dir_contents(src, dst)
            copied.extend(p for p in sorted(src.rglob("*")) if p.is_file())
    return copied


def write_checksums(root: Path) -> dict[str, Path]:
    """
    Write checksum manifests for every file below *root*.

    Produces ``SHA256SUMS`` and ``SHA512SUMS`` at *root* plus a
    ``<file>.<algorithm>`` sidecar next to each file. Returns the manifest
    paths keyed by algorithm.
    """
    files = sorted(p for p in root.rglob("*") if p.is_file())
    manifests: dict[str, Path] = {}
    for algorithm in CHECKSUM_ALGORITHMS:
        lines: list[str] = []
        for file_path in files:
            digest = _file_digest(file_path, algorithm)
            rel = file_path.relative_to(root).as_posix()
            lines.append(f"{digest}  {rel}\n")
            sidecar = file_path.with_name(f"{file_path.name}.{algorithm}")
            sidecar.write_text(digest, encoding="utf-8")
        manifest = root / f"{algorithm.upper()}SUMS"
        manifest.write_text("".join(lines), encoding="utf-8")
        manifests[algorithm] = manifest
    return manifests


class ArtifactStager:
    """
    Builds the staging tree ``<build_dir>/_gcs_stage/<version>``.

    Layout::

        <tarballs>                  # from release-tars/
        bin/<os>/<arch>/<binary>    # plain binaries
        extra/gce/...               # GCE bring-up scripts
        extra/gce/windows/...       # Windows bring-up scripts
        SHA256SUMS, SHA512SUMS      # checksum manifests
    """

    def __init__(
        self,
        build_dir: str | Path,
        gcp_files: tuple[StageFile, ...] = GCP_STAGE_FILES,
        windows_files: tuple[StageFile, ...] = WINDOWS_STAGE_FILES,
    ) -> None:
        self.build_dir = Path(build_dir)
        self.gcp_files = gcp_files
        self.windows_files = windows_files

    def stage_dir(self, version: str) -> Path:
        return self.build_dir / GCS_STAGE_PATH / version

    def stage(self, version: str) -> Path:
        """Stage all release artifacts for *version*; return the directory."""
        logger.info("Staging local artifacts")
        stage_dir = self.stage_dir(version)

        logger.info("Cleaning staging dir %s", stage_dir)
        self._step(
            "remove and replace GCS staging directory",
            remove_and_replace_dir, stage_dir,
        )

        logger.info("Copying release tarballs")
        self._step(
            "copy source directory into destination",
            copy_dir_contents, self.build_dir / RELEASE_TARS_PATH, stage_dir,
        )

        logger.info("Copying GCP stage files")
        self._step(
            "copy GCP stage files",
            copy_stage_files, self.build_dir, stage_dir, self.gcp_files,
        )

        logger.info("Copying Windows stage files")
        self._step(
            "copy Windows stage files",
            copy_stage_files, self.build_dir, stage_dir, self.windows_files,
        )

        # Install scripts download the plain binaries directly.
        logger.info("Copying plain binaries")
        self._step(
            "stage binaries",
            copy_binaries, self.build_dir / RELEASE_STAGE_PATH, stage_dir,
        )

        logger.info("Writing checksums")
        self._step("write checksums", write_checksums, stage_dir)
        return stage_dir

    @staticmethod
    def _step(context: str, func, *args):
        try:
            return func(*args)
        except PushBuildError as exc:
            raise exc.add_context(context)
        except (OSError, ValueError) as exc:
            raise StagingError(f"{context}: {exc}") from exc
