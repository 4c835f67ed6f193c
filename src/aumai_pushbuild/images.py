"""Container image publication for a pushed build."""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Callable

from .errors import ImageDigestMismatchError, ImagePublishError

__all__ = [
    "ImagePublisher",
    "normalize_tag",
]

logger = logging.getLogger(__name__)

RELEASE_IMAGES_PATH = "release-images"
_LOADED_IMAGE_PREFIX = "Loaded image:"


def _repository(ref: str) -> str:
    """Strip the tag or digest from an image reference."""
    ref = ref.split("@", 1)[0]
    name, sep, tag = ref.rpartition(":")
    if sep and "/" not in tag:
        return name
    return ref


def normalize_tag(version: str) -> str:
    """Make *version* usable as an image tag; ``+`` is not a legal tag character."""
    return version.replace("+", "_")


class ImagePublisher:
    """
    Pushes the image tarballs found under ``<build_dir>/release-images``.

    Each ``release-images/<arch>/<image>.tar`` is loaded, retagged as
    ``<registry>/<image>-<arch>:<tag>`` and pushed. A multi-arch manifest
    ``<registry>/<image>:<tag>`` is then pushed for every image name.
    """

    def __init__(
        self,
        docker: str = "docker",
        skopeo: str = "skopeo",
        run_cmd: Callable[[Sequence[str]], str] | None = None,
    ) -> None:
        self.docker = docker
        self.skopeo = skopeo
        self._run_cmd = run_cmd or self._default_run

    def publish(self, registry: str, version: str, build_dir: str | Path) -> list[str]:
        """Push every image for *version*; return the per-arch references."""
        registry = registry.rstrip("/")
        tag = normalize_tag(version)
        images = self._find_images(Path(build_dir))
        if not images:
            logger.info("No release images found in %s, nothing to push", build_dir)
            return []

        pushed: list[str] = []
        manifests: dict[str, list[tuple[str, str]]] = {}
        for arch, tarball in images:
            loaded = self._load(tarball)
            target = f"{registry}/{tarball.stem}-{arch}:{tag}"
            logger.info("Pushing %s", target)
            self._run([self.docker, "tag", loaded, target])
            self._run([self.docker, "push", target])
            self._run([self.docker, "rmi", loaded])
            pushed.append(target)
            manifests.setdefault(tarball.stem, []).append((arch, target))

        for image, arch_refs in sorted(manifests.items()):
            manifest = f"{registry}/{image}:{tag}"
            logger.info("Creating manifest list %s", manifest)
            create = [self.docker, "manifest", "create", "--amend", manifest]
            create.extend(ref for _, ref in arch_refs)
            self._run(create)
            for arch, ref in arch_refs:
                self._run(
                    [self.docker, "manifest", "annotate", "--arch", arch, manifest, ref]
                )
            self._run([self.docker, "manifest", "push", manifest, "--purge"])
        return pushed

    def validate(self, registry: str, version: str, build_dir: str | Path) -> None:
        """Check that every remote per-arch image matches the local digest."""
        registry = registry.rstrip("/")
        tag = normalize_tag(version)
        for arch, tarball in self._find_images(Path(build_dir)):
            ref = f"{registry}/{tarball.stem}-{arch}:{tag}"
            remote = self._run(
                [self.skopeo, "inspect", "--format", "{{.Digest}}", f"docker://{ref}"]
            ).strip()
            local = self._local_digest(ref)
            if remote != local:
                raise ImageDigestMismatchError(
                    f"remote digest {remote} of {ref} does not match local {local}"
                )
            logger.info("Verified digest %s for %s", remote, ref)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find_images(self, build_dir: Path) -> list[tuple[str, Path]]:
        root = build_dir / RELEASE_IMAGES_PATH
        if not root.is_dir():
            return []
        return [
            (arch_dir.name, tarball)
            for arch_dir in sorted(root.iterdir())
            if arch_dir.is_dir()
            for tarball in sorted(arch_dir.glob("*.tar"))
        ]

    def _local_digest(self, ref: str) -> str:
        """Return the local repo digest recorded for the repository of *ref*."""
        output = self._run(
            [self.docker, "inspect", "--format", "{{json .RepoDigests}}", ref]
        )
        try:
            repo_digests = json.loads(output or "null") or []
        except json.JSONDecodeError as exc:
            raise ImagePublishError(f"parse repo digests of {ref}: {exc}") from exc
        repository = _repository(ref)
        for entry in repo_digests:
            name, _, digest = entry.partition("@")
            if name == repository and digest:
                return digest
        raise ImageDigestMismatchError(f"no local digest for {repository} in {repo_digests}")

    def _load(self, tarball: Path) -> str:
        output = self._run([self.docker, "load", "-qi", str(tarball)])
        for line in output.splitlines():
            if line.startswith(_LOADED_IMAGE_PREFIX):
                return line[len(_LOADED_IMAGE_PREFIX):].strip()
        raise ImagePublishError(f"could not find loaded image in output of {tarball}")

    def _run(self, cmd: Sequence[str]) -> str:
        try:
            return self._run_cmd(cmd)
        except (subprocess.CalledProcessError, OSError) as exc:
            message = f"run {' '.join(cmd)}: {exc}"
            stderr = getattr(exc, "stderr", None)
            if isinstance(stderr, bytes):
                stderr = stderr.decode("utf-8", "replace")
            if stderr:
                message += f": {stderr.strip()}"
            raise ImagePublishError(message) from exc

    def _default_run(self, cmd: Sequence[str]) -> str:
        return subprocess.run(
            list(cmd), check=True, capture_output=True, text=True
        ).stdout
