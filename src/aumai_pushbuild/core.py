"""Core logic for aumai-pushbuild."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from google.api_core import exceptions as gapi_exceptions
from google.auth.exceptions import GoogleAuthError

from .errors import PublishError, PushBuildError
from .images import ImagePublisher, normalize_tag
from .markers import ReleaseMarkerPublisher
from .models import PushConfig, PushReport, PushState, StageOutcome
from .staging import ArtifactStager
from .storage import (
    GCSStorageClient,
    PermissionChecker,
    StorageClient,
    credentials_error,
)
from .version import VersionResolver

__all__ = [
    "PushOrchestrator",
    "Publisher",
    "compute_destination",
]

logger = logging.getLogger(__name__)


def compute_destination(ci: bool, gcs_suffix: str, fast: bool, version: str) -> str:
    """Return ``{devel|ci}{suffix}[/fast]/{version}``, relative to the bucket."""
    parts = [("ci" if ci else "devel") + gcs_suffix]
    if fast:
        parts.append("fast")
    parts.append(version)
    return "/".join(parts)


class Publisher:
    """Copies a staged tree to a bucket, refusing to overwrite by default."""

    def __init__(
        self, storage_client: StorageClient, bucket: str, allow_dup: bool = False
    ) -> None:
        self.storage = storage_client
        self.bucket = bucket
        self.allow_dup = allow_dup

    def push(self, src_path: str | Path, gcs_path: str) -> list[str]:
        """
        Upload *src_path* recursively to ``<bucket>/<gcs_path>``.

        Raises ``AlreadyPublishedError`` when objects exist at the destination
        and duplicates are not allowed.
        """
        logger.info("Pushing release artifacts")
        try:
            return self.storage.copy_dir(
                Path(src_path), self.bucket, gcs_path, no_clobber=not self.allow_dup
            )
        except PushBuildError as exc:
            raise exc.add_context("copy artifacts to GCS")
        except GoogleAuthError as exc:
            raise credentials_error(exc).add_context("copy artifacts to GCS") from exc
        except (gapi_exceptions.GoogleAPIError, OSError) as exc:
            raise PublishError(f"copy artifacts to GCS: {exc}") from exc


class PushOrchestrator:
    """
    Runs a push from version resolution to version markers.

    Stages run strictly in order; the first failing stage ends the run in
    ``PushState.FAILED`` with the error recorded in the returned report.
    Nothing is retried or rolled back.
    """

    def __init__(
        self,
        config: PushConfig,
        storage_client: StorageClient | None = None,
        resolver: VersionResolver | None = None,
        stager: ArtifactStager | None = None,
        images: ImagePublisher | None = None,
        markers: ReleaseMarkerPublisher | None = None,
    ) -> None:
        self.config = config
        self.storage = storage_client or GCSStorageClient()
        self.resolver = resolver or VersionResolver(config.build_dir)
        self.stager = stager or ArtifactStager(config.build_dir)
        self.permissions = PermissionChecker(self.storage)
        self.publisher = Publisher(self.storage, config.bucket, config.allow_dup)
        self.images = images or ImagePublisher()
        self.markers = markers or ReleaseMarkerPublisher(self.storage)

    def run(self) -> PushReport:
        cfg = self.config
        report = PushReport()

        outcome = self._stage(
            report, "find latest version", PushState.VERSION_RESOLVED,
            self.resolver.resolve, cfg.version_suffix, cfg.ci,
        )
        if not outcome.ok:
            return report
        version: str = outcome.value
        report.version = version
        logger.info("Latest version is %s", version)

        outcome = self._stage(
            report, "check bucket permissions", PushState.PERMISSION_VERIFIED,
            self.permissions.check, cfg.bucket,
        )
        if not outcome.ok:
            return report

        outcome = self._stage(
            report, "staging local artifacts", PushState.STAGED,
            self.stager.stage, version,
        )
        if not outcome.ok:
            return report
        stage_dir: Path = outcome.value

        destination = compute_destination(cfg.ci, cfg.gcs_suffix, cfg.fast, version)
        report.destination = destination
        logger.info("GCS destination is %s", destination)

        outcome = self._stage(
            report, "push release artifacts", PushState.ARTIFACTS_PUSHED,
            self.publisher.push, stage_dir, destination,
        )
        if not outcome.ok:
            return report

        if cfg.docker_registry:
            tag = normalize_tag(version)
            outcome = self._stage(
                report, "publish container images", PushState.IMAGES_PUSHED,
                self.images.publish, cfg.docker_registry, tag, cfg.build_dir,
            )
            if not outcome.ok:
                return report

            if cfg.validate_remote_image_digests:
                outcome = self._stage(
                    report, "validate container images", PushState.IMAGES_PUSHED,
                    self.images.validate, cfg.docker_registry, tag, cfg.build_dir,
                )
                if not outcome.ok:
                    return report

        if not cfg.ci:
            logger.info("No CI flag set, we're done")
            report.state = PushState.DONE
            return report

        outcome = self._stage(
            report, "publish release", PushState.MARKERS_PUBLISHED,
            self.markers.publish_version,
            destination, version, cfg.build_dir, cfg.bucket, cfg.extra_markers,
            cfg.private_bucket, cfg.fast, cfg.no_update_latest,
        )
        if not outcome.ok:
            return report

        report.state = PushState.DONE
        return report

    def push(self) -> PushReport:
        """Like ``run`` but raises the stage error on failure."""
        report = self.run()
        report.raise_for_failure()
        return report

    def _stage(
        self,
        report: PushReport,
        name: str,
        state: PushState,
        func: Callable[..., Any],
        *args: Any,
    ) -> StageOutcome:
        try:
            value = func(*args)
        except PushBuildError as exc:
            exc.add_context(name)
            logger.error("Push failed: %s", exc)
            outcome = StageOutcome(stage=name, ok=False, detail=str(exc), error=exc)
            report.outcomes.append(outcome)
            report.state = PushState.FAILED
            report.failed_stage = name
            report.error = exc
            return outcome

        outcome = StageOutcome(stage=name, ok=True, value=value)
        report.outcomes.append(outcome)
        report.state = state
        return outcome
