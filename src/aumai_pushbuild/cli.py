"""CLI entry point for aumai-pushbuild."""

from __future__ import annotations

import logging
import sys
from typing import NoReturn

import click
from pydantic import ValidationError

from .core import PushOrchestrator, compute_destination
from .errors import ConfigurationError, PushBuildError
from .models import PushConfig
from .settings import PushSettings
from .staging import ArtifactStager
from .version import VersionResolver

settings = PushSettings()


def _fail(exc: PushBuildError) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(exc.exit_code)


@click.group()
@click.version_option()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--quiet", "-q", is_flag=True, help="Only log warnings and errors.")
def main(verbose: bool, quiet: bool) -> None:
    """AumAI PushBuild — push local release builds to a versioned bucket."""
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


@main.command("push")
@click.option(
    "--bucket",
    default=lambda: settings.bucket,
    help="Bucket to push to (normally the devel or ci bucket).",
)
@click.option(
    "--build-dir",
    default=lambda: settings.build_dir,
    type=click.Path(file_okay=False),
    help="Build output directory.",
)
@click.option(
    "--docker-registry",
    default=lambda: settings.docker_registry,
    help="If set, push container images to this registry.",
)
@click.option(
    "--extra-version-markers",
    default="",
    help="Comma separated extra version marker files to write (--ci only).",
)
@click.option(
    "--gcs-suffix",
    default=lambda: settings.gcs_suffix,
    help="Suffix appended to the upload destination.",
)
@click.option("--version-suffix", default="", help="Suffix appended to the version.")
@click.option(
    "--allow-dup",
    is_flag=True,
    help="Overwrite a build already present at the destination.",
)
@click.option("--ci", is_flag=True, help="CI run: refuse dirty builds, update markers.")
@click.option("--no-update-latest", is_flag=True, help="Do not update the latest markers.")
@click.option(
    "--private-bucket",
    is_flag=True,
    help="Do not make published markers publicly readable.",
)
@click.option("--fast", is_flag=True, help="Fast build (linux/amd64 only).")
@click.option(
    "--validate-images",
    "validate_remote_image_digests",
    is_flag=True,
    help="Check that remote image digests match the local ones (needs skopeo).",
)
def push_command(**options: object) -> None:
    """Stage the local build and push it to the bucket."""
    try:
        config = PushConfig(**options)
    except ValidationError as exc:
        _fail(ConfigurationError(str(exc)))

    report = PushOrchestrator(config).run()
    if report.error is not None:
        click.echo(f"Failed stage: {report.failed_stage}", err=True)
        _fail(report.error)

    click.echo(f"Pushed version: {report.version}")
    click.echo(f"  Bucket      : {config.bucket}")
    click.echo(f"  Destination : {report.destination}")


@main.command("stage")
@click.option(
    "--build-dir",
    default=lambda: settings.build_dir,
    type=click.Path(exists=True, file_okay=False),
    help="Build output directory.",
)
@click.option("--version-suffix", default="", help="Suffix appended to the version.")
@click.option("--ci", is_flag=True, help="Refuse dirty builds.")
def stage_command(build_dir: str, version_suffix: str, ci: bool) -> None:
    """Stage release artifacts locally without pushing them."""
    try:
        version = VersionResolver(build_dir).resolve(version_suffix, ci)
        stage_dir = ArtifactStager(build_dir).stage(version)
    except PushBuildError as exc:
        _fail(exc)

    click.echo(f"Staged version: {version}")
    click.echo(f"  Directory   : {stage_dir}")


@main.command("version")
@click.option(
    "--build-dir",
    default=lambda: settings.build_dir,
    type=click.Path(exists=True, file_okay=False),
    help="Build output directory.",
)
@click.option("--version-suffix", default="", help="Suffix appended to the version.")
@click.option("--ci", is_flag=True, help="Refuse dirty builds.")
def version_command(build_dir: str, version_suffix: str, ci: bool) -> None:
    """Print the version a push of BUILD_DIR would publish."""
    try:
        version = VersionResolver(build_dir).resolve(version_suffix, ci)
    except PushBuildError as exc:
        _fail(exc)
    click.echo(version)


@main.command("destination")
@click.argument("version")
@click.option("--gcs-suffix", default=lambda: settings.gcs_suffix)
@click.option("--ci", is_flag=True)
@click.option("--fast", is_flag=True)
def destination_command(version: str, gcs_suffix: str, ci: bool, fast: bool) -> None:
    """Print the bucket path VERSION would be pushed to."""
    click.echo(compute_destination(ci, gcs_suffix, fast, version))


if __name__ == "__main__":
    main()
