from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PushSettings(BaseSettings):
    """Environment defaults for the push CLI.

    Every value can be overridden via environment variables. Prefix: ``PUSHBUILD_``.
    """

    bucket: str = "kubernetes-release-dev"
    build_dir: str = Field(default="_output")
    docker_registry: str = ""
    gcs_suffix: str = ""

    model_config = SettingsConfigDict(env_prefix="PUSHBUILD_", extra="ignore")
