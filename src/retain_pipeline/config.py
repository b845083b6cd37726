"""
Configuration for a retention run.

The CI runner exposes run metadata as environment variables. They are
read exactly once, here, into an immutable PipelineContext that every
stage receives explicitly.
"""

import os
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from retain_pipeline.core.exceptions import ConfigurationError

_REPOSITORY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

# (field, environment variable, required)
_CONTEXT_ENV = (
    ("repository", "GITHUB_REPOSITORY", True),
    ("run_id", "GITHUB_RUN_ID", True),
    ("sha", "GITHUB_SHA", True),
    ("ref_name", "GITHUB_REF_NAME", False),
    ("workflow", "GITHUB_WORKFLOW", False),
    ("event_name", "GITHUB_EVENT_NAME", False),
    ("actor", "GITHUB_ACTOR", False),
    ("server_url", "GITHUB_SERVER_URL", False),
    ("api_url", "GITHUB_API_URL", False),
)


class PipelineContext(BaseModel):
    """Immutable description of the triggering pipeline run."""

    model_config = {"frozen": True}

    repository: str
    run_id: str
    sha: str
    ref_name: str = ""
    workflow: str = ""
    event_name: str = ""
    actor: str = ""
    server_url: str = "https://github.com"
    api_url: str = "https://api.github.com"
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def repository_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/{self.repository}"

    @property
    def run_url(self) -> str:
        return f"{self.repository_url}/actions/runs/{self.run_id}"

    @property
    def commit_url(self) -> str:
        return f"{self.repository_url}/commit/{self.sha}"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "PipelineContext":
        """
        Build the context from the CI runner's environment.

        Args:
            env: Mapping to read from (defaults to os.environ)

        Returns:
            Validated PipelineContext

        Raises:
            ConfigurationError: If a required variable is missing or malformed
        """
        env = os.environ if env is None else env
        values: dict[str, str] = {}
        for field_name, env_var, required in _CONTEXT_ENV:
            value = (env.get(env_var) or "").strip()
            if not value:
                if required:
                    raise ConfigurationError(
                        f"Required pipeline variable {env_var} is not set",
                        env_var=env_var,
                    )
                continue
            values[field_name] = value

        if not _REPOSITORY_PATTERN.match(values["repository"]):
            raise ConfigurationError(
                f"Repository must be in 'owner/name' form, got {values['repository']!r}",
                env_var="GITHUB_REPOSITORY",
            )
        return cls(**values)


class RetainConfig(BaseModel):
    """Caller inputs and runtime knobs for one retention run."""

    github_token: str = Field(default="", repr=False)
    release_tag: str | None = None
    release_name: str | None = None
    release_body: str | None = None
    prerelease: bool = False
    artifact_retention_days: int | None = None
    timeout_seconds: float = 60.0
    max_workers: int = 4
    max_attempts: int = 4
    work_dir: Path | None = None

    def validate_inputs(self) -> None:
        """
        Check inputs before any network call is made.

        Raises:
            ConfigurationError: If a required input is absent or out of range
        """
        if not self.github_token.strip():
            raise ConfigurationError(
                "A GitHub token is required (set github_token or GITHUB_TOKEN)",
                env_var="GITHUB_TOKEN",
                config_key="github_token",
            )
        if self.release_tag is not None and not self.release_tag.strip():
            raise ConfigurationError(
                "release_tag must not be blank when provided",
                config_key="release_tag",
            )
        if self.max_workers < 1:
            raise ConfigurationError(
                f"max_workers must be at least 1, got {self.max_workers}",
                config_key="max_workers",
            )
        if self.max_attempts < 1:
            raise ConfigurationError(
                f"max_attempts must be at least 1, got {self.max_attempts}",
                config_key="max_attempts",
            )
        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"timeout_seconds must be positive, got {self.timeout_seconds}",
                config_key="timeout_seconds",
            )
        if self.artifact_retention_days is not None and self.artifact_retention_days < 0:
            raise ConfigurationError(
                "artifact_retention_days must not be negative",
                config_key="artifact_retention_days",
            )
