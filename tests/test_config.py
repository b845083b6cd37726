"""Tests for configuration loading and validation."""

import pytest

from retain_pipeline.config import PipelineContext, RetainConfig
from retain_pipeline.core.exceptions import ConfigurationError


@pytest.fixture
def runner_env() -> dict[str, str]:
    return {
        "GITHUB_REPOSITORY": "acme/widgets",
        "GITHUB_RUN_ID": "12345678",
        "GITHUB_SHA": "abcdef1234567890",
        "GITHUB_REF_NAME": "main",
        "GITHUB_WORKFLOW": "Build",
        "GITHUB_EVENT_NAME": "push",
        "GITHUB_ACTOR": "octocat",
    }


class TestPipelineContext:
    """Tests for PipelineContext."""

    def test_from_env(self, runner_env: dict[str, str]) -> None:
        """All runner variables are read."""
        context = PipelineContext.from_env(runner_env)
        assert context.repository == "acme/widgets"
        assert context.run_id == "12345678"
        assert context.sha == "abcdef1234567890"
        assert context.ref_name == "main"
        assert context.workflow == "Build"
        assert context.event_name == "push"
        assert context.actor == "octocat"
        assert context.api_url == "https://api.github.com"

    def test_optional_variables_default(self, runner_env: dict[str, str]) -> None:
        """Optional variables fall back to defaults."""
        for key in ("GITHUB_REF_NAME", "GITHUB_WORKFLOW", "GITHUB_EVENT_NAME", "GITHUB_ACTOR"):
            del runner_env[key]
        context = PipelineContext.from_env(runner_env)
        assert context.ref_name == ""
        assert context.actor == ""

    @pytest.mark.parametrize("missing", ["GITHUB_REPOSITORY", "GITHUB_RUN_ID", "GITHUB_SHA"])
    def test_missing_required_variable(self, runner_env: dict[str, str], missing: str) -> None:
        """A missing required variable is a configuration error."""
        del runner_env[missing]
        with pytest.raises(ConfigurationError) as exc_info:
            PipelineContext.from_env(runner_env)
        assert exc_info.value.env_var == missing

    def test_blank_variable_counts_as_missing(self, runner_env: dict[str, str]) -> None:
        runner_env["GITHUB_RUN_ID"] = "   "
        with pytest.raises(ConfigurationError):
            PipelineContext.from_env(runner_env)

    def test_malformed_repository(self, runner_env: dict[str, str]) -> None:
        """Repository must be owner/name."""
        runner_env["GITHUB_REPOSITORY"] = "widgets"
        with pytest.raises(ConfigurationError, match="owner/name"):
            PipelineContext.from_env(runner_env)

    def test_urls(self, pipeline_context: PipelineContext) -> None:
        """Links point at the run and the commit."""
        assert pipeline_context.run_url == "https://github.com/acme/widgets/actions/runs/12345678"
        assert pipeline_context.commit_url == "https://github.com/acme/widgets/commit/abcdef1234567890"

    def test_enterprise_server_url(self, runner_env: dict[str, str]) -> None:
        runner_env["GITHUB_SERVER_URL"] = "https://ghe.example.com/"
        context = PipelineContext.from_env(runner_env)
        assert context.repository_url == "https://ghe.example.com/acme/widgets"


class TestRetainConfig:
    """Tests for RetainConfig validation."""

    def test_defaults(self) -> None:
        config = RetainConfig(github_token="t")
        assert config.timeout_seconds == 60.0
        assert config.max_workers == 4
        assert config.max_attempts == 4
        assert config.prerelease is False
        config.validate_inputs()

    def test_missing_token(self) -> None:
        """A token is required."""
        with pytest.raises(ConfigurationError) as exc_info:
            RetainConfig().validate_inputs()
        assert exc_info.value.config_key == "github_token"

    def test_token_hidden_from_repr(self) -> None:
        assert "ghp_secret" not in repr(RetainConfig(github_token="ghp_secret"))

    @pytest.mark.parametrize(
        "overrides, key",
        [
            ({"release_tag": "  "}, "release_tag"),
            ({"max_workers": 0}, "max_workers"),
            ({"max_attempts": 0}, "max_attempts"),
            ({"timeout_seconds": 0}, "timeout_seconds"),
            ({"artifact_retention_days": -1}, "artifact_retention_days"),
        ],
    )
    def test_out_of_range_values(self, overrides: dict, key: str) -> None:
        """Out-of-range values are rejected with the offending key."""
        with pytest.raises(ConfigurationError) as exc_info:
            RetainConfig(github_token="t", **overrides).validate_inputs()
        assert exc_info.value.config_key == key
