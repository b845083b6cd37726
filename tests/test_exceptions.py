"""Tests for the exception hierarchy."""

from retain_pipeline.core.exceptions import (
    ConfigurationError,
    DiscoveryError,
    DownloadFailedError,
    GitHubAPIError,
    PermissionDeniedError,
    PublishError,
    RetainError,
    RunCancelledError,
    TagConflictError,
    TransferError,
    TransientNetworkError,
    UploadFailedError,
    format_exception,
    is_fatal_error,
)


class TestRetainError:
    """Tests for the base exception."""

    def test_str_includes_details(self) -> None:
        """Details are appended to the message."""
        error = RetainError("boom", details={"key": "value"})
        assert str(error) == "boom (key=value)"

    def test_str_without_details(self) -> None:
        assert str(RetainError("boom")) == "boom"

    def test_to_dict(self) -> None:
        """Errors serialize with their class name."""
        error = DiscoveryError("bad listing", run_id="42")
        assert error.to_dict() == {
            "error_type": "DiscoveryError",
            "message": "bad listing",
            "details": {"run_id": "42"},
        }

    def test_with_stage_keeps_first_annotation(self) -> None:
        """The innermost stage wins when annotated twice."""
        error = RetainError("boom").with_stage("inventory").with_stage("publish")
        assert error.stage == "inventory"

    def test_all_errors_share_base(self) -> None:
        """Every pipeline error is a RetainError."""
        for cls in (
            ConfigurationError,
            DiscoveryError,
            GitHubAPIError,
            PermissionDeniedError,
            PublishError,
            TagConflictError,
            TransferError,
            TransientNetworkError,
            RunCancelledError,
        ):
            assert issubclass(cls, RetainError)


class TestSpecificErrors:
    """Tests for individual error types."""

    def test_configuration_error_fields(self) -> None:
        error = ConfigurationError("missing", env_var="GITHUB_TOKEN", config_key="github_token")
        assert error.details == {"env_var": "GITHUB_TOKEN", "config_key": "github_token"}

    def test_tag_conflict_records_both_tags(self) -> None:
        """Conflicts keep the requested and confirmed tags."""
        error = TagConflictError(tag="v1", confirmed_tag="v1-1")
        assert error.tag == "v1"
        assert error.details["confirmed_tag"] == "v1-1"

    def test_publish_error_fields(self) -> None:
        error = PublishError("unreachable", tag="v1", operation="release creation")
        assert error.details == {"tag": "v1", "operation": "release creation"}
        assert not is_fatal_error(error)

    def test_transfer_error_kinds(self) -> None:
        """Download and upload failures carry distinct kinds."""
        assert DownloadFailedError("x").kind == "download_failed"
        assert UploadFailedError("x").kind == "upload_failed"
        assert issubclass(DownloadFailedError, TransferError)

    def test_already_exists(self) -> None:
        """Only a 422 with the already_exists code counts."""
        assert GitHubAPIError("x", status_code=422, error_codes=["already_exists"]).already_exists
        assert not GitHubAPIError("x", status_code=422, error_codes=["invalid"]).already_exists
        assert not GitHubAPIError("x", status_code=404).already_exists

    def test_transient_retry_after(self) -> None:
        error = TransientNetworkError("slow down", status_code=429, retry_after=5.0)
        assert error.details == {"status_code": 429, "retry_after_seconds": 5.0}


class TestHelpers:
    """Tests for module helper functions."""

    def test_format_retain_error(self) -> None:
        assert format_exception(DiscoveryError("gone", run_id="7")) == "gone (run_id=7)"

    def test_format_foreign_error(self) -> None:
        """Non-pipeline errors are prefixed with their type."""
        assert format_exception(ValueError("bad")) == "ValueError: bad"

    def test_is_fatal_error(self) -> None:
        """Permission loss and cancellation abort the run."""
        assert is_fatal_error(PermissionDeniedError())
        assert is_fatal_error(RunCancelledError())
        assert not is_fatal_error(UploadFailedError("x"))
        assert not is_fatal_error(TransientNetworkError("x"))
