"""
Retain Pipeline exception hierarchy.

Defines the error taxonomy shared by every pipeline stage. Stage-fatal
errors halt the run; transfer errors are recorded per artifact.
"""

from typing import Any


class RetainError(Exception):
    """
    Base exception for all Retain Pipeline errors.

    All custom exceptions inherit from this class, allowing
    generic catch blocks and consistent error reporting.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        """
        Initialize a RetainError.

        Args:
            message: Human-readable error message
            details: Optional structured data for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def stage(self) -> str | None:
        """Pipeline stage the error was raised in, if annotated."""
        return self.details.get("stage")

    def with_stage(self, stage: str) -> "RetainError":
        """Annotate the error with the stage that raised it."""
        self.details.setdefault("stage", stage)
        return self

    def __str__(self) -> str:
        """Return string representation with details."""
        base = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{base} ({details_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(RetainError):
    """
    Missing or invalid required input.

    Raised before any network call when:
    - The credential is absent
    - Pipeline context variables are missing
    - Configuration values are out of range
    """

    def __init__(
        self,
        message: str,
        *,
        env_var: str | None = None,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a ConfigurationError.

        Args:
            message: Human-readable error message
            env_var: Environment variable name if applicable
            config_key: Configuration key if applicable
            details: Optional structured data for debugging
        """
        details = details or {}
        if env_var:
            details["env_var"] = env_var
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, details=details)
        self.env_var = env_var
        self.config_key = config_key


class PermissionDeniedError(RetainError):
    """
    The credential lacks the scope required for a call.

    Always fatal and never retried.
    """

    def __init__(
        self,
        message: str = "Credential lacks required permission",
        *,
        operation: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if operation:
            details["operation"] = operation
        if status_code:
            details["status_code"] = status_code

        super().__init__(message, details=details)
        self.operation = operation
        self.status_code = status_code


class DiscoveryError(RetainError):
    """
    Repository metadata or the artifact listing is unusable.

    Raised when:
    - Metadata or listing cannot be retrieved
    - A response is malformed
    - Two artifacts map to the same asset name
    """

    def __init__(
        self,
        message: str,
        *,
        run_id: str | None = None,
        repository: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if run_id:
            details["run_id"] = run_id
        if repository:
            details["repository"] = repository

        super().__init__(message, details=details)
        self.run_id = run_id
        self.repository = repository


class TagConflictError(RetainError):
    """Raised when the requested release tag already exists or was altered."""

    def __init__(
        self,
        message: str = "Release tag already exists",
        *,
        tag: str | None = None,
        confirmed_tag: str | None = None,
    ):
        details = {}
        if tag:
            details["tag"] = tag
        if confirmed_tag:
            details["confirmed_tag"] = confirmed_tag
        super().__init__(message, details=details)
        self.tag = tag
        self.confirmed_tag = confirmed_tag


class PublishError(RetainError):
    """
    The release could not be published.

    Raised when the destination stays unreachable after retries, or
    rejects release creation for a reason other than an existing tag.
    """

    def __init__(
        self,
        message: str,
        *,
        tag: str | None = None,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if tag:
            details["tag"] = tag
        if operation:
            details["operation"] = operation
        super().__init__(message, details=details)
        self.tag = tag
        self.operation = operation


class TransferError(RetainError):
    """
    Failure moving one artifact into the release.

    Scoped to a single artifact; recorded as a failed outcome and
    never aborts sibling transfers.
    """

    kind = "transfer_failed"

    def __init__(
        self,
        message: str,
        *,
        artifact_id: str | None = None,
        artifact_name: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if artifact_id:
            details["artifact_id"] = artifact_id
        if artifact_name:
            details["artifact_name"] = artifact_name

        super().__init__(message, details=details)
        self.artifact_id = artifact_id
        self.artifact_name = artifact_name


class DownloadFailedError(TransferError):
    """Raised when artifact content cannot be retrieved from the store."""

    kind = "download_failed"


class UploadFailedError(TransferError):
    """Raised when an asset cannot be attached to, or verified on, the release."""

    kind = "upload_failed"


class TransientNetworkError(RetainError):
    """
    Retryable failure: timeout, 5xx, or rate limit.

    Resolved by the retry policy; only escalated once retries are exhausted.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if status_code:
            details["status_code"] = status_code
        if retry_after is not None:
            details["retry_after_seconds"] = retry_after
        super().__init__(message, details=details)
        self.status_code = status_code
        self.retry_after = retry_after


class GitHubAPIError(RetainError):
    """Non-retryable HTTP failure that is not a permission problem."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_codes: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if status_code:
            details["status_code"] = status_code
        if error_codes:
            details["error_codes"] = error_codes
        super().__init__(message, details=details)
        self.status_code = status_code
        self.error_codes = error_codes or []

    @property
    def already_exists(self) -> bool:
        """True if the API rejected the request because the resource exists."""
        return self.status_code == 422 and "already_exists" in self.error_codes


class RunCancelledError(RetainError):
    """Raised when the caller cancels the run at a blocking-call boundary."""

    def __init__(self, message: str = "Run cancelled by caller", **kwargs):
        super().__init__(message, **kwargs)


def format_exception(error: Exception) -> str:
    """
    Format an exception for user-friendly display.

    Args:
        error: The exception to format

    Returns:
        Formatted error message string
    """
    if isinstance(error, RetainError):
        return str(error)
    return f"{error.__class__.__name__}: {error}"


def is_fatal_error(error: Exception) -> bool:
    """
    Determine if an error must abort the whole run.

    Args:
        error: The exception to check

    Returns:
        True for credential loss and cancellation
    """
    return isinstance(error, (PermissionDeniedError, RunCancelledError))
