"""
Release publisher.

Creates the tagged release and confirms its asset list is queryable
before any attachment starts. Existing tags are never reused.
"""

import logging
import threading
from typing import Any, Callable, TypeVar

from retain_pipeline.core.exceptions import (
    GitHubAPIError,
    PublishError,
    TagConflictError,
    TransientNetworkError,
)
from retain_pipeline.core.models import PublishedRelease, ReleaseDescriptor
from retain_pipeline.github.client import GitHubClient
from retain_pipeline.github.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReleasePublisher:
    """Publishes a ReleaseDescriptor as a new release."""

    def __init__(
        self,
        client: GitHubClient,
        retry_policy: RetryPolicy | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ):
        self._client = client
        self._retry = retry_policy or RetryPolicy()
        self._cancel_event = cancel_event

    def publish(self, descriptor: ReleaseDescriptor) -> PublishedRelease:
        """
        Create the release described by descriptor.

        Returns:
            The confirmed release, with its asset list reachable

        Raises:
            TagConflictError: If the tag exists or the destination altered it
            PermissionDeniedError: If the credential cannot create releases
            PublishError: If the destination stays unreachable or rejects
                the request for another reason
        """
        existing = self._call(
            "release lookup", descriptor.tag, self._client.get_release_by_tag, descriptor.tag
        )
        if existing is not None:
            raise TagConflictError(
                f"Release tag {descriptor.tag!r} already exists",
                tag=descriptor.tag,
            )

        release = self._create(descriptor)

        if release.tag != descriptor.tag:
            raise TagConflictError(
                f"Destination normalized tag {descriptor.tag!r} to {release.tag!r}",
                tag=descriptor.tag,
                confirmed_tag=release.tag,
            )

        # Ordering barrier: attachments start only once assets are listable
        self._call(
            "asset listing", release.tag, self._client.list_release_assets, release.release_id
        )
        logger.info(f"Published release {release.tag} ({release.url})")
        return release

    def _call(self, operation: str, tag: str, fn: Callable[..., T], *args: Any) -> T:
        """Run fn under the retry policy, mapping exhausted or rejected calls to PublishError."""
        try:
            return self._retry.call(fn, *args, cancel_event=self._cancel_event)
        except (TransientNetworkError, GitHubAPIError) as e:
            raise _publish_error(operation, tag, e) from e

    def _create(self, descriptor: ReleaseDescriptor) -> PublishedRelease:
        attempts = 0

        def create() -> PublishedRelease:
            nonlocal attempts
            attempts += 1
            return self._client.create_release(descriptor)

        try:
            return self._retry.call(create, cancel_event=self._cancel_event)
        except TransientNetworkError as e:
            raise _publish_error("release creation", descriptor.tag, e) from e
        except GitHubAPIError as e:
            if not e.already_exists:
                raise _publish_error("release creation", descriptor.tag, e) from e
            if attempts > 1:
                # An earlier attempt may have landed before timing out
                adopted = self._adopt_own_release(descriptor)
                if adopted is not None:
                    return adopted
            raise TagConflictError(
                f"Release tag {descriptor.tag!r} already exists",
                tag=descriptor.tag,
            ) from e

    def _adopt_own_release(self, descriptor: ReleaseDescriptor) -> PublishedRelease | None:
        release = self._call(
            "release lookup", descriptor.tag, self._client.get_release_by_tag, descriptor.tag
        )
        if release is None or release.tag != descriptor.tag:
            return None
        logger.warning(
            f"Release {descriptor.tag} was created by a timed-out attempt; using it"
        )
        return release


def _publish_error(
    operation: str, tag: str, error: TransientNetworkError | GitHubAPIError
) -> PublishError:
    reason = "unreachable" if isinstance(error, TransientNetworkError) else "rejected"
    details: dict[str, Any] = {"cause": type(error).__name__}
    status_code = getattr(error, "status_code", None)
    if status_code:
        details["status_code"] = status_code
    return PublishError(
        f"Release {operation} {reason}: {error.message}",
        tag=tag,
        operation=operation,
        details=details,
    )
