"""
GitHub client - the upstream API surface used by the pipeline.

Covers repository metadata, run artifacts, and releases. JSON responses
are parsed into core models here so no stage ever sees a raw payload.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from retain_pipeline.core.exceptions import (
    DiscoveryError,
    GitHubAPIError,
    PermissionDeniedError,
    RetainError,
    TransientNetworkError,
)
from retain_pipeline.core.models import (
    Artifact,
    OwnerKind,
    PublishedRelease,
    ReleaseAsset,
    ReleaseDescriptor,
    RepositoryContext,
    SecurityFeature,
    Visibility,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_UPLOAD_URL = "https://uploads.github.com"
API_VERSION = "2022-11-28"
PAGE_SIZE = 100
CHUNK_SIZE = 1024 * 1024


@dataclass
class ArtifactPage:
    """One page of a run's artifact listing."""

    artifacts: list[Artifact]
    total_count: int


class GitHubClient:
    """
    Synchronous GitHub REST client bound to a single repository.

    Every call carries a timeout. Failures are mapped to:
    - TransientNetworkError: timeouts, transport errors, 5xx, rate limits
    - PermissionDeniedError: 401 and non-rate-limit 403
    - GitHubAPIError: any other 4xx, a malformed body, or a redirect loop
    """

    def __init__(
        self,
        token: str,
        repository: str,
        *,
        api_url: str = DEFAULT_API_URL,
        upload_url: str = DEFAULT_UPLOAD_URL,
        timeout_seconds: float = 60.0,
        http_client: httpx.Client | None = None,
    ):
        """
        Initialize the client.

        Args:
            token: Credential with repository-write and artifact-read scope
            repository: Repository slug in owner/name form
            api_url: REST API base URL
            upload_url: Base URL for release asset uploads
            timeout_seconds: Timeout applied to every request
            http_client: Pre-built httpx client (tests inject a mock transport)
        """
        self._repository = repository
        self._api_url = api_url.rstrip("/")
        self._upload_url = upload_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }
        self._client = http_client or httpx.Client(timeout=timeout_seconds)

    @property
    def repository(self) -> str:
        return self._repository

    def _repo_url(self, path: str = "") -> str:
        return f"{self._api_url}/repos/{self._repository}{path}"

    # ------------------------------------------------------------------
    # Transport and error mapping
    # ------------------------------------------------------------------

    def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise _request_error(e, operation) from e
        self._raise_for_status(response, operation)
        return response

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        """Convert HTTP error statuses to pipeline exceptions."""
        status_code = response.status_code
        if status_code < 400:
            return

        message, error_codes = _error_body(response)
        retry_after = _retry_after(response)

        if status_code == 429 or (status_code == 403 and _is_rate_limited(response, message)):
            raise TransientNetworkError(
                f"Rate limited during {operation}: {message}",
                status_code=status_code,
                retry_after=retry_after,
                details={"operation": operation},
            )
        if status_code in (401, 403):
            raise PermissionDeniedError(
                f"Permission denied during {operation}: {message}",
                operation=operation,
                status_code=status_code,
            )
        if status_code >= 500:
            raise TransientNetworkError(
                f"Server error {status_code} during {operation}",
                status_code=status_code,
                retry_after=retry_after,
                details={"operation": operation},
            )
        raise GitHubAPIError(
            f"HTTP {status_code} during {operation}: {message}",
            status_code=status_code,
            error_codes=error_codes,
            details={"operation": operation},
        )

    @staticmethod
    def _json(response: httpx.Response, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise GitHubAPIError(
                f"Malformed JSON response during {operation}",
                status_code=response.status_code,
                details={"operation": operation},
            ) from e

    # ------------------------------------------------------------------
    # Repository metadata
    # ------------------------------------------------------------------

    def get_repository(self) -> RepositoryContext:
        """
        Fetch repository metadata.

        Raises:
            DiscoveryError: If the payload lacks owner kind or is malformed
        """
        response = self._request("GET", self._repo_url(), "fetch repository metadata")
        data = self._json(response, "fetch repository metadata")
        return parse_repository(data, self._repository)

    # ------------------------------------------------------------------
    # Run artifacts
    # ------------------------------------------------------------------

    def list_run_artifacts(self, run_id: str, page: int = 1, per_page: int = PAGE_SIZE) -> ArtifactPage:
        """Fetch one page of the artifacts attached to a run."""
        operation = "list run artifacts"
        response = self._request(
            "GET",
            self._repo_url(f"/actions/runs/{run_id}/artifacts"),
            operation,
            params={"per_page": per_page, "page": page},
        )
        data = self._json(response, operation)
        if not isinstance(data, dict) or not isinstance(data.get("artifacts"), list):
            raise DiscoveryError(
                "Artifact listing is missing the 'artifacts' array",
                run_id=run_id,
                repository=self._repository,
            )
        artifacts = [parse_artifact(item, run_id) for item in data["artifacts"]]
        total_count = data.get("total_count", len(artifacts))
        if not isinstance(total_count, int) or total_count < 0:
            raise DiscoveryError(
                f"Artifact listing has invalid total_count {total_count!r}",
                run_id=run_id,
            )
        return ArtifactPage(artifacts=artifacts, total_count=total_count)

    def download_artifact(self, artifact: Artifact, destination: Path) -> int:
        """
        Stream an artifact's packaged content to a local file.

        The store redirects to short-lived blob storage; the credential
        is dropped on that cross-origin hop by httpx.

        Returns:
            Number of bytes written
        """
        operation = f"download artifact {artifact.name}"
        url = artifact.download_url or self._repo_url(
            f"/actions/artifacts/{artifact.artifact_id}/zip"
        )
        written = 0
        try:
            with self._client.stream(
                "GET", url, headers=self._headers, follow_redirects=True
            ) as response:
                if response.status_code >= 400:
                    response.read()
                    self._raise_for_status(response, operation)
                with destination.open("wb") as fh:
                    for chunk in response.iter_bytes(chunk_size=CHUNK_SIZE):
                        fh.write(chunk)
                        written += len(chunk)
        except httpx.HTTPError as e:
            raise _request_error(e, operation) from e
        return written

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def get_release_by_tag(self, tag: str) -> PublishedRelease | None:
        """Return the release carrying tag, or None if there is none."""
        operation = f"look up release {tag}"
        try:
            response = self._request("GET", self._repo_url(f"/releases/tags/{tag}"), operation)
        except GitHubAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return parse_release(self._json(response, operation))

    def create_release(self, descriptor: ReleaseDescriptor) -> PublishedRelease:
        """Create a release from a descriptor."""
        operation = f"create release {descriptor.tag}"
        payload: dict[str, Any] = {
            "tag_name": descriptor.tag,
            "name": descriptor.title,
            "body": descriptor.body,
            "prerelease": descriptor.prerelease,
            "draft": False,
        }
        if descriptor.target_commitish:
            payload["target_commitish"] = descriptor.target_commitish
        response = self._request("POST", self._repo_url("/releases"), operation, json=payload)
        return parse_release(self._json(response, operation))

    def list_release_assets(self, release_id: str) -> list[ReleaseAsset]:
        """List every asset currently attached to a release."""
        operation = f"list assets of release {release_id}"
        assets: list[ReleaseAsset] = []
        page = 1
        while True:
            response = self._request(
                "GET",
                self._repo_url(f"/releases/{release_id}/assets"),
                operation,
                params={"per_page": PAGE_SIZE, "page": page},
            )
            data = self._json(response, operation)
            if not isinstance(data, list):
                raise GitHubAPIError(
                    f"Malformed asset listing during {operation}",
                    details={"operation": operation},
                )
            assets.extend(parse_asset(item) for item in data)
            if len(data) < PAGE_SIZE:
                return assets
            page += 1

    def upload_release_asset(
        self, release: PublishedRelease, name: str, path: Path
    ) -> ReleaseAsset:
        """Stream a local file to the release as a named asset."""
        operation = f"upload asset {name}"
        if release.upload_url:
            url = release.upload_url.split("{", 1)[0]
        else:
            url = f"{self._upload_url}/repos/{self._repository}/releases/{release.release_id}/assets"
        size = path.stat().st_size
        response = self._request(
            "POST",
            url,
            operation,
            params={"name": name},
            headers={"Content-Type": "application/zip", "Content-Length": str(size)},
            content=_iter_file(path),
        )
        return parse_asset(self._json(response, operation))

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, *args):
        """Context manager exit."""
        self.close()


# ----------------------------------------------------------------------
# Boundary parsing
# ----------------------------------------------------------------------


def parse_repository(data: Any, repository: str) -> RepositoryContext:
    """
    Parse repository metadata into a RepositoryContext.

    Raises:
        DiscoveryError: If the owner kind is missing or unknown
    """
    if not isinstance(data, dict):
        raise DiscoveryError("Repository metadata is not an object", repository=repository)

    owner = data.get("owner") or {}
    try:
        owner_kind = OwnerKind(owner.get("type"))
    except (ValueError, AttributeError) as e:
        raise DiscoveryError(
            f"Repository metadata has unknown owner type {owner!r}",
            repository=repository,
        ) from e

    visibility = None
    if data.get("visibility"):
        try:
            visibility = Visibility(data["visibility"])
        except ValueError:
            logger.debug(f"Ignoring unknown visibility {data['visibility']!r}")

    features = set()
    security = data.get("security_and_analysis") or {}
    if isinstance(security, dict):
        for feature in SecurityFeature:
            entry = security.get(feature.value)
            if isinstance(entry, dict) and entry.get("status") == "enabled":
                features.add(feature)

    private = data.get("private")
    return RepositoryContext(
        full_name=data.get("full_name") or repository,
        owner_kind=owner_kind,
        visibility=visibility,
        private=private if isinstance(private, bool) else None,
        security_features=frozenset(features),
    )


def parse_artifact(item: Any, run_id: str) -> Artifact:
    """
    Parse one artifact listing entry.

    Raises:
        DiscoveryError: If required fields are missing or invalid
    """
    if not isinstance(item, dict):
        raise DiscoveryError("Artifact entry is not an object", run_id=run_id)
    try:
        created_at = item.get("created_at")
        return Artifact(
            artifact_id=str(item["id"]),
            name=item["name"],
            size_in_bytes=item["size_in_bytes"],
            created_at=datetime.fromisoformat(created_at.replace("Z", "+00:00"))
            if created_at
            else None,
            download_url=item.get("archive_download_url"),
            expired=bool(item.get("expired", False)),
        )
    except (KeyError, TypeError, ValueError, ValidationError) as e:
        raise DiscoveryError(
            f"Malformed artifact entry: {e}",
            run_id=run_id,
            details={"entry": {k: item.get(k) for k in ("id", "name", "size_in_bytes")}},
        ) from e


def parse_release(data: Any) -> PublishedRelease:
    """Parse a release payload into a PublishedRelease."""
    try:
        return PublishedRelease(
            release_id=str(data["id"]),
            url=data["html_url"],
            tag=data["tag_name"],
            upload_url=data.get("upload_url"),
        )
    except (KeyError, TypeError, ValidationError) as e:
        raise GitHubAPIError(f"Malformed release payload: {e}") from e


def parse_asset(data: Any) -> ReleaseAsset:
    """Parse a release asset payload."""
    try:
        return ReleaseAsset(
            asset_id=str(data["id"]),
            name=data["name"],
            size=data.get("size", 0),
            state=data.get("state", "uploaded"),
        )
    except (KeyError, TypeError, ValidationError) as e:
        raise GitHubAPIError(f"Malformed asset payload: {e}") from e


def _iter_file(path: Path) -> Iterator[bytes]:
    with path.open("rb") as fh:
        while chunk := fh.read(CHUNK_SIZE):
            yield chunk


def _request_error(error: httpx.HTTPError, operation: str) -> RetainError:
    """
    Map an httpx failure raised before a status code was available.

    Timeouts and transport failures are transient; anything else (redirect
    loops, undecodable bodies) is a permanent GitHubAPIError.
    """
    details = {"operation": operation}
    if isinstance(error, httpx.TimeoutException):
        return TransientNetworkError(f"Timed out during {operation}", details=details)
    if isinstance(error, httpx.TransportError):
        return TransientNetworkError(f"Network error during {operation}: {error}", details=details)
    details["error_type"] = type(error).__name__
    return GitHubAPIError(f"Request failed during {operation}: {error}", details=details)


def _error_body(response: httpx.Response) -> tuple[str, list[str]]:
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or "unknown error", []
    if not isinstance(data, dict):
        return str(data), []
    codes = [
        err.get("code")
        for err in data.get("errors") or []
        if isinstance(err, dict) and err.get("code")
    ]
    return data.get("message") or response.reason_phrase or "unknown error", codes


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _is_rate_limited(response: httpx.Response, message: str) -> bool:
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    if "retry-after" in response.headers:
        return True
    return "rate limit" in message.lower()
