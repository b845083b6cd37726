"""Pytest configuration and fixtures."""

import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest

from retain_pipeline.config import PipelineContext, RetainConfig
from retain_pipeline.core.exceptions import (
    GitHubAPIError,
    PermissionDeniedError,
    TransientNetworkError,
)
from retain_pipeline.core.models import (
    Artifact,
    ArtifactInventory,
    OwnerKind,
    PublishedRelease,
    ReleaseAsset,
    ReleaseDescriptor,
    RepositoryContext,
    SecurityFeature,
    Visibility,
)
from retain_pipeline.github.client import ArtifactPage
from retain_pipeline.github.retry import RetryPolicy


class FakeGitHub:
    """
    In-memory stand-in for GitHubClient.

    Failure knobs:
    - download_failures / upload_failures: artifact or asset name -> number
      of transient failures before success (-1 fails forever)
    - download_errors / upload_errors: artifact or asset name -> exception
      raised on every attempt
    - existing_tags: tags that already have a release
    - deny_create: reject release creation with 403
    - normalize_tag: callable applied to the tag the destination confirms
    """

    def __init__(
        self,
        artifacts: list[Artifact] | None = None,
        *,
        repository_context: RepositoryContext | None = None,
        repository: str = "acme/widgets",
    ):
        self.repository = repository
        self.artifacts = list(artifacts or [])
        self.repository_context = repository_context or RepositoryContext(
            full_name=repository,
            owner_kind=OwnerKind.ORGANIZATION,
            visibility=Visibility.PRIVATE,
            security_features=frozenset({SecurityFeature.SECRET_SCANNING}),
        )
        self.existing_tags: set[str] = set()
        self.deny_create = False
        self.normalize_tag = None
        self.download_failures: dict[str, int] = {}
        self.upload_failures: dict[str, int] = {}
        self.download_errors: dict[str, Exception] = {}
        self.upload_errors: dict[str, Exception] = {}
        self.hide_assets: set[str] = set()

        self.created: list[ReleaseDescriptor] = []
        self.assets: list[ReleaseAsset] = []
        self.downloads: list[str] = []
        self.upload_attempts: list[str] = []
        self.list_pages: list[int] = []
        self._lock = threading.Lock()

    # Repository ---------------------------------------------------------

    def get_repository(self) -> RepositoryContext:
        return self.repository_context

    # Artifacts ----------------------------------------------------------

    def list_run_artifacts(self, run_id: str, page: int = 1, per_page: int = 100) -> ArtifactPage:
        self.list_pages.append(page)
        start = (page - 1) * per_page
        return ArtifactPage(
            artifacts=self.artifacts[start:start + per_page],
            total_count=len(self.artifacts),
        )

    def download_artifact(self, artifact: Artifact, destination: Path) -> int:
        with self._lock:
            self.downloads.append(artifact.name)
            if artifact.name in self.download_errors:
                raise self.download_errors[artifact.name]
            if self._should_fail(self.download_failures, artifact.name):
                raise TransientNetworkError(f"download of {artifact.name} timed out")
        destination.write_bytes(b"x" * artifact.size_in_bytes)
        return artifact.size_in_bytes

    # Releases -----------------------------------------------------------

    def get_release_by_tag(self, tag: str) -> PublishedRelease | None:
        if tag in self.existing_tags:
            return self._release(tag, "99")
        return None

    def create_release(self, descriptor: ReleaseDescriptor) -> PublishedRelease:
        if self.deny_create:
            raise PermissionDeniedError("Resource not accessible by integration", status_code=403)
        if descriptor.tag in self.existing_tags:
            raise GitHubAPIError("Validation Failed", status_code=422, error_codes=["already_exists"])
        self.created.append(descriptor)
        self.existing_tags.add(descriptor.tag)
        tag = self.normalize_tag(descriptor.tag) if self.normalize_tag else descriptor.tag
        return self._release(tag, "1")

    def list_release_assets(self, release_id: str) -> list[ReleaseAsset]:
        with self._lock:
            return [a for a in self.assets if a.name not in self.hide_assets]

    def upload_release_asset(self, release: PublishedRelease, name: str, path: Path) -> ReleaseAsset:
        size = path.stat().st_size
        with self._lock:
            self.upload_attempts.append(name)
            if name in self.upload_errors:
                raise self.upload_errors[name]
            if self._should_fail(self.upload_failures, name):
                raise TransientNetworkError(f"upload of {name} failed", status_code=502)
            asset = ReleaseAsset(asset_id=str(len(self.assets) + 1), name=name, size=size)
            self.assets.append(asset)
        return asset

    # Helpers ------------------------------------------------------------

    def _release(self, tag: str, release_id: str) -> PublishedRelease:
        return PublishedRelease(
            release_id=release_id,
            url=f"https://github.com/{self.repository}/releases/tag/{tag}",
            tag=tag,
        )

    @staticmethod
    def _should_fail(failures: dict[str, int], name: str) -> bool:
        remaining = failures.get(name, 0)
        if remaining == 0:
            return False
        if remaining > 0:
            failures[name] = remaining - 1
        return True


def make_artifact(name: str, size: int, artifact_id: str | None = None, **kwargs) -> Artifact:
    """Build an Artifact with a derived id."""
    return Artifact(
        artifact_id=artifact_id or f"id-{name}",
        name=name,
        size_in_bytes=size,
        created_at=datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc),
        **kwargs,
    )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def pipeline_context() -> PipelineContext:
    """Context of a typical workflow_dispatch run."""
    return PipelineContext(
        repository="acme/widgets",
        run_id="12345678",
        sha="abcdef1234567890",
        ref_name="main",
        workflow="Test Workflow",
        event_name="workflow_dispatch",
        actor="test-user",
    )


@pytest.fixture
def retain_config(temp_dir: Path) -> RetainConfig:
    """Valid configuration using a scratch directory."""
    return RetainConfig(github_token="ghp_test", work_dir=temp_dir / "work", max_attempts=3)


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy that never sleeps."""
    return RetryPolicy.immediate(max_attempts=3)


@pytest.fixture
def three_artifacts() -> list[Artifact]:
    """Artifacts of sizes 1024, 2048 and 512 bytes."""
    return [
        make_artifact("test1", 1024, "111"),
        make_artifact("test2", 2048, "222"),
        make_artifact("test3", 512, "333"),
    ]


@pytest.fixture
def fake_github(three_artifacts: list[Artifact]) -> FakeGitHub:
    """Fake GitHub with three artifacts on the run."""
    return FakeGitHub(three_artifacts)


@pytest.fixture
def published_release() -> PublishedRelease:
    return PublishedRelease(
        release_id="1",
        url="https://github.com/acme/widgets/releases/tag/pipeline-12345678-20250115-100000",
        tag="pipeline-12345678-20250115-100000",
    )


@pytest.fixture
def inventory(three_artifacts: list[Artifact]) -> ArtifactInventory:
    return ArtifactInventory(run_id="12345678", artifacts=tuple(three_artifacts))


@pytest.fixture
def artifact_factory():
    """Factory building artifacts by name and size."""
    return make_artifact


@pytest.fixture
def github_factory():
    """Factory building a FakeGitHub over a list of artifacts."""
    return FakeGitHub
