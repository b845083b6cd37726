"""
Core data models for Retain Pipeline.

Upstream JSON is parsed into these typed, immutable records at the
client boundary; every stage consumes and produces them.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field


class OwnerKind(Enum):
    """Kind of account that owns the repository."""

    USER = "User"
    ORGANIZATION = "Organization"


class Visibility(Enum):
    """Repository visibility."""

    PUBLIC = "public"
    PRIVATE = "private"
    INTERNAL = "internal"


class SecurityFeature(Enum):
    """Security features monitored for immutable-release detection."""

    SECRET_SCANNING = "secret_scanning"
    SECRET_SCANNING_PUSH_PROTECTION = "secret_scanning_push_protection"


class CapabilityLevel(Enum):
    """Confidence that the repository provides immutable-release protection."""

    UNSUPPORTED = "unsupported"
    SUPPORTED = "supported"
    LIKELY = "likely"

    @property
    def rank(self) -> int:
        """Position in the confidence order unsupported < supported < likely."""
        return _CAPABILITY_RANK[self]

    @property
    def immutable_releases_enabled(self) -> bool:
        """Return True if the level indicates protection is available."""
        return self is not CapabilityLevel.UNSUPPORTED

    def __lt__(self, other: "CapabilityLevel") -> bool:
        if not isinstance(other, CapabilityLevel):
            return NotImplemented
        return self.rank < other.rank


_CAPABILITY_RANK = {
    CapabilityLevel.UNSUPPORTED: 0,
    CapabilityLevel.SUPPORTED: 1,
    CapabilityLevel.LIKELY: 2,
}


class RepositoryContext(BaseModel):
    """Snapshot of repository metadata used by the capability assessor."""

    model_config = {"frozen": True}

    full_name: str
    owner_kind: OwnerKind
    visibility: Visibility | None = None
    private: bool | None = None
    security_features: frozenset[SecurityFeature] = Field(default_factory=frozenset)


class CapabilityAssessment(BaseModel):
    """Assessed capability level together with the detection reasons that fired."""

    model_config = {"frozen": True}

    level: CapabilityLevel
    reasons: tuple[str, ...] = ()


class Artifact(BaseModel):
    """One artifact attached to a pipeline run."""

    model_config = {"frozen": True}

    artifact_id: str = Field(description="Run-scoped opaque identifier")
    name: str = Field(min_length=1)
    size_in_bytes: int = Field(ge=0)
    created_at: datetime | None = None
    download_url: str | None = Field(
        default=None, description="Download reference valid for the run's lifetime"
    )
    expired: bool = False


class ArtifactInventory(BaseModel):
    """Ordered artifacts of a run with derived totals."""

    model_config = {"frozen": True}

    run_id: str
    artifacts: tuple[Artifact, ...] = ()

    @computed_field
    @property
    def total_count(self) -> int:
        return len(self.artifacts)

    @computed_field
    @property
    def total_size_bytes(self) -> int:
        return sum(artifact.size_in_bytes for artifact in self.artifacts)

    def is_empty(self) -> bool:
        """Return True if the run produced no artifacts."""
        return not self.artifacts


class ReleaseOverrides(BaseModel):
    """Caller-supplied values that replace derived descriptor fields wholesale."""

    model_config = {"frozen": True}

    tag: str | None = None
    title: str | None = None
    body: str | None = None
    prerelease: bool | None = None


class ReleaseDescriptor(BaseModel):
    """Everything needed to create a release."""

    model_config = {"frozen": True}

    tag: str = Field(min_length=1)
    title: str
    body: str
    prerelease: bool = False
    target_commitish: str | None = None


class PublishedRelease(BaseModel):
    """A release confirmed by the destination."""

    model_config = {"frozen": True}

    release_id: str
    url: str
    tag: str
    upload_url: str | None = None


class ReleaseAsset(BaseModel):
    """An asset currently listed on a release."""

    model_config = {"frozen": True}

    asset_id: str
    name: str
    size: int = 0
    state: str = "uploaded"


class TransferStatus(Enum):
    """Terminal state of one artifact transfer."""

    ATTACHED = "attached"
    SKIPPED = "skipped"
    FAILED = "failed"


class TransferOutcome(BaseModel):
    """Result of moving one artifact into the release."""

    model_config = {"frozen": True}

    artifact_id: str
    artifact_name: str
    asset_name: str
    status: TransferStatus
    error_kind: str | None = None
    error_message: str | None = None


class RunStatus(Enum):
    """Overall status of a retention run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def exit_code(self) -> int:
        """Process exit code distinguishing partial from total failure."""
        return {RunStatus.SUCCESS: 0, RunStatus.FAILED: 1, RunStatus.PARTIAL: 2}[self]


class RunSummary(BaseModel):
    """Final aggregate reported to the caller."""

    capability_level: CapabilityLevel | None = None
    capability_reasons: tuple[str, ...] = ()
    release: PublishedRelease | None = None
    total_count: int = 0
    total_size_bytes: int = 0
    attached: int = 0
    skipped: int = 0
    failed: int = 0
    status: RunStatus
    error: str | None = None
    outcomes: tuple[TransferOutcome, ...] = ()

    @property
    def immutable_releases_enabled(self) -> bool:
        return bool(
            self.capability_level and self.capability_level.immutable_releases_enabled
        )

    def to_outputs(self) -> dict[str, str]:
        """Render the step outputs exposed to the CI runner."""
        return {
            "release_id": self.release.release_id if self.release else "",
            "release_url": self.release.url if self.release else "",
            "release_tag": self.release.tag if self.release else "",
            "immutable_releases_enabled": str(self.immutable_releases_enabled).lower(),
            "artifacts_count": str(self.total_count),
            "status": self.status.value,
        }
