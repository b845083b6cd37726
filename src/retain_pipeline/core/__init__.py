"""
Retain Pipeline Core Module.

Provides the error taxonomy and typed records shared by every stage.
"""

__all__ = [
    "Artifact",
    "ArtifactInventory",
    "CapabilityAssessment",
    "CapabilityLevel",
    "OwnerKind",
    "PublishedRelease",
    "ReleaseAsset",
    "ReleaseDescriptor",
    "ReleaseOverrides",
    "RepositoryContext",
    "RunStatus",
    "RunSummary",
    "SecurityFeature",
    "TransferOutcome",
    "TransferStatus",
    "Visibility",
    # Exceptions
    "RetainError",
    "ConfigurationError",
    "PermissionDeniedError",
    "DiscoveryError",
    "TagConflictError",
    "PublishError",
    "TransferError",
    "DownloadFailedError",
    "UploadFailedError",
    "TransientNetworkError",
    "GitHubAPIError",
    "RunCancelledError",
]

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
)
from retain_pipeline.core.models import (
    Artifact,
    ArtifactInventory,
    CapabilityAssessment,
    CapabilityLevel,
    OwnerKind,
    PublishedRelease,
    ReleaseAsset,
    ReleaseDescriptor,
    ReleaseOverrides,
    RepositoryContext,
    RunStatus,
    RunSummary,
    SecurityFeature,
    TransferOutcome,
    TransferStatus,
    Visibility,
)
