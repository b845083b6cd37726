"""Tests for the run summarizer."""

from retain_pipeline.core.exceptions import TagConflictError, UploadFailedError
from retain_pipeline.core.models import (
    ArtifactInventory,
    CapabilityAssessment,
    CapabilityLevel,
    PublishedRelease,
    RunStatus,
    TransferOutcome,
    TransferStatus,
)
from retain_pipeline.pipeline.summarizer import summarize

ASSESSMENT = CapabilityAssessment(level=CapabilityLevel.SUPPORTED, reasons=("organization_owned",))


def _outcome(name: str, status: TransferStatus) -> TransferOutcome:
    return TransferOutcome(
        artifact_id=name, artifact_name=name, asset_name=f"{name}.zip", status=status
    )


class TestSummarize:
    """Tests for summarize."""

    def test_success(self, inventory: ArtifactInventory, published_release: PublishedRelease) -> None:
        """Every artifact attached is a success."""
        outcomes = [_outcome(a.name, TransferStatus.ATTACHED) for a in inventory.artifacts]
        summary = summarize(
            assessment=ASSESSMENT, inventory=inventory, release=published_release, outcomes=outcomes
        )
        assert summary.status is RunStatus.SUCCESS
        assert summary.attached == 3
        assert summary.total_count == 3
        assert summary.total_size_bytes == 3584
        assert summary.capability_level is CapabilityLevel.SUPPORTED
        assert summary.capability_reasons == ("organization_owned",)

    def test_empty_run_is_success(self, published_release: PublishedRelease) -> None:
        summary = summarize(
            assessment=ASSESSMENT,
            inventory=ArtifactInventory(run_id="1"),
            release=published_release,
            outcomes=[],
        )
        assert summary.status is RunStatus.SUCCESS
        assert summary.to_outputs()["artifacts_count"] == "0"

    def test_failed_outcome_is_partial(
        self, inventory: ArtifactInventory, published_release: PublishedRelease
    ) -> None:
        outcomes = [
            _outcome("test1", TransferStatus.ATTACHED),
            _outcome("test2", TransferStatus.FAILED),
            _outcome("test3", TransferStatus.SKIPPED),
        ]
        summary = summarize(
            assessment=ASSESSMENT, inventory=inventory, release=published_release, outcomes=outcomes
        )
        assert summary.status is RunStatus.PARTIAL
        assert (summary.attached, summary.failed, summary.skipped) == (1, 1, 1)

    def test_missing_outcomes_is_partial(
        self, inventory: ArtifactInventory, published_release: PublishedRelease
    ) -> None:
        """Fewer outcomes than artifacts is never a success."""
        summary = summarize(
            assessment=ASSESSMENT,
            inventory=inventory,
            release=published_release,
            outcomes=[_outcome("test1", TransferStatus.ATTACHED)],
        )
        assert summary.status is RunStatus.PARTIAL

    def test_missing_assessment_is_partial(self, published_release: PublishedRelease) -> None:
        summary = summarize(inventory=ArtifactInventory(run_id="1"), release=published_release)
        assert summary.status is RunStatus.PARTIAL

    def test_error_after_publish_is_partial(
        self, inventory: ArtifactInventory, published_release: PublishedRelease
    ) -> None:
        summary = summarize(
            assessment=ASSESSMENT,
            inventory=inventory,
            release=published_release,
            error=UploadFailedError("lost"),
        )
        assert summary.status is RunStatus.PARTIAL
        assert summary.error == "lost"

    def test_no_release_is_failed(self, inventory: ArtifactInventory) -> None:
        """A run that never published is failed and keeps the error."""
        summary = summarize(
            assessment=ASSESSMENT, inventory=inventory, error=TagConflictError(tag="v1")
        )
        assert summary.status is RunStatus.FAILED
        assert summary.release is None
        assert "v1" in summary.error

    def test_never_raises(self, published_release: PublishedRelease) -> None:
        """Malformed stage outputs degrade to a minimal summary."""
        summary = summarize(
            assessment=ASSESSMENT,
            inventory=object(),
            release=published_release,
            outcomes=[],
        )
        assert summary.status is RunStatus.PARTIAL
        assert summary.error.startswith("Summary incomplete")
