"""
Run summarizer.

Aggregates stage outputs into the RunSummary reported to the caller.
Never raises: it is the last stage before reporting.
"""

import logging
from collections import Counter
from collections.abc import Sequence

from retain_pipeline.core.exceptions import format_exception
from retain_pipeline.core.models import (
    ArtifactInventory,
    CapabilityAssessment,
    PublishedRelease,
    RunStatus,
    RunSummary,
    TransferOutcome,
    TransferStatus,
)

logger = logging.getLogger(__name__)


def summarize(
    *,
    assessment: CapabilityAssessment | None = None,
    inventory: ArtifactInventory | None = None,
    release: PublishedRelease | None = None,
    outcomes: Sequence[TransferOutcome] | None = None,
    error: Exception | None = None,
) -> RunSummary:
    """
    Build the final RunSummary.

    Status rules:
    - failed: the release was never published
    - success: assessed, published, and every outcome attached
    - partial: published, but anything failed, was skipped, or is missing
    """
    try:
        return _summarize(assessment, inventory, release, list(outcomes or ()), error)
    except Exception as e:
        logger.exception("Summarizer failed; reporting a minimal summary")
        return RunSummary(
            release=release if isinstance(release, PublishedRelease) else None,
            status=RunStatus.PARTIAL if isinstance(release, PublishedRelease) else RunStatus.FAILED,
            error=f"Summary incomplete: {format_exception(e)}",
        )


def _summarize(
    assessment: CapabilityAssessment | None,
    inventory: ArtifactInventory | None,
    release: PublishedRelease | None,
    outcomes: list[TransferOutcome],
    error: Exception | None,
) -> RunSummary:
    counts = Counter(outcome.status for outcome in outcomes)
    total_count = inventory.total_count if inventory else 0

    if release is None:
        status = RunStatus.FAILED
    elif (
        assessment is None
        or error is not None
        or counts[TransferStatus.FAILED]
        or counts[TransferStatus.SKIPPED]
        or len(outcomes) != total_count
    ):
        status = RunStatus.PARTIAL
    else:
        status = RunStatus.SUCCESS

    return RunSummary(
        capability_level=assessment.level if assessment else None,
        capability_reasons=assessment.reasons if assessment else (),
        release=release,
        total_count=total_count,
        total_size_bytes=inventory.total_size_bytes if inventory else 0,
        attached=counts[TransferStatus.ATTACHED],
        skipped=counts[TransferStatus.SKIPPED],
        failed=counts[TransferStatus.FAILED],
        status=status,
        error=format_exception(error) if error is not None else None,
        outcomes=tuple(outcomes),
    )
