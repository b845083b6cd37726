"""
Retention pipeline - sequential stage runner.

Runs assess → inventory → describe → publish → transfer → summarize,
each stage consuming the full typed output of the previous one.
"""

import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Callable, Generator

from retain_pipeline.config import PipelineContext, RetainConfig
from retain_pipeline.core.exceptions import (
    DiscoveryError,
    GitHubAPIError,
    RetainError,
    RunCancelledError,
    TransientNetworkError,
)
from retain_pipeline.core.models import (
    ArtifactInventory,
    CapabilityAssessment,
    PublishedRelease,
    ReleaseDescriptor,
    ReleaseOverrides,
    RepositoryContext,
    RunSummary,
    TransferOutcome,
)
from retain_pipeline.github.client import GitHubClient
from retain_pipeline.github.retry import RetryPolicy
from retain_pipeline.pipeline.assessor import assess
from retain_pipeline.pipeline.descriptor import build_descriptor
from retain_pipeline.pipeline.inventory import InventoryCollector, plan_asset_names
from retain_pipeline.pipeline.publisher import ReleasePublisher
from retain_pipeline.pipeline.summarizer import summarize
from retain_pipeline.pipeline.transfer import TransferManager

logger = logging.getLogger(__name__)


class Stage(Enum):
    """Pipeline stages, in execution order."""

    ASSESS = "assess"
    INVENTORY = "inventory"
    DESCRIBE = "describe"
    PUBLISH = "publish"
    TRANSFER = "transfer"
    SUMMARIZE = "summarize"


class RetentionPipeline:
    """
    Retains a run's artifacts as attachments on a new release.

    Stage-fatal errors before publishing propagate with the failing stage
    annotated. Once the release exists, run() always returns a RunSummary.
    """

    def __init__(
        self,
        context: PipelineContext,
        config: RetainConfig,
        *,
        client: GitHubClient | None = None,
        retry_policy: RetryPolicy | None = None,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], datetime] | None = None,
        on_stage: Callable[[Stage], None] | None = None,
        on_outcome: Callable[[TransferOutcome], None] | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            context: Triggering pipeline run
            config: Caller inputs and runtime knobs
            client: GitHub client (built from config when omitted)
            retry_policy: Backoff policy shared by every stage
            cancel_event: Set by the caller to cancel cooperatively
            clock: Source of the descriptor build time
            on_stage: Optional callback when a stage starts
            on_outcome: Optional callback after each artifact transfer
        """
        self._context = context
        self._config = config
        self._client = client
        self._retry = retry_policy or RetryPolicy(max_attempts=config.max_attempts)
        self._cancel_event = cancel_event or threading.Event()
        self._clock = clock
        self._on_stage = on_stage
        self._on_outcome = on_outcome

        self.assessment: CapabilityAssessment | None = None
        self.inventory: ArtifactInventory | None = None
        self.descriptor: ReleaseDescriptor | None = None
        self.release: PublishedRelease | None = None
        self.outcomes: list[TransferOutcome] = []

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    def cancel(self) -> None:
        """Request cooperative cancellation at the next blocking call."""
        self._cancel_event.set()

    @contextmanager
    def _stage(self, stage: Stage) -> Generator[None, None, None]:
        if self._cancel_event.is_set():
            raise RunCancelledError().with_stage(stage.value)
        if self._on_stage:
            self._on_stage(stage)
        logger.info(f"▶ {stage.value} - started")
        start = time.perf_counter()
        try:
            yield
        except RetainError as e:
            e.with_stage(stage.value)
            logger.error(f"✗ {stage.value} - failed: {e}")
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"✔ {stage.value} - completed in {elapsed_ms:.0f} ms")

    def run(self) -> RunSummary:
        """
        Execute every stage in order.

        Returns:
            RunSummary with status success or partial

        Raises:
            ConfigurationError: If inputs are invalid (before any network call)
            PermissionDeniedError: If the credential lacks a required scope
            DiscoveryError: If metadata or the artifact listing is unusable
            TagConflictError: If the release tag already exists
            RunCancelledError: If cancelled before the release was published
        """
        self._config.validate_inputs()
        client = self._client or GitHubClient(
            self._config.github_token,
            self._context.repository,
            api_url=self._context.api_url,
            timeout_seconds=self._config.timeout_seconds,
        )
        try:
            return self._run(client)
        finally:
            if self._client is None:
                client.close()

    def _run(self, client: GitHubClient) -> RunSummary:
        with self._stage(Stage.ASSESS):
            self.assessment = assess(self._fetch_repository(client))
            logger.info(
                f"Immutable releases: {self.assessment.level.value} "
                f"({', '.join(self.assessment.reasons) or 'no signals'})"
            )

        with self._stage(Stage.INVENTORY):
            collector = InventoryCollector(client, self._retry, cancel_event=self._cancel_event)
            self.inventory = collector.collect(self._context.run_id)
            asset_names = plan_asset_names(self.inventory)

        with self._stage(Stage.DESCRIBE):
            self.descriptor = build_descriptor(
                self._context,
                self.assessment,
                self.inventory,
                ReleaseOverrides(
                    tag=self._config.release_tag,
                    title=self._config.release_name,
                    body=self._config.release_body,
                    prerelease=self._config.prerelease,
                ),
                built_at=self._clock() if self._clock else None,
                retention_days=self._config.artifact_retention_days,
            )

        with self._stage(Stage.PUBLISH):
            publisher = ReleasePublisher(client, self._retry, cancel_event=self._cancel_event)
            self.release = publisher.publish(self.descriptor)

        manager = TransferManager(
            client,
            self._retry,
            max_workers=self._config.max_workers,
            work_dir=self._config.work_dir,
            cancel_event=self._cancel_event,
            on_outcome=self._on_outcome,
        )
        transfer_error: Exception | None = None
        try:
            with self._stage(Stage.TRANSFER):
                manager.transfer_all(self.inventory, self.release, asset_names)
        except RetainError as e:
            # Past publish the run always ends in a summary
            transfer_error = e
        except Exception as e:
            logger.exception(f"✗ {Stage.TRANSFER.value} - unexpected error")
            transfer_error = e
        self.outcomes = manager.outcomes

        if self._on_stage:
            self._on_stage(Stage.SUMMARIZE)
        summary = summarize(
            assessment=self.assessment,
            inventory=self.inventory,
            release=self.release,
            outcomes=self.outcomes,
            error=transfer_error,
        )
        logger.info(
            f"Run {summary.status.value}: {summary.attached} attached, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    def _fetch_repository(self, client: GitHubClient) -> RepositoryContext:
        try:
            return self._retry.call(client.get_repository, cancel_event=self._cancel_event)
        except GitHubAPIError as e:
            raise DiscoveryError(
                f"Cannot read repository metadata: {e.message}",
                repository=self._context.repository,
                details={"status_code": e.status_code},
            ) from e
        except TransientNetworkError as e:
            raise DiscoveryError(
                f"Repository metadata unreachable: {e.message}",
                repository=self._context.repository,
            ) from e

    def failure_summary(self, error: Exception) -> RunSummary:
        """Summarize a run that stopped with error, keeping completed stage outputs."""
        return summarize(
            assessment=self.assessment,
            inventory=self.inventory,
            release=self.release,
            outcomes=self.outcomes,
            error=error,
        )
