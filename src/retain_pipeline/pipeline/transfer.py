"""
Attachment transfer manager.

Moves each artifact from the run's artifact store onto the release:
download to a scratch file, upload as a named asset, then confirm the
asset is listed. Failures stay scoped to their artifact.
"""

import logging
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from pathlib import Path
from typing import Callable

from retain_pipeline.core.exceptions import (
    DownloadFailedError,
    GitHubAPIError,
    PermissionDeniedError,
    RunCancelledError,
    TransferError,
    TransientNetworkError,
    UploadFailedError,
)
from retain_pipeline.core.models import (
    Artifact,
    ArtifactInventory,
    PublishedRelease,
    TransferOutcome,
    TransferStatus,
)
from retain_pipeline.github.client import GitHubClient
from retain_pipeline.github.retry import RetryPolicy
from retain_pipeline.pipeline.inventory import ASSET_SUFFIX, plan_asset_names

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class TransferState(Enum):
    """Per-artifact transfer states."""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    UPLOADING = "uploading"
    VERIFIED = "verified"
    FAILED = "failed"
    SKIPPED = "skipped"


class TransferManager:
    """
    Attaches every inventoried artifact to a published release.

    Runs transfers on a bounded thread pool (sequentially when
    max_workers is 1). Only a permission failure aborts the batch;
    every other failure, expected or not, becomes a failed TransferOutcome.
    """

    def __init__(
        self,
        client: GitHubClient,
        retry_policy: RetryPolicy | None = None,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        work_dir: Path | None = None,
        cancel_event: threading.Event | None = None,
        on_outcome: Callable[[TransferOutcome], None] | None = None,
    ):
        self._client = client
        self._retry = retry_policy or RetryPolicy()
        self._max_workers = max(1, max_workers)
        self._work_dir = work_dir
        self._cancel_event = cancel_event or threading.Event()
        self._abort = threading.Event()
        self._on_outcome = on_outcome
        self._states: dict[str, TransferState] = {}
        self._states_lock = threading.Lock()
        self._outcomes: list[TransferOutcome] = []

    @property
    def states(self) -> dict[str, TransferState]:
        """Snapshot of the current state of every artifact, keyed by id."""
        with self._states_lock:
            return dict(self._states)

    @property
    def outcomes(self) -> list[TransferOutcome]:
        """Outcomes of the last batch in inventory order, kept when the batch aborts."""
        return list(self._outcomes)

    def _set_state(self, artifact: Artifact, state: TransferState) -> None:
        with self._states_lock:
            self._states[artifact.artifact_id] = state
        logger.debug(f"{artifact.name}: {state.value}")

    def transfer_all(
        self,
        inventory: ArtifactInventory,
        release: PublishedRelease,
        asset_names: dict[str, str] | None = None,
    ) -> list[TransferOutcome]:
        """
        Transfer every artifact in the inventory.

        Args:
            inventory: Artifacts to attach
            release: Confirmed destination release
            asset_names: Precomputed artifact id to asset name mapping

        Returns:
            One outcome per artifact, in inventory order

        Raises:
            DiscoveryError: If two artifacts map to the same asset name
            PermissionDeniedError: If the credential is rejected mid-batch;
                outcomes gathered so far remain available on ``outcomes``
        """
        self._outcomes = []
        if asset_names is None:
            asset_names = plan_asset_names(inventory)
        if inventory.is_empty():
            return []

        for artifact in inventory.artifacts:
            self._set_state(artifact, TransferState.PENDING)

        outcomes: list[TransferOutcome | None] = [None] * inventory.total_count
        fatal: PermissionDeniedError | None = None

        if self._work_dir is not None:
            self._work_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="retain-", dir=self._work_dir) as scratch:
            scratch_dir = Path(scratch)
            workers = min(self._max_workers, inventory.total_count)
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="transfer") as pool:
                futures = {
                    pool.submit(
                        self._transfer_one,
                        artifact,
                        asset_names[artifact.artifact_id],
                        release,
                        scratch_dir,
                    ): index
                    for index, artifact in enumerate(inventory.artifacts)
                }
                for future in as_completed(futures):
                    index = futures[future]
                    artifact = inventory.artifacts[index]
                    asset_name = asset_names[artifact.artifact_id]
                    try:
                        outcomes[index] = future.result()
                    except PermissionDeniedError as e:
                        fatal = fatal or e
                        self._abort.set()
                        outcomes[index] = self._failed(
                            artifact, asset_name, "permission_denied", e.message
                        )
                    except Exception as e:
                        error = self._unexpected(artifact, e)
                        outcomes[index] = self._failed(artifact, asset_name, error.kind, error.message)

        self._outcomes = [outcome for outcome in outcomes if outcome is not None]
        if fatal is not None:
            raise fatal
        return list(self._outcomes)

    def _transfer_one(
        self,
        artifact: Artifact,
        asset_name: str,
        release: PublishedRelease,
        scratch_dir: Path,
    ) -> TransferOutcome:
        if self._abort.is_set() or self._cancel_event.is_set():
            return self._skipped(artifact, asset_name, "cancelled", "Run cancelled before transfer")
        if artifact.expired:
            return self._skipped(
                artifact, asset_name, "expired", "Artifact expired in the pipeline store"
            )

        path = scratch_dir / f"{artifact.artifact_id}{ASSET_SUFFIX}"
        try:
            self._download(artifact, path)
            self._upload(artifact, asset_name, release, path)
            self._verify(artifact, asset_name, release)
        except TransferError as e:
            return self._failed(artifact, asset_name, e.kind, e.message)
        except RunCancelledError:
            return self._skipped(artifact, asset_name, "cancelled", "Run cancelled during transfer")
        except PermissionDeniedError:
            raise
        except Exception as e:
            error = self._unexpected(artifact, e)
            return self._failed(artifact, asset_name, error.kind, error.message)
        finally:
            path.unlink(missing_ok=True)

        self._set_state(artifact, TransferState.VERIFIED)
        logger.info(f"Attached {asset_name} ({artifact.size_in_bytes} bytes)")
        return self._record(
            TransferOutcome(
                artifact_id=artifact.artifact_id,
                artifact_name=artifact.name,
                asset_name=asset_name,
                status=TransferStatus.ATTACHED,
            )
        )

    def _download(self, artifact: Artifact, path: Path) -> None:
        self._set_state(artifact, TransferState.DOWNLOADING)
        try:
            self._retry.call(
                self._client.download_artifact,
                artifact,
                path,
                cancel_event=self._cancel_event,
            )
        except (TransientNetworkError, GitHubAPIError, OSError) as e:
            raise DownloadFailedError(
                f"Could not download {artifact.name}: {e}",
                artifact_id=artifact.artifact_id,
                artifact_name=artifact.name,
            ) from e
        self._set_state(artifact, TransferState.DOWNLOADED)

    def _upload(
        self,
        artifact: Artifact,
        asset_name: str,
        release: PublishedRelease,
        path: Path,
    ) -> None:
        self._set_state(artifact, TransferState.UPLOADING)
        attempts = 0

        def upload() -> None:
            nonlocal attempts
            attempts += 1
            self._client.upload_release_asset(release, asset_name, path)

        try:
            self._retry.call(upload, cancel_event=self._cancel_event)
        except GitHubAPIError as e:
            # A timed-out earlier attempt may have landed; verification decides
            if e.already_exists and attempts > 1:
                return
            raise UploadFailedError(
                f"Could not upload {asset_name}: {e}",
                artifact_id=artifact.artifact_id,
                artifact_name=artifact.name,
            ) from e
        except (TransientNetworkError, OSError) as e:
            raise UploadFailedError(
                f"Could not upload {asset_name}: {e}",
                artifact_id=artifact.artifact_id,
                artifact_name=artifact.name,
            ) from e

    def _verify(self, artifact: Artifact, asset_name: str, release: PublishedRelease) -> None:
        try:
            assets = self._retry.call(
                self._client.list_release_assets,
                release.release_id,
                cancel_event=self._cancel_event,
            )
        except (TransientNetworkError, GitHubAPIError) as e:
            raise UploadFailedError(
                f"Could not verify {asset_name}: {e}",
                artifact_id=artifact.artifact_id,
                artifact_name=artifact.name,
            ) from e
        if not any(a.name == asset_name and a.state == "uploaded" for a in assets):
            raise UploadFailedError(
                f"Asset {asset_name} is not listed on release {release.tag}",
                artifact_id=artifact.artifact_id,
                artifact_name=artifact.name,
            )

    def _unexpected(self, artifact: Artifact, error: Exception) -> TransferError:
        """Classify an unexpected failure by how far the artifact had progressed."""
        state = self.states.get(artifact.artifact_id)
        error_cls = (
            DownloadFailedError
            if state in (TransferState.PENDING, TransferState.DOWNLOADING)
            else UploadFailedError
        )
        logger.exception(f"Unexpected error transferring {artifact.name}")
        return error_cls(
            f"Unexpected {type(error).__name__} transferring {artifact.name}: {error}",
            artifact_id=artifact.artifact_id,
            artifact_name=artifact.name,
        )

    def _failed(
        self, artifact: Artifact, asset_name: str, kind: str, message: str
    ) -> TransferOutcome:
        self._set_state(artifact, TransferState.FAILED)
        logger.error(f"Transfer of {artifact.name} failed: {message}")
        return self._record(
            TransferOutcome(
                artifact_id=artifact.artifact_id,
                artifact_name=artifact.name,
                asset_name=asset_name,
                status=TransferStatus.FAILED,
                error_kind=kind,
                error_message=message,
            )
        )

    def _skipped(
        self, artifact: Artifact, asset_name: str, kind: str, message: str
    ) -> TransferOutcome:
        self._set_state(artifact, TransferState.SKIPPED)
        logger.warning(f"Skipping {artifact.name}: {message}")
        return self._record(
            TransferOutcome(
                artifact_id=artifact.artifact_id,
                artifact_name=artifact.name,
                asset_name=asset_name,
                status=TransferStatus.SKIPPED,
                error_kind=kind,
                error_message=message,
            )
        )

    def _record(self, outcome: TransferOutcome) -> TransferOutcome:
        if self._on_outcome:
            self._on_outcome(outcome)
        return outcome
