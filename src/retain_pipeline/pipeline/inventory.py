"""
Artifact inventory collector.

Lists every artifact of a run (across all pages) and derives the asset
names they will carry on the release.
"""

import logging
import re
import threading

from retain_pipeline.core.exceptions import (
    DiscoveryError,
    GitHubAPIError,
    RunCancelledError,
    TransientNetworkError,
)
from retain_pipeline.core.models import Artifact, ArtifactInventory
from retain_pipeline.github.client import PAGE_SIZE, GitHubClient
from retain_pipeline.github.retry import RetryPolicy

logger = logging.getLogger(__name__)

ASSET_SUFFIX = ".zip"

_UNSAFE_ASSET_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def asset_name_for(artifact: Artifact) -> str:
    """
    Name of the release asset holding an artifact's packaged content.

    Characters the destination would rewrite are replaced with '.'.
    """
    return _UNSAFE_ASSET_CHARS.sub(".", artifact.name) + ASSET_SUFFIX


def plan_asset_names(inventory: ArtifactInventory) -> dict[str, str]:
    """
    Map each artifact id to its asset name.

    Raises:
        DiscoveryError: If two artifacts map to the same asset name
    """
    names: dict[str, str] = {}
    seen: dict[str, Artifact] = {}
    for artifact in inventory.artifacts:
        asset_name = asset_name_for(artifact)
        key = asset_name.lower()
        if key in seen:
            raise DiscoveryError(
                f"Artifacts {seen[key].name!r} and {artifact.name!r} "
                f"both map to asset {asset_name!r}",
                run_id=inventory.run_id,
                details={"asset_name": asset_name},
            )
        seen[key] = artifact
        names[artifact.artifact_id] = asset_name
    return names


class InventoryCollector:
    """Builds the ArtifactInventory of a run."""

    def __init__(
        self,
        client: GitHubClient,
        retry_policy: RetryPolicy | None = None,
        *,
        page_size: int = PAGE_SIZE,
        cancel_event: threading.Event | None = None,
    ):
        self._client = client
        self._retry = retry_policy or RetryPolicy()
        self._page_size = page_size
        self._cancel_event = cancel_event

    def collect(self, run_id: str) -> ArtifactInventory:
        """
        Fetch the full artifact listing for a run.

        Args:
            run_id: Identifier of the pipeline run

        Returns:
            Inventory in the store's listing order; empty is valid

        Raises:
            DiscoveryError: If the run is unknown, the listing is malformed,
                or the store stays unreachable after retries
            PermissionDeniedError: If the credential cannot read artifacts
        """
        if not str(run_id).strip():
            raise DiscoveryError("Run identifier is empty", run_id=str(run_id))

        artifacts: list[Artifact] = []
        page = 1
        while True:
            if self._cancel_event is not None and self._cancel_event.is_set():
                raise RunCancelledError()
            try:
                result = self._retry.call(
                    self._client.list_run_artifacts,
                    run_id,
                    page,
                    self._page_size,
                    cancel_event=self._cancel_event,
                )
            except GitHubAPIError as e:
                raise DiscoveryError(
                    f"Cannot list artifacts for run {run_id}: {e.message}",
                    run_id=run_id,
                    repository=self._client.repository,
                    details={"status_code": e.status_code},
                ) from e
            except TransientNetworkError as e:
                raise DiscoveryError(
                    f"Artifact store unreachable for run {run_id}: {e.message}",
                    run_id=run_id,
                    repository=self._client.repository,
                ) from e

            artifacts.extend(result.artifacts)
            logger.debug(
                f"Artifact page {page}: {len(result.artifacts)} entries "
                f"({len(artifacts)}/{result.total_count})"
            )
            if (
                not result.artifacts
                or len(result.artifacts) < self._page_size
                or len(artifacts) >= result.total_count
            ):
                break
            page += 1

        inventory = ArtifactInventory(run_id=run_id, artifacts=tuple(artifacts))
        logger.info(
            f"Found {inventory.total_count} artifact(s) "
            f"totalling {inventory.total_size_bytes} bytes for run {run_id}"
        )
        return inventory
