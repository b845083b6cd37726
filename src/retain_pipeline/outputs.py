"""
CI step outputs.

Writes the RunSummary in the runner's file-command formats: key=value
lines for step outputs and Markdown for the job summary.
"""

import logging
import os
import uuid
from collections.abc import Mapping
from pathlib import Path

from retain_pipeline.core.models import RunSummary, TransferStatus
from retain_pipeline.pipeline.descriptor import format_size

logger = logging.getLogger(__name__)

_STATUS_ICONS = {
    TransferStatus.ATTACHED: "✅",
    TransferStatus.SKIPPED: "⏭️",
    TransferStatus.FAILED: "❌",
}


def format_outputs(outputs: Mapping[str, str]) -> str:
    """Render outputs as file-command lines, using a delimiter for multi-line values."""
    lines = []
    for key, value in outputs.items():
        if "\n" in value:
            delimiter = f"ghadelimiter_{uuid.uuid4()}"
            lines += [f"{key}<<{delimiter}", value, delimiter]
        else:
            lines.append(f"{key}={value}")
    return "\n".join(lines) + "\n"


def render_step_summary(summary: RunSummary) -> str:
    """Render the Markdown job summary for a run."""
    lines = ["## Pipeline artifact retention", ""]
    lines.append(f"**Status:** `{summary.status.value}`")
    if summary.release:
        lines.append(f"**Release:** [{summary.release.tag}]({summary.release.url})")
    if summary.capability_level:
        lines.append(f"**Immutable releases:** `{summary.capability_level.value}`")
    lines.append(
        f"**Artifacts:** {summary.total_count} ({format_size(summary.total_size_bytes)}), "
        f"{summary.attached} attached, {summary.skipped} skipped, {summary.failed} failed"
    )
    if summary.error:
        lines += ["", f"> {summary.error}"]
    if summary.outcomes:
        lines += ["", "| Artifact | Asset | Result |", "|---|---|---|"]
        for outcome in summary.outcomes:
            result = f"{_STATUS_ICONS[outcome.status]} {outcome.status.value}"
            if outcome.error_kind:
                result += f" ({outcome.error_kind})"
            lines.append(f"| {outcome.artifact_name} | {outcome.asset_name} | {result} |")
    return "\n".join(lines) + "\n"


def publish_outputs(summary: RunSummary, env: Mapping[str, str] | None = None) -> list[Path]:
    """
    Append outputs and the job summary to the runner's command files.

    Args:
        summary: Final run summary
        env: Mapping to read GITHUB_OUTPUT / GITHUB_STEP_SUMMARY from

    Returns:
        Paths that were written (empty outside a CI runner)
    """
    env = os.environ if env is None else env
    written = []

    output_file = env.get("GITHUB_OUTPUT")
    if output_file:
        path = Path(output_file)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(format_outputs(summary.to_outputs()))
        written.append(path)

    summary_file = env.get("GITHUB_STEP_SUMMARY")
    if summary_file:
        path = Path(summary_file)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(render_step_summary(summary))
        written.append(path)

    if written:
        logger.debug(f"Wrote step outputs to {', '.join(str(p) for p in written)}")
    return written
