"""
Release descriptor builder.

Turns the pipeline context, capability assessment and inventory into the
tag, title and Markdown audit trail of the release. Pure apart from
reading the clock when no build time is given.
"""

from datetime import datetime, timezone

from retain_pipeline.config import PipelineContext
from retain_pipeline.core.models import (
    ArtifactInventory,
    CapabilityAssessment,
    CapabilityLevel,
    ReleaseDescriptor,
    ReleaseOverrides,
)

SIZE_UNITS = ("KiB", "MiB", "GiB", "TiB", "PiB")
TAG_TIME_FORMAT = "%Y%m%d-%H%M%S"
BODY_TIME_FORMAT = "%Y-%m-%d %H:%M:%S UTC"
PROJECT_URL = "https://github.com/NovoNordisk-OpenSource/retain_pipeline_run"

_LEVEL_TEXT = {
    CapabilityLevel.LIKELY: (
        "⚡ **This release very likely benefits from immutable release protection.**"
    ),
    CapabilityLevel.SUPPORTED: (
        "✅ **This repository supports immutable releases.** "
        "Enable the policy in the repository settings to lock tags and assets."
    ),
    CapabilityLevel.UNSUPPORTED: (
        "⚠️ **Immutable releases were not detected for this repository.** "
        "The tag and assets of this release may be modified later."
    ),
}


def format_size(size_bytes: int) -> str:
    """
    Render a byte count with binary units and one decimal place.

    >>> format_size(512000)
    '500.0 KiB'
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    value = float(size_bytes)
    for unit in SIZE_UNITS:
        value /= 1024
        if round(value, 1) < 1024 or unit == SIZE_UNITS[-1]:
            return f"{value:.1f} {unit}"
    raise AssertionError("unreachable")


def generate_tag(run_id: str, built_at: datetime) -> str:
    """Derive the default tag: pipeline-{run_id}-{YYYYMMDD-HHMMSS} in UTC."""
    return f"pipeline-{run_id}-{built_at.astimezone(timezone.utc).strftime(TAG_TIME_FORMAT)}"


def generate_title(run_id: str) -> str:
    return f"Pipeline Artifacts - Run #{run_id}"


def render_body(
    context: PipelineContext,
    assessment: CapabilityAssessment,
    inventory: ArtifactInventory,
    built_at: datetime,
    retention_days: int | None = None,
) -> str:
    """Compose the Markdown audit trail in its fixed section order."""
    lines = [
        "Automated release created from pipeline run",
        "",
        "## 📋 Pipeline Information",
        f"- **Run ID:** [{context.run_id}]({context.run_url})",
        f"- **Commit:** [`{context.sha}`]({context.commit_url})",
        f"- **Branch:** `{context.ref_name}`",
        f"- **Workflow:** `{context.workflow}`",
        f"- **Triggered by:** `{context.event_name}`",
        f"- **Actor:** @{context.actor}",
        f"- **Created:** {built_at.astimezone(timezone.utc).strftime(BODY_TIME_FORMAT)}",
    ]
    if retention_days is not None:
        lines.append(
            f"- **Pipeline artifact retention:** {retention_days} days "
            "(this release keeps them indefinitely)"
        )

    if not inventory.is_empty():
        lines += [
            "",
            f"## 📦 Artifacts ({inventory.total_count})",
            f"This release contains **{inventory.total_count}** artifacts "
            f"with a total size of **{format_size(inventory.total_size_bytes)}**:",
        ]
        for artifact in inventory.artifacts:
            line = f"- **{artifact.name}** ({format_size(artifact.size_in_bytes)})"
            if artifact.expired:
                line += " - expired before retention"
            lines.append(line)

    lines += [
        "",
        "## 🔒 Immutable Release",
        _LEVEL_TEXT[assessment.level],
        "",
        f"- **Capability level:** `{assessment.level.value}`",
    ]
    if assessment.reasons:
        reasons = ", ".join(f"`{reason}`" for reason in assessment.reasons)
        lines.append(f"- **Detection reasons:** {reasons}")
    else:
        lines.append("- **Detection reasons:** none")

    lines += [
        "",
        "---",
        f"*🤖 This release was created automatically by [retain_pipeline_run]({PROJECT_URL})*",
    ]
    return "\n".join(lines)


def build_descriptor(
    context: PipelineContext,
    assessment: CapabilityAssessment,
    inventory: ArtifactInventory,
    overrides: ReleaseOverrides | None = None,
    *,
    built_at: datetime | None = None,
    retention_days: int | None = None,
) -> ReleaseDescriptor:
    """
    Build the release descriptor.

    Each override replaces the derived value wholesale.

    Args:
        context: Triggering pipeline run
        assessment: Capability level and reasons
        inventory: Artifacts of the run
        overrides: Caller-supplied tag, title, body or prerelease flag
        built_at: Build time (defaults to now, UTC)
        retention_days: Pipeline retention, recorded in the body only

    Returns:
        Immutable ReleaseDescriptor
    """
    overrides = overrides or ReleaseOverrides()
    built_at = built_at or datetime.now(timezone.utc)

    tag = overrides.tag if overrides.tag is not None else generate_tag(context.run_id, built_at)
    title = overrides.title if overrides.title is not None else generate_title(context.run_id)
    if overrides.body is not None:
        body = overrides.body
    else:
        body = render_body(context, assessment, inventory, built_at, retention_days)
    prerelease = overrides.prerelease if overrides.prerelease is not None else False

    return ReleaseDescriptor(
        tag=tag,
        title=title,
        body=body,
        prerelease=prerelease,
        target_commitish=context.sha,
    )
