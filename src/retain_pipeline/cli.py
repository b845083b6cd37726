"""
Retain Pipeline CLI - command-line interface.

Runs the retention pipeline as a CI step, or inspects a repository's
capability and a run's artifacts from the terminal.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from retain_pipeline.config import PipelineContext, RetainConfig
from retain_pipeline.core.exceptions import (
    RetainError,
    RunCancelledError,
    format_exception,
)
from retain_pipeline.core.models import RunStatus, RunSummary, TransferOutcome, TransferStatus
from retain_pipeline.github.client import DEFAULT_API_URL, GitHubClient
from retain_pipeline.github.retry import RetryPolicy
from retain_pipeline.outputs import publish_outputs
from retain_pipeline.pipeline.assessor import assess
from retain_pipeline.pipeline.descriptor import format_size
from retain_pipeline.pipeline.inventory import InventoryCollector, asset_name_for
from retain_pipeline.pipeline.runner import RetentionPipeline, Stage
from retain_pipeline.pipeline.summarizer import summarize

app = typer.Typer(
    name="retain-pipeline-run",
    help="Retain CI pipeline artifacts as attachments on an immutable release",
    no_args_is_help=True,
)
console = Console()

TOKEN_ENVVARS = ["INPUT_GITHUB_TOKEN", "GITHUB_TOKEN"]

_STATUS_STYLES = {
    RunStatus.SUCCESS: "green",
    RunStatus.PARTIAL: "yellow",
    RunStatus.FAILED: "red",
}

_OUTCOME_STYLES = {
    TransferStatus.ATTACHED: "green",
    TransferStatus.SKIPPED: "yellow",
    TransferStatus.FAILED: "red",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # Request lines would otherwise flood INFO output
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _print_outcome(outcome: TransferOutcome) -> None:
    style = _OUTCOME_STYLES[outcome.status]
    line = f"  [{style}]{outcome.status.value}[/{style}] {outcome.asset_name}"
    if outcome.error_message:
        line += f" [dim]({outcome.error_message})[/dim]"
    console.print(line)


def _print_stage(stage: Stage) -> None:
    console.print(f"[bold]▶ {stage.value}[/bold]")


def _print_summary(summary: RunSummary) -> None:
    style = _STATUS_STYLES[summary.status]
    table = Table(title="Retention Summary", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Status", f"[{style}]{summary.status.value}[/{style}]")
    if summary.release:
        table.add_row("Release", f"{summary.release.tag}\n{summary.release.url}")
    if summary.capability_level:
        table.add_row("Immutable releases", summary.capability_level.value)
    table.add_row(
        "Artifacts",
        f"{summary.total_count} ({format_size(summary.total_size_bytes)})",
    )
    table.add_row(
        "Transfers",
        f"{summary.attached} attached, {summary.skipped} skipped, {summary.failed} failed",
    )
    if summary.error:
        table.add_row("Error", f"[red]{summary.error}[/red]")
    console.print(table)


@app.command()
def run(
    github_token: str = typer.Option(
        "", "--github-token", envvar=TOKEN_ENVVARS, show_default=False,
        help="Token with repository-write and artifact-read scope",
    ),
    release_tag: Optional[str] = typer.Option(
        None, "--release-tag", envvar="INPUT_RELEASE_TAG", help="Override the generated tag"
    ),
    release_name: Optional[str] = typer.Option(
        None, "--release-name", envvar="INPUT_RELEASE_NAME", help="Override the generated title"
    ),
    release_body: Optional[str] = typer.Option(
        None, "--release-body", envvar="INPUT_RELEASE_BODY", help="Replace the generated body"
    ),
    prerelease: bool = typer.Option(
        False, "--prerelease", envvar="INPUT_PRERELEASE", help="Mark the release as a prerelease"
    ),
    artifact_retention_days: Optional[int] = typer.Option(
        None, "--artifact-retention-days", envvar="INPUT_ARTIFACT_RETENTION_DAYS",
        help="Pipeline retention period, recorded in the release body",
    ),
    max_workers: int = typer.Option(
        4, "--max-workers", "-j", envvar="RETAIN_MAX_WORKERS", help="Concurrent transfers"
    ),
    max_attempts: int = typer.Option(
        4, "--max-attempts", envvar="RETAIN_MAX_ATTEMPTS", help="Attempts per network call"
    ),
    timeout_seconds: float = typer.Option(
        60.0, "--timeout", envvar="RETAIN_TIMEOUT_SECONDS", help="Per-request timeout"
    ),
    work_dir: Optional[Path] = typer.Option(
        None, "--work-dir", envvar="RUNNER_TEMP", help="Scratch directory for downloads"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Retain the current pipeline run's artifacts on a new release."""
    _configure_logging(verbose)

    pipeline: RetentionPipeline | None = None
    try:
        context = PipelineContext.from_env()
        config = RetainConfig(
            github_token=github_token,
            release_tag=release_tag,
            release_name=release_name,
            release_body=release_body,
            prerelease=prerelease,
            artifact_retention_days=artifact_retention_days,
            timeout_seconds=timeout_seconds,
            max_workers=max_workers,
            max_attempts=max_attempts,
            work_dir=work_dir,
        )
        console.print(
            Panel.fit(
                f"[bold blue]Retain Pipeline Run[/bold blue]\n"
                f"Repository: {context.repository}\n"
                f"Run: {context.run_id}",
            )
        )
        pipeline = RetentionPipeline(
            context,
            config,
            on_stage=_print_stage,
            on_outcome=_print_outcome,
        )
        summary = pipeline.run()
    except RetainError as e:
        console.print(f"[red]Retention failed:[/red] {format_exception(e)}")
        summary = pipeline.failure_summary(e) if pipeline else summarize(error=e)
    except KeyboardInterrupt:
        cancelled = RunCancelledError()
        if pipeline:
            pipeline.cancel()
        console.print("\n[yellow]Run cancelled[/yellow]")
        summary = pipeline.failure_summary(cancelled) if pipeline else summarize(error=cancelled)

    _print_summary(summary)
    publish_outputs(summary)
    raise typer.Exit(summary.status.exit_code)


@app.command("assess")
def assess_cmd(
    repository: str = typer.Argument(..., envvar="GITHUB_REPOSITORY", help="owner/name"),
    github_token: str = typer.Option(
        "", "--github-token", envvar=TOKEN_ENVVARS, show_default=False, help="GitHub token"
    ),
    api_url: str = typer.Option(DEFAULT_API_URL, "--api-url", envvar="GITHUB_API_URL"),
):
    """Show whether a repository can benefit from immutable releases."""
    try:
        RetainConfig(github_token=github_token).validate_inputs()
        with GitHubClient(github_token, repository, api_url=api_url) as client:
            assessment = assess(RetryPolicy().call(client.get_repository))
    except RetainError as e:
        console.print(f"[red]{format_exception(e)}[/red]")
        raise typer.Exit(1)

    style = "green" if assessment.level.immutable_releases_enabled else "yellow"
    console.print(
        f"Immutable releases for {repository}: "
        f"[{style}]{assessment.level.value}[/{style}]"
    )
    table = Table(title="Detection Reasons")
    table.add_column("Reason", style="cyan")
    for reason in assessment.reasons:
        table.add_row(reason)
    if not assessment.reasons:
        table.add_row("[dim]none[/dim]")
    console.print(table)


@app.command()
def inventory(
    run_id: str = typer.Argument(..., envvar="GITHUB_RUN_ID", help="Pipeline run id"),
    repository: str = typer.Option(..., "--repository", "-r", envvar="GITHUB_REPOSITORY"),
    github_token: str = typer.Option(
        "", "--github-token", envvar=TOKEN_ENVVARS, show_default=False, help="GitHub token"
    ),
    api_url: str = typer.Option(DEFAULT_API_URL, "--api-url", envvar="GITHUB_API_URL"),
):
    """List the artifacts of a pipeline run."""
    try:
        RetainConfig(github_token=github_token).validate_inputs()
        with GitHubClient(github_token, repository, api_url=api_url) as client:
            result = InventoryCollector(client).collect(run_id)
    except RetainError as e:
        console.print(f"[red]{format_exception(e)}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Artifacts of run {run_id} ({result.total_count})")
    table.add_column("Name", style="cyan")
    table.add_column("Asset")
    table.add_column("Size", justify="right")
    table.add_column("Created")

    for artifact in result.artifacts:
        name = artifact.name + (" [dim](expired)[/dim]" if artifact.expired else "")
        created = artifact.created_at.isoformat()[:19] if artifact.created_at else "-"
        table.add_row(name, asset_name_for(artifact), format_size(artifact.size_in_bytes), created)

    console.print(table)
    console.print(f"\nTotal size: {format_size(result.total_size_bytes)}")


@app.command()
def version():
    """Show Retain Pipeline Run version."""
    from retain_pipeline import __version__

    console.print(f"Retain Pipeline Run v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
