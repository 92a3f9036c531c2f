# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Main CLI entry point for Repo-Builder.

Collects this run's input (flags or prompts), hands it to the orchestrator
and renders the summary. All build logic lives in the per-job scripts.
"""

import logging
from typing import Dict, List, Optional

import typer

from repo_builder import __version__
from repo_builder.catalog import JobCatalog
from repo_builder.choices import PersistedChoices, load_choices
from repo_builder.config import get_choices_file, get_default_base_input, get_base_dir, load_config
from repo_builder.errors import RepoBuilderError
from repo_builder.materialize import AngularEnvironmentMaterializer, materializer_from_config
from repo_builder.orchestrator import RunRequest, RunResult, get_catalog, run_build
from repo_builder.resolver import (
    CREATE_VARIANT_TOKEN,
    ResolutionRequest,
    default_selection_input,
    resolve_branch,
    resolve_selection,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="repo-builder",
    help="Clone, configure and build a fixed set of repositories in parallel",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Repo-Builder - parallel build orchestrator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _parse_job_args(
    values: Optional[List[str]],
    catalog: JobCatalog,
    option: str,
    require_value: bool = True,
) -> Dict[str, str]:
    """Parse repeated JOB=VALUE options into a dict.

    Unknown job names and malformed entries are reported and skipped.
    """
    result: Dict[str, str] = {}
    for item in values or []:
        if "=" in item:
            name, value = item.split("=", 1)
        elif not require_value:
            name, value = item, ""
        else:
            typer.echo(f"Warning: ignoring {option} {item!r} (expected JOB=VALUE)", err=True)
            continue

        name = name.strip()
        if name not in catalog:
            typer.echo(f"Warning: ignoring {option} for unknown job '{name}'", err=True)
            continue
        result[name] = value.strip()
    return result


def _echo_catalog(catalog: JobCatalog) -> None:
    typer.echo("Available repositories:")
    for index, job in enumerate(catalog.all_jobs(), 1):
        typer.echo(f"  {index}) {job.name}")
    typer.echo("  0) ALL")


def _prompt_request(
    catalog: JobCatalog,
    choices: PersistedChoices,
    config: dict,
    request: RunRequest,
) -> None:
    """Fill request from prompts, using persisted choices as defaults."""
    base_default = request.base_input or choices.base_input or get_default_base_input(config)
    request.base_input = typer.prompt("Enter base directory (relative to ~)", default=base_default)

    typer.echo()
    _echo_catalog(catalog)
    selection = typer.prompt(
        "Enter repo numbers (space-separated or 0 for all)",
        default=default_selection_input(catalog, choices),
    )
    resolution = request.resolution
    resolution.names = resolve_selection(catalog, choices, selection)

    materializer = materializer_from_config(config)
    base_dir = get_base_dir(request.base_input)

    for name in resolution.names:
        job = catalog.find(name)
        resolution.branches[name] = typer.prompt(
            f"Enter branch for {name}",
            default=resolve_branch(job, choices, resolution.branches.get(name)),
        )

        if not job.supports_new_variant:
            continue

        available = materializer.available_variants(job, base_dir)
        typer.echo(f"\nAvailable build configurations for {name}:")
        typer.echo("  0) Create a new environment...")
        for index, variant in enumerate(available, 1):
            typer.echo(f"  {index}) {variant}")

        answer = typer.prompt(
            "Enter configuration name or number",
            default=choices.variants.get(name) or job.default_variant,
        )
        if answer.strip() == CREATE_VARIANT_TOKEN:
            _prompt_new_variant(name, job.default_variant, materializer, resolution)
        else:
            resolution.variants[name] = answer


def _prompt_new_variant(
    name: str,
    default_name: str,
    materializer: AngularEnvironmentMaterializer,
    resolution: ResolutionRequest,
) -> None:
    new_name = typer.prompt("Enter the name for the new environment", default=default_name)
    resolution.new_variants[name] = new_name
    resolution.variant_params[name] = {
        "url": typer.prompt(
            "Enter the base URL for the new environment",
            default=materializer.url_pattern.format(name=new_name),
        ),
        "realm": typer.prompt("Enter the Keycloak Realm", default=materializer.realm),
        "client_id": typer.prompt("Enter the Keycloak Client ID", default=materializer.client_id),
    }


def _render_result(result: RunResult) -> None:
    if result.report is None:
        typer.echo("No valid repositories selected. Nothing to build.")
        return

    report = result.report
    typer.echo()
    for line in report.lines:
        typer.echo(line)
    for warning in report.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    typer.echo(f"\n{report.succeeded} succeeded, {report.failed} failed")
    typer.echo(f"Summary at: {report.summary_path}")


@app.command()
def run(
    select: Optional[str] = typer.Option(
        None, "--select", "-s", help="Repo numbers (space-separated) or 0/all; defaults to last run's"
    ),
    branch: Optional[List[str]] = typer.Option(None, "--branch", "-b", help="JOB=BRANCH (repeatable)"),
    variant: Optional[List[str]] = typer.Option(None, "--variant", help="JOB=VARIANT (repeatable)"),
    new_variant: Optional[List[str]] = typer.Option(
        None, "--new-variant", help="JOB[=NAME]: create a new variant and build with it"
    ),
    base_dir: Optional[str] = typer.Option(None, "--base-dir", "-d", help="Base directory (relative to ~)"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Fixed number of parallel builds"),
    load_factor: Optional[float] = typer.Option(
        None, "--load-factor", min=0.01, max=1.0, help="Fraction of CPUs to use (default 0.8)"
    ),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Prompt for every choice"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to settings file"),
):
    """Resolve, then build the selected repositories in parallel."""
    try:
        config = load_config(config_path)
        catalog = get_catalog(config)
        choices = load_choices(get_choices_file(config), known_jobs=catalog.names())

        request = RunRequest(
            base_input=base_dir,
            resolution=ResolutionRequest(
                selection=select,
                branches=_parse_job_args(branch, catalog, "--branch"),
                variants=_parse_job_args(variant, catalog, "--variant"),
                new_variants=_parse_job_args(new_variant, catalog, "--new-variant", require_value=False),
            ),
            max_workers=workers,
            load_factor=load_factor,
        )

        if interactive:
            _prompt_request(catalog, choices, config, request)

        result = run_build(config, request, catalog=catalog, choices=choices)
    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user", err=True)
        raise typer.Exit(130)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except RepoBuilderError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    _render_result(result)
    raise typer.Exit(result.exit_code)


@app.command()
def jobs(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to settings file"),
):
    """List buildable repositories with their selection numbers."""
    try:
        catalog = get_catalog(load_config(config_path))
    except (FileNotFoundError, RepoBuilderError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    for index, job in enumerate(catalog.all_jobs(), 1):
        typer.echo(f"  {index}) {job.name}")
        typer.echo(f"      default branch: {job.default_branch}, default variant: {job.default_variant}")
        if job.repo_url:
            typer.echo(f"      {job.repo_url}")
    typer.echo("  0) ALL")


@app.command()
def version():
    """Show version information."""
    typer.echo(f"repo-builder version {__version__}")


# Static commands (config, report)
from repo_builder.commands import config, report  # noqa: E402

app.add_typer(config.app, name="config")
app.add_typer(report.app, name="report")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
