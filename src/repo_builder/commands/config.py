# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Config command for Repo-Builder.

Validates settings and shows or resets the persisted choices.
"""

import typer

from repo_builder.choices import load_choices
from repo_builder.config import (
    get_choices_file,
    get_default_base_input,
    get_load_factor,
    get_max_workers,
    get_scripts_dir,
    load_config,
)
from repo_builder.errors import RepoBuilderError
from repo_builder.orchestrator import get_catalog

app = typer.Typer(help="Manage settings and persisted choices")


@app.command()
def validate(
    config_path: str = typer.Option(None, "--config", "-c", help="Path to settings file"),
):
    """
    Validate the settings file.

    Checks that the file is valid YAML, that numeric settings are in range
    and that the job catalog loads.
    """
    typer.echo("Validating configuration...")
    typer.echo()

    try:
        config = load_config(config_path)
        get_load_factor(config)
        get_max_workers(config)
        catalog = get_catalog(config)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except RepoBuilderError as e:
        typer.echo(f"Validation failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("Configuration structure is valid")
    typer.echo(f"Source: {config.get('_source', '(defaults)')}")
    typer.echo(f"Jobs: {len(catalog)}")
    typer.echo()
    typer.echo("Configuration validation complete!")


@app.command()
def show(
    config_path: str = typer.Option(None, "--config", "-c", help="Path to settings file"),
):
    """Show effective settings and the choices remembered from the last run."""
    try:
        config = load_config(config_path)
        catalog = get_catalog(config)
        load_factor = get_load_factor(config)
    except (FileNotFoundError, RepoBuilderError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    choices_file = get_choices_file(config)
    choices = load_choices(choices_file, known_jobs=catalog.names())

    typer.echo("Settings:")
    typer.echo(f"  Source: {config.get('_source', '(defaults)')}")
    typer.echo(f"  Scripts dir: {get_scripts_dir(config)}")
    typer.echo(f"  Load factor: {load_factor}")
    typer.echo(f"  Choices file: {choices_file}")
    typer.echo()

    if choices.is_empty():
        typer.echo("No saved choices yet.")
        return

    typer.echo("Saved choices:")
    typer.echo(f"  Base directory: {choices.base_input or get_default_base_input(config)}")
    typer.echo(f"  Selected: {', '.join(choices.selected) or '(none)'}")
    for job in catalog.all_jobs():
        branch = choices.branches.get(job.name)
        variant = choices.variants.get(job.name)
        if branch or variant:
            typer.echo(f"  {job.name}: branch={branch or job.default_branch} variant={variant or job.default_variant}")


@app.command()
def reset(
    config_path: str = typer.Option(None, "--config", "-c", help="Path to settings file"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Forget the choices remembered from previous runs."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, RepoBuilderError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    choices_file = get_choices_file(config)
    if not choices_file.exists():
        typer.echo(f"No saved choices at {choices_file}")
        return

    if not yes and not typer.confirm(f"Delete {choices_file}?"):
        raise typer.Abort()

    try:
        choices_file.unlink()
    except OSError as e:
        typer.echo(f"Error: could not delete {choices_file}: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {choices_file}")
