# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Report command for Repo-Builder.

Shows the summary written by the most recent run.
"""

import csv
from typing import Optional

import typer

from repo_builder.choices import load_choices
from repo_builder.config import (
    get_base_dir,
    get_choices_file,
    get_default_base_input,
    get_log_dir,
    load_config,
)
from repo_builder.errors import RepoBuilderError
from repo_builder.report import latest_summary

app = typer.Typer(help="Inspect build summaries")


@app.command()
def show(
    base_dir: Optional[str] = typer.Option(
        None, "--base-dir", "-d", help="Base directory (defaults to the last run's)"
    ),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to settings file"),
):
    """Print the newest build summary."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, RepoBuilderError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if base_dir is None:
        base_dir = load_choices(get_choices_file(config)).base_input or get_default_base_input(config)
    log_dir = get_log_dir(config, get_base_dir(base_dir))

    summary_path = latest_summary(log_dir)
    if summary_path is None:
        typer.echo(f"No build summary found in {log_dir}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Summary: {summary_path}\n")
    with open(summary_path, newline="") as f:
        rows = list(csv.reader(f))

    failed = 0
    for row in rows:
        if len(row) == 3 and row[0] in ("SUCCESS", "FAIL"):
            badge = "[DONE]" if row[0] == "SUCCESS" else "[FAIL]"
            failed += row[0] == "FAIL"
            typer.echo(f"  {badge} {row[1]} - see log: {row[2]}")
        elif len(row) == 2:
            typer.echo(f"{row[0]}: {row[1]}")

    if failed:
        raise typer.Exit(1)
