# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Orchestrator - resolve, persist, execute, report.

Phases run strictly in order:
1. Load persisted choices and resolve this run's jobs (sequential)
2. Save choices, before anything is executed
3. Run all jobs in parallel, appending each outcome to the tracker
4. Write the summary and compute the exit code
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from repo_builder.catalog import JobCatalog, default_catalog, load_catalog
from repo_builder.choices import PersistedChoices, load_choices, save_choices
from repo_builder.config import (
    get_base_dir,
    get_choices_file,
    get_default_base_input,
    get_load_factor,
    get_log_dir,
    get_max_workers,
    get_scripts_dir,
)
from repo_builder.events import RunEventLog
from repo_builder.executor import (
    BuildRunner,
    ParallelExecutor,
    SubprocessBuildRunner,
    batch_exit_code,
)
from repo_builder.materialize import VariantMaterializer, materializer_from_config
from repo_builder.report import Report, ReportWriter
from repo_builder.resolver import ResolutionRequest, resolve_jobs
from repo_builder.schemas import JobOutcome, JobSelection, RunSummary

logger = logging.getLogger(__name__)

RUN_TAG_FORMAT = "%Y%m%d_%H%M%S"


@dataclass
class RunRequest:
    """Everything the user asked for in this run.

    base_input, max_workers and load_factor fall back to persisted choices
    and settings when None.
    """
    base_input: Optional[str] = None
    resolution: ResolutionRequest = field(default_factory=ResolutionRequest)
    max_workers: Optional[int] = None
    load_factor: Optional[float] = None


@dataclass
class RunResult:
    """Outcome of run_build."""
    exit_code: int
    choices: PersistedChoices
    selections: List[JobSelection] = field(default_factory=list)
    report: Optional[Report] = None


def get_catalog(config: Dict[str, Any]) -> JobCatalog:
    """The catalog from config['catalog_file'], or the built-in one."""
    catalog_file = config.get("catalog_file")
    if catalog_file:
        return load_catalog(catalog_file)
    return default_catalog()


def prepare_base_dir(base_dir: Path, log_dir: Path) -> None:
    """Create the checkout, build output and log directories."""
    for path in (base_dir / "repos", base_dir / "builds", log_dir):
        path.mkdir(parents=True, exist_ok=True)


def run_build(
    config: Dict[str, Any],
    request: RunRequest,
    *,
    catalog: Optional[JobCatalog] = None,
    choices: Optional[PersistedChoices] = None,
    runner: Optional[BuildRunner] = None,
    materializer: Optional[VariantMaterializer] = None,
) -> RunResult:
    """
    Run one build batch.

    Args:
        config: Settings dict from load_config()
        request: This run's input
        catalog: Job catalog (defaults to get_catalog(config))
        choices: Already-loaded persisted choices (loaded from disk if None)
        runner: Build runner (defaults to SubprocessBuildRunner)
        materializer: Variant materializer (defaults to the Angular one)

    Returns:
        RunResult. exit_code is 0 when every job succeeded or nothing ran.

    Raises:
        ChoicesStoreError: If choices cannot be saved; nothing has run yet.
        CatalogError: If the configured catalog file is invalid.
        ConfigError: If settings are invalid.
    """
    started_at = datetime.now()
    if catalog is None:
        catalog = get_catalog(config)
    if materializer is None:
        materializer = materializer_from_config(config)
    choices_path = get_choices_file(config)
    max_workers = request.max_workers or get_max_workers(config)
    load_factor = request.load_factor or get_load_factor(config)

    if choices is None:
        choices = load_choices(choices_path, known_jobs=catalog.names())

    choices.base_input = (
        request.base_input or choices.base_input or get_default_base_input(config)
    )
    base_dir = get_base_dir(choices.base_input)

    selections = resolve_jobs(
        catalog, choices, request.resolution, materializer=materializer, base_dir=base_dir
    )
    save_choices(choices_path, choices)

    if not selections:
        logger.info("No valid repositories selected. Nothing to run.")
        return RunResult(exit_code=0, choices=choices)

    log_dir = get_log_dir(config, base_dir)
    prepare_base_dir(base_dir, log_dir)

    run_tag = started_at.strftime(RUN_TAG_FORMAT)
    writer = ReportWriter(log_dir, run_tag)
    events = RunEventLog(log_dir / "events.jsonl")

    events.log_event(
        event_type="run.started",
        status="running",
        payload={
            "base_dir": str(base_dir),
            "run_tag": run_tag,
            "jobs": [
                {"name": s.name, "branch": s.branch, "variant": s.variant}
                for s in selections
            ],
        },
    )

    def record(outcome: JobOutcome) -> None:
        writer.append(outcome)
        succeeded = outcome.succeeded
        events.log_event(
            event_type="job.completed" if succeeded else "job.failed",
            status="succeeded" if succeeded else "failed",
            payload={
                "job": outcome.name,
                "exit_code": outcome.exit_code,
                "log_path": str(outcome.log_path),
            },
            error_message=None if succeeded else f"Build exited with code {outcome.exit_code}",
        )

    executor = ParallelExecutor(
        runner or SubprocessBuildRunner(get_scripts_dir(config)),
        log_dir=log_dir,
        run_tag=run_tag,
        max_workers=max_workers,
        load_factor=load_factor,
    )
    outcomes = executor.run_all(selections, base_dir, on_outcome=record)

    summary = RunSummary(
        started_at=started_at,
        finished_at=datetime.now(),
        outcomes=tuple(outcomes),
    )
    report = writer.finalize(summary)
    exit_code = batch_exit_code(outcomes)

    events.log_event(
        event_type="run.completed",
        status="succeeded" if exit_code == 0 else "failed",
        payload={
            "succeeded": report.succeeded,
            "failed": report.failed,
            "summary_path": str(report.summary_path),
        },
    )

    return RunResult(exit_code=exit_code, choices=choices, selections=selections, report=report)
