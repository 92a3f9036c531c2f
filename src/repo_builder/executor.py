# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Parallel executor - run resolved jobs as independent subprocesses.

Each job occupies one worker slot until its subprocess exits. A failing job
is recorded as FAIL; it never cancels or skips its siblings.

Job output is captured whole and written to the job log when the job exits,
so every output line carries the finish timestamp.
"""

import logging
import math
import os
import subprocess
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from fractions import Fraction
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from repo_builder.catalog import render_command
from repo_builder.report import TIME_FORMAT, job_log_path
from repo_builder.schemas import FAIL, SUCCESS, JobOutcome, JobSelection

logger = logging.getLogger(__name__)

# Exit code recorded when a job could not be started at all
SPAWN_FAILURE_EXIT_CODE = 127

# Batch exit codes stop counting failures here
MAX_BATCH_EXIT_CODE = 101

BuildRunner = Callable[[JobSelection, Path], Tuple[int, str]]
OutcomeCallback = Callable[[JobOutcome], None]


def available_parallelism() -> int:
    """CPUs this process may run on."""
    try:
        return len(os.sched_getaffinity(0)) or 1
    except AttributeError:
        return os.cpu_count() or 1


def concurrency_cap(available: int, load_factor: float) -> int:
    """
    Worker cap: ceil(available * load_factor), at least 1.

    Computed on the decimal value of load_factor so 10 x 0.8 is exactly 8.

    Raises:
        ValueError: If load_factor is outside (0, 1].
    """
    if not 0 < load_factor <= 1:
        raise ValueError(f"load_factor must be in (0, 1], got: {load_factor}")
    exact = Fraction(str(load_factor)) * max(available, 1)
    return max(1, math.ceil(exact))


def batch_exit_code(outcomes: Sequence[JobOutcome]) -> int:
    """Number of failed jobs, capped at 101; 0 when all succeeded."""
    failed = sum(1 for o in outcomes if not o.succeeded)
    return min(failed, MAX_BATCH_EXIT_CODE)


class SubprocessBuildRunner:
    """Runs a job's rendered command with stdout and stderr merged."""

    def __init__(self, scripts_dir: Path, env: Optional[Dict[str, str]] = None):
        self.scripts_dir = Path(scripts_dir)
        self.env = env or {}

    def __call__(self, selection: JobSelection, base_dir: Path) -> Tuple[int, str]:
        argv = render_command(selection.job, {
            "branch": selection.branch,
            "base_dir": base_dir,
            "variant": selection.variant,
            "scripts_dir": self.scripts_dir,
        })

        env = os.environ.copy()
        env.update(self.env)
        env["REPO_BUILDER_BRANCH"] = selection.branch
        env["REPO_BUILDER_VARIANT"] = selection.variant
        env["REPO_BUILDER_BASE_DIR"] = str(base_dir)

        logger.info(f"[{selection.name}] Executing: {' '.join(argv)}")
        proc = subprocess.run(
            argv,
            cwd=str(base_dir),
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
        return proc.returncode, proc.stdout or ""


def _stamp(when: Optional[datetime] = None) -> str:
    return (when or datetime.now()).strftime(TIME_FORMAT)


def _append_log(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        logger.error(f"Could not write log file {path}: {e}")


class ParallelExecutor:
    """Runs job selections in a bounded worker pool."""

    def __init__(
        self,
        runner: BuildRunner,
        log_dir: Path,
        run_tag: str,
        max_workers: Optional[int] = None,
        load_factor: float = 0.8,
    ):
        """
        Args:
            runner: Called as runner(selection, base_dir) -> (exit_code, output)
            log_dir: Directory for per-job log files
            run_tag: Timestamp tag shared by all files of this run
            max_workers: Fixed worker cap; derived from CPUs when None
            load_factor: Fraction of available CPUs to use
        """
        self.runner = runner
        self.log_dir = Path(log_dir)
        self.run_tag = run_tag
        self.max_workers = max_workers
        self.load_factor = load_factor

    def worker_count(self, job_count: int) -> int:
        cap = self.max_workers or concurrency_cap(available_parallelism(), self.load_factor)
        return max(1, min(cap, job_count))

    def _run_one(
        self,
        selection: JobSelection,
        base_dir: Path,
        on_outcome: Optional[OutcomeCallback],
    ) -> JobOutcome:
        name = selection.name
        log_path = job_log_path(self.log_dir, name, self.run_tag)
        started_at = datetime.now()
        _append_log(
            log_path,
            f"{_stamp(started_at)} --- Build started for {name} "
            f"(branch={selection.branch}, variant={selection.variant}) ---\n",
        )

        try:
            exit_code, output = self.runner(selection, base_dir)
        except Exception as e:
            # A job that cannot even start is still just a failed job
            logger.error(f"[{name}] Failed to start: {e}")
            exit_code, output = SPAWN_FAILURE_EXIT_CODE, f"{type(e).__name__}: {e}"

        finished_at = datetime.now()
        status = SUCCESS if exit_code == 0 else FAIL

        stamp = _stamp(finished_at)
        body = "".join(f"{stamp} {line}\n" for line in output.splitlines())
        body += f"{stamp} --- Build finished for {name} with status: {status} (exit={exit_code}) ---\n"
        _append_log(log_path, body)

        outcome = JobOutcome(
            name=name,
            status=status,
            log_path=log_path,
            output=output,
            exit_code=exit_code,
            started_at=started_at,
            finished_at=finished_at,
        )

        if status == SUCCESS:
            logger.info(f"[{name}] Build succeeded")
        else:
            logger.warning(f"[{name}] Build failed with exit code {exit_code}; see {log_path}")

        if on_outcome is not None:
            try:
                on_outcome(outcome)
            except OSError as e:
                logger.error(f"[{name}] Could not record outcome: {e}")

        return outcome

    def run_all(
        self,
        selections: Sequence[JobSelection],
        base_dir: Path,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> List[JobOutcome]:
        """
        Run every selection and wait for all of them.

        Args:
            selections: Jobs to run
            base_dir: Working directory handed to each job
            on_outcome: Called from the worker as soon as a job finishes

        Returns:
            One outcome per selection, in completion order
        """
        if not selections:
            return []

        workers = self.worker_count(len(selections))
        logger.info(f"Running {len(selections)} build(s) with {workers} worker(s)")

        outcomes: List[JobOutcome] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="repo-builder") as pool:
            futures = {
                pool.submit(self._run_one, selection, Path(base_dir), on_outcome): selection.name
                for selection in selections
            }
            for future in as_completed(futures):
                outcomes.append(future.result())

        return outcomes
