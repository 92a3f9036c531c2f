# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Run schemas for Repo-Builder.

JobCatalog -> resolve -> JobSelection -> execute -> JobOutcome -> RunSummary
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from repo_builder.catalog import Job

SUCCESS = "SUCCESS"
FAIL = "FAIL"


@dataclass(frozen=True)
class JobSelection:
    """A job bound to this run's branch and variant."""
    job: Job
    branch: str
    variant: str

    @property
    def name(self) -> str:
        return self.job.name


@dataclass(frozen=True)
class JobOutcome:
    """Result of running one job."""
    name: str
    status: str  # SUCCESS or FAIL
    log_path: Path
    output: str = ""
    exit_code: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS


@dataclass(frozen=True)
class RunSummary:
    """Aggregate result of a run. Outcomes are in tracker order."""
    started_at: datetime
    finished_at: datetime
    outcomes: Tuple[JobOutcome, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == SUCCESS)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status != SUCCESS)
