# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Repo-Builder run schemas."""

from repo_builder.schemas.run import (
    FAIL,
    SUCCESS,
    JobOutcome,
    JobSelection,
    RunSummary,
)

__all__ = [
    "FAIL",
    "SUCCESS",
    "JobOutcome",
    "JobSelection",
    "RunSummary",
]
