# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Repo-Builder - parallel build orchestrator for a fixed set of repositories."""

__version__ = "0.3.0"
