# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Exception types shared across repo-builder."""


class RepoBuilderError(Exception):
    """Base class for repo-builder errors."""

    pass


class ConfigError(RepoBuilderError):
    """Raised when the settings file cannot be parsed."""

    pass


class ChoicesStoreError(RepoBuilderError):
    """Raised when persisted choices cannot be written."""

    pass


class CatalogError(RepoBuilderError):
    """Raised when a job catalog is invalid."""

    pass


class JobNotFoundError(CatalogError, KeyError):
    """Raised when a job name is not registered in the catalog."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"unknown job: {self.name}"


class MaterializeError(RepoBuilderError):
    """Raised when a new build variant cannot be materialized."""

    pass
