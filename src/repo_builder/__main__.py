# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Main entry point for running repo_builder as a module."""

from repo_builder.cli import main

if __name__ == "__main__":
    main()
