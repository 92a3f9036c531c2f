"""Persisted user choices.

Remembers the base directory, the selected jobs and the per-job branch and
variant between runs in a flat KEY='VALUE' file.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import os
import shlex
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
from urllib.parse import quote, unquote

from repo_builder.errors import ChoicesStoreError

logger = logging.getLogger(__name__)

BASE_INPUT_KEY = "BASE_INPUT"
SELECTED_KEY = "SELECTED_REPOS_STRING"
BRANCH_PREFIX = "BRANCH_CHOICES__"
VARIANT_PREFIX = "CONFIG_CHOICES__"


@dataclass
class PersistedChoices:
    """User choices carried from one run to the next.

    - base_input: Base working directory as entered (relative to ~ unless absolute)
    - selected: Selected job names, in selection order
    - branches: job name -> branch
    - variants: job name -> build variant
    """

    base_input: str = ""
    selected: List[str] = field(default_factory=list)
    branches: Dict[str, str] = field(default_factory=dict)
    variants: Dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.base_input or self.selected or self.branches or self.variants)


def _encode_name(name: str) -> str:
    # Plain names pass through so files written by older tooling stay readable
    return quote(name, safe="-_.~")


def _decode_name(token: str) -> str:
    return unquote(token)


def _quote_value(value: str) -> str:
    if "\n" in value or "\r" in value:
        raise ChoicesStoreError(f"values cannot contain line breaks: {value!r}")
    return "'" + value.replace("'", "'\\''") + "'"


def _unquote_value(raw: str) -> str:
    raw = raw.strip()
    try:
        return " ".join(shlex.split(raw))
    except ValueError:
        # Unbalanced quotes - strip one leading/trailing quote and keep the rest
        if raw.startswith("'"):
            raw = raw[1:]
        if raw.endswith("'"):
            raw = raw[:-1]
        return raw


def dump_choices(choices: PersistedChoices) -> str:
    """Render choices in the KEY='VALUE' file format.

    Raises:
        ChoicesStoreError: If a value contains a line break.
    """
    lines = [
        f"{BASE_INPUT_KEY}={_quote_value(choices.base_input)}",
        f"{SELECTED_KEY}={_quote_value(' '.join(_encode_name(n) for n in choices.selected))}",
    ]
    for name in sorted(choices.branches):
        lines.append(f"{BRANCH_PREFIX}{_encode_name(name)}={_quote_value(choices.branches[name])}")
    for name in sorted(choices.variants):
        lines.append(f"{VARIANT_PREFIX}{_encode_name(name)}={_quote_value(choices.variants[name])}")
    return "\n".join(lines) + "\n"


def parse_choices(text: str, known_jobs: Optional[Iterable[str]] = None) -> PersistedChoices:
    """Parse the KEY='VALUE' file format.

    Unknown keys are skipped. When known_jobs is given, entries for job
    names outside it are dropped.
    """
    known = set(known_jobs) if known_jobs is not None else None
    choices = PersistedChoices()

    for lineno, line in enumerate(text.splitlines(), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            logger.warning(f"Ignoring malformed line {lineno} in choices file: {stripped!r}")
            continue

        key, raw = stripped.split("=", 1)
        key = key.strip()
        value = _unquote_value(raw)

        if key == BASE_INPUT_KEY:
            choices.base_input = value
        elif key == SELECTED_KEY:
            choices.selected = [_decode_name(t) for t in value.split()]
        elif key.startswith(BRANCH_PREFIX):
            choices.branches[_decode_name(key[len(BRANCH_PREFIX):])] = value
        elif key.startswith(VARIANT_PREFIX):
            choices.variants[_decode_name(key[len(VARIANT_PREFIX):])] = value
        else:
            logger.debug(f"Skipping unknown key in choices file: {key}")

    if known is not None:
        choices.selected = [n for n in choices.selected if n in known]
        choices.branches = {k: v for k, v in choices.branches.items() if k in known}
        choices.variants = {k: v for k, v in choices.variants.items() if k in known}

    return choices


def load_choices(
    path: Union[str, Path], known_jobs: Optional[Iterable[str]] = None
) -> PersistedChoices:
    """Load persisted choices.

    Args:
        path: Choices file.
        known_jobs: Job names to keep; entries for other names are dropped.

    Returns:
        PersistedChoices, or an empty record if the file doesn't exist or
        can't be read.
    """
    path = Path(path)
    if not path.exists():
        return PersistedChoices()

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Could not read choices file {path}: {e}")
        return PersistedChoices()

    logger.debug(f"Loaded previous choices from {path}")
    return parse_choices(text, known_jobs)


def save_choices(path: Union[str, Path], choices: PersistedChoices) -> None:
    """Replace the choices file with the given record.

    The new content is written to a temporary file next to the target and
    renamed over it, so a reader sees either the old or the new file.

    Raises:
        ChoicesStoreError: If the file cannot be written.
    """
    path = Path(path)
    content = dump_choices(choices)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        raise ChoicesStoreError(f"could not save choices to {path}: {e}") from e

    logger.debug(f"Saved choices to {path}")
