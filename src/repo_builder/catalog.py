"""Job catalog.

Fixed registry of buildable jobs, in canonical display order. The registry
is either the compiled-in default or a YAML catalog file.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Sequence, Tuple, Union

import yaml

from repo_builder.errors import CatalogError, JobNotFoundError

logger = logging.getLogger(__name__)

# Job names end up in file names and config keys
NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")

DEFAULT_VARIANT = "development"


@dataclass(frozen=True)
class Job:
    """One independently buildable unit.

    command is an argv template; each element may reference {branch},
    {base_dir}, {variant} and {scripts_dir}.
    """

    name: str
    command: Tuple[str, ...]
    default_branch: str = "main"
    default_variant: str = DEFAULT_VARIANT
    repo_url: str = ""
    supports_new_variant: bool = False


def validate_name(name: str) -> None:
    """Validate a job name.

    Raises:
        CatalogError: If name is empty, contains path separators or
            characters outside [A-Za-z0-9_.-], or starts with a dot/dash.
    """
    if not name:
        raise CatalogError("job name cannot be empty")
    if "/" in name or "\\" in name:
        raise CatalogError(f"path separators not allowed in job name: {name}")
    if not NAME_PATTERN.match(name):
        raise CatalogError(
            f"job name must match [A-Za-z0-9][A-Za-z0-9_.-]*, got: {name}"
        )


class JobCatalog:
    """Immutable, ordered registry of jobs."""

    def __init__(self, jobs: Sequence[Job]):
        by_name: Dict[str, Job] = {}
        for job in jobs:
            validate_name(job.name)
            if job.name in by_name:
                raise CatalogError(f"duplicate job name: {job.name}")
            if not job.command:
                raise CatalogError(f"job '{job.name}' has an empty command")
            by_name[job.name] = job
        self._jobs: Tuple[Job, ...] = tuple(jobs)
        self._by_name = by_name

    def all_jobs(self) -> Tuple[Job, ...]:
        return self._jobs

    def names(self) -> List[str]:
        return [job.name for job in self._jobs]

    def find(self, name: str) -> Job:
        """Look up a job by name.

        Raises:
            JobNotFoundError: If no job has that name.
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise JobNotFoundError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Job]:
        return iter(self._jobs)

    def __len__(self) -> int:
        return len(self._jobs)


def _script_job(name: str, script: str, default_branch: str = "main", **kwargs) -> Job:
    return Job(
        name=name,
        command=(f"{{scripts_dir}}/{script}", "{branch}", "{base_dir}", "{variant}"),
        default_branch=default_branch,
        **kwargs,
    )


def default_catalog() -> JobCatalog:
    """The compiled-in registry of repositories."""
    return JobCatalog([
        _script_job(
            "dvm_visualization_tool",
            "build_dvm_visualization_tool.sh",
            repo_url="https://github.com/simaiserver/dvm_visualization_tool.git",
            supports_new_variant=True,
        ),
        _script_job(
            "off_highway_backend",
            "build_off_highway_backend.sh",
            repo_url="https://github.com/simaiserver/off_highway_backend.git",
        ),
        _script_job(
            "spriced-platform-data-management-layer",
            "build_spriced_platform_data_management_layer.sh",
            repo_url="https://github.com/simaiserver/spriced-platform-data-management-layer.git",
        ),
        _script_job(
            "spriced-platform-ib-ob",
            "build_spriced_platform_ib_ob.sh",
            default_branch="develop",
            repo_url="https://github.com/simaiserver/spriced-platform-ib-ob.git",
        ),
    ])


def _job_from_mapping(data: Mapping, source: Path) -> Job:
    if not isinstance(data, dict):
        raise CatalogError(f"each job in {source} must be a mapping")

    name = data.get("name", "")
    command = data.get("command")
    if isinstance(command, str):
        command = [command]
    if not isinstance(command, list) or not all(isinstance(c, str) for c in command):
        raise CatalogError(f"job '{name}' in {source}: command must be a string or list of strings")

    try:
        return Job(
            name=str(name),
            command=tuple(command),
            default_branch=str(data.get("default_branch", "main")),
            default_variant=str(data.get("default_variant", DEFAULT_VARIANT)),
            repo_url=str(data.get("repo_url", "")),
            supports_new_variant=bool(data.get("supports_new_variant", False)),
        )
    except TypeError as e:
        raise CatalogError(f"invalid job '{name}' in {source}: {e}") from e


def load_catalog(path: Union[str, Path]) -> JobCatalog:
    """Load a catalog from a YAML file.

    The file holds either a list of jobs or a mapping with a `jobs` list:

        jobs:
          - name: api
            command: ["./build_api.sh", "{branch}", "{base_dir}", "{variant}"]
            default_branch: develop

    Raises:
        CatalogError: If the file is missing, not valid YAML, or a job is invalid.
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise CatalogError(f"catalog file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise CatalogError(f"invalid YAML in {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("jobs")
    if not isinstance(data, list) or not data:
        raise CatalogError(f"catalog file {path} must define a non-empty list of jobs")

    return JobCatalog([_job_from_mapping(item, path) for item in data])


def render_command(job: Job, variables: Mapping[str, object]) -> List[str]:
    """
    Substitute {placeholders} in each element of the job's command.

    Double braces escape literal braces: {{text}} becomes {text}. Unknown
    placeholders are left in place and logged.

    Example:
        >>> render_command(job, {"branch": "main"})  # ("deploy.sh", "{branch}")
        ['deploy.sh', 'main']
    """
    escape_open = "\x00ESCAPED_OPEN\x00"
    escape_close = "\x00ESCAPED_CLOSE\x00"

    rendered = []
    for part in job.command:
        remaining: List[str] = []

        def substitute(match) -> str:
            key = match.group(1)
            if key in variables:
                return str(variables[key])
            remaining.append(key)
            return match.group(0)

        result = part.replace("{{", escape_open).replace("}}", escape_close)
        # One pass, so substituted values are never rescanned
        result = PLACEHOLDER_PATTERN.sub(substitute, result)

        if remaining:
            logger.warning(f"[{job.name}] Unsubstituted variables: {remaining}")

        rendered.append(result.replace(escape_open, "{").replace(escape_close, "}"))
    return rendered
