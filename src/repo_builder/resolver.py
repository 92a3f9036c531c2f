"""Job resolution.

Turns catalog defaults, persisted choices and fresh user input into the
concrete list of jobs to run. Precedence for branch and variant:

    explicit input for this run > persisted choice > catalog default

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from repo_builder.catalog import Job, JobCatalog
from repo_builder.choices import PersistedChoices
from repo_builder.errors import MaterializeError
from repo_builder.materialize import VariantMaterializer
from repo_builder.schemas import JobSelection

logger = logging.getLogger(__name__)

ALL_TOKENS = ("0", "all")
CREATE_VARIANT_TOKEN = "0"


@dataclass
class ResolutionRequest:
    """Fresh user input for one run.

    - selection: "0"/"all", or 1-based indices (string or tokens); None
      means "same as last time"
    - names: job names already chosen (e.g. from prompts); overrides selection
    - branches / variants: job name -> explicit value
    - new_variants: job name -> name of a variant to create ("" uses the
      job's default variant name)
    - variant_params: job name -> parameters for the materializer
    """

    selection: Union[str, Sequence[str], None] = None
    names: Optional[List[str]] = None
    branches: Dict[str, str] = field(default_factory=dict)
    variants: Dict[str, str] = field(default_factory=dict)
    new_variants: Dict[str, str] = field(default_factory=dict)
    variant_params: Dict[str, Dict[str, str]] = field(default_factory=dict)


def _tokens(user_input: Union[str, Sequence[str], None]) -> List[str]:
    if user_input is None:
        return []
    if isinstance(user_input, str):
        return user_input.replace(",", " ").split()
    tokens = []
    for item in user_input:
        tokens.extend(str(item).replace(",", " ").split())
    return tokens


def default_selection_input(catalog: JobCatalog, previous: PersistedChoices) -> str:
    """Indices of the previously selected jobs, or "0" (all) if none."""
    names = catalog.names()
    indices = [str(names.index(n) + 1) for n in previous.selected if n in catalog]
    return " ".join(indices) if indices else "0"


def resolve_selection(
    catalog: JobCatalog,
    previous: PersistedChoices,
    user_input: Union[str, Sequence[str], None],
) -> List[str]:
    """
    Map selection input to job names.

    Args:
        catalog: Job catalog; indices are 1-based into catalog.all_jobs()
        previous: Persisted choices, used when input is empty
        user_input: "0"/"all" for every job, or 1-based indices

    Returns:
        Selected job names without duplicates. Invalid indices are logged and
        dropped, so the result may be empty.
    """
    tokens = _tokens(user_input)
    if not tokens:
        tokens = _tokens(default_selection_input(catalog, previous))

    if any(t.lower() in ALL_TOKENS for t in tokens):
        return catalog.names()

    jobs = catalog.all_jobs()
    selected: List[str] = []
    for token in tokens:
        if not token.isdecimal() or not 1 <= int(token) <= len(jobs):
            logger.warning(f"Invalid selection: {token}. Skipping...")
            continue
        name = jobs[int(token) - 1].name
        if name not in selected:
            selected.append(name)
    return selected


def resolve_branch(job: Job, previous: PersistedChoices, user_input: Optional[str] = None) -> str:
    """Branch for this run: input > persisted > catalog default."""
    if user_input and user_input.strip():
        return user_input.strip()
    return previous.branches.get(job.name) or job.default_branch


def _create_variant(
    job: Job,
    new_name: str,
    materializer: Optional[VariantMaterializer],
    base_dir: Optional[Path],
    params: Optional[Dict[str, str]],
) -> str:
    name = (new_name or "").strip() or job.default_variant
    if materializer is None or base_dir is None:
        logger.warning(f"[{job.name}] No materializer available; using variant '{name}' as-is")
        return name

    try:
        ok = materializer.materialize(job, name, base_dir, params)
    except (MaterializeError, OSError) as e:
        logger.warning(f"[{job.name}] Failed to materialize variant '{name}': {e}")
        return name

    if not ok:
        logger.warning(f"[{job.name}] Materializer reported failure for variant '{name}'")
    return name


def resolve_variant(
    job: Job,
    previous: PersistedChoices,
    user_input: Optional[str] = None,
    *,
    create: bool = False,
    new_name: str = "",
    materializer: Optional[VariantMaterializer] = None,
    base_dir: Optional[Path] = None,
    available: Sequence[str] = (),
    params: Optional[Dict[str, str]] = None,
) -> str:
    """
    Variant for this run.

    Same precedence as branches. Jobs that support new variants also accept
    "0" (or create=True) to create one, and a number k to pick the k-th of
    the available variants.

    Materialization failures are logged, and the new name is still returned;
    the build will report its own failure if the variant is unusable.
    """
    value = (user_input or "").strip()

    if job.supports_new_variant:
        if create or value == CREATE_VARIANT_TOKEN:
            return _create_variant(job, new_name, materializer, base_dir, params)
    elif create:
        logger.warning(f"[{job.name}] Job does not support creating variants; ignoring request")

    if not value:
        value = previous.variants.get(job.name) or job.default_variant

    if value.isdecimal() and job.supports_new_variant:
        index = int(value)
        if 1 <= index <= len(available):
            return available[index - 1]
        logger.warning(
            f"[{job.name}] Invalid variant selection: {value}. Defaulting to '{job.default_variant}'."
        )
        return job.default_variant

    return value


def resolve_jobs(
    catalog: JobCatalog,
    choices: PersistedChoices,
    request: ResolutionRequest,
    materializer: Optional[VariantMaterializer] = None,
    base_dir: Optional[Path] = None,
) -> List[JobSelection]:
    """
    Resolve the selections for this run, one job at a time.

    The resolved selection, branches and variants are written back into
    choices (in place) so the caller can persist them before execution.
    """
    if request.names is not None:
        names = []
        for name in request.names:
            if name not in catalog:
                logger.warning(f"Unknown job: {name}. Skipping...")
            elif name not in names:
                names.append(name)
    else:
        names = resolve_selection(catalog, choices, request.selection)

    # An empty selection keeps the previous one as next run's default
    if names:
        choices.selected = list(names)

    selections: List[JobSelection] = []
    for name in names:
        job = catalog.find(name)
        branch = resolve_branch(job, choices, request.branches.get(name))

        available: Sequence[str] = ()
        if materializer is not None and base_dir is not None and job.supports_new_variant:
            available = materializer.available_variants(job, base_dir)

        variant = resolve_variant(
            job,
            choices,
            request.variants.get(name),
            create=name in request.new_variants,
            new_name=request.new_variants.get(name, ""),
            materializer=materializer,
            base_dir=base_dir,
            available=available,
            params=request.variant_params.get(name),
        )

        choices.branches[name] = branch
        choices.variants[name] = variant
        selections.append(JobSelection(job=job, branch=branch, variant=variant))
        logger.debug(f"[{name}] branch={branch} variant={variant}")

    return selections
