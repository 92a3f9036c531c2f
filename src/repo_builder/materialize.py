# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Variant materialization.

Creating a new named build variant needs config artifacts inside the job's
checkout. The resolver only sees the VariantMaterializer interface; the
Angular implementation below writes an environment file from the dev
template and registers a build configuration in angular.json.
"""

import json
import logging
import re
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from repo_builder.catalog import Job
from repo_builder.errors import MaterializeError

logger = logging.getLogger(__name__)

VARIANT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def repo_dir(base_dir: Path, job: Job) -> Path:
    """Checkout directory of a job under the base directory."""
    return base_dir / "repos" / job.name


class VariantMaterializer:
    """Discovers and creates build variants for a job."""

    def available_variants(self, job: Job, base_dir: Path) -> List[str]:
        return []

    def materialize(
        self,
        job: Job,
        name: str,
        base_dir: Path,
        params: Optional[Dict[str, str]] = None,
    ) -> bool:
        """Write whatever the new variant needs. Returns True on success."""
        raise NotImplementedError


class AngularEnvironmentMaterializer(VariantMaterializer):
    """Variants backed by Angular environment.<name>.ts files."""

    def __init__(
        self,
        project: str = "my-app",
        environments_dir: str = "projects/my-app/src/environments",
        template: str = "environment.dev.ts",
        template_url: str = "https://dev-off-highway.alpha.simadvisory.com",
        url_pattern: str = "https://{name}-off-highway.alpha.simadvisory.com",
        realm: str = "D_SPRICED",
        client_id: str = "D_SPRICED_Client",
    ):
        self.project = project
        self.environments_dir = environments_dir
        self.template = template
        self.template_url = template_url
        self.url_pattern = url_pattern
        self.realm = realm
        self.client_id = client_id

    def _env_dir(self, job: Job, base_dir: Path) -> Path:
        return repo_dir(base_dir, job) / self.environments_dir

    def available_variants(self, job: Job, base_dir: Path) -> List[str]:
        """List environment.<name>.ts variants, sorted, excluding the default."""
        env_dir = self._env_dir(job, base_dir)
        if not env_dir.is_dir():
            return []

        names = set()
        for path in env_dir.glob("environment.*.ts"):
            name = path.name[len("environment."):-len(".ts")]
            if name and name != job.default_variant:
                names.add(name)
        return sorted(names)

    def materialize(
        self,
        job: Job,
        name: str,
        base_dir: Path,
        params: Optional[Dict[str, str]] = None,
    ) -> bool:
        """
        Create environment.<name>.ts and register it in angular.json.

        Params (all optional):
            url: Base URL of the new environment
            realm: Keycloak realm
            client_id: Keycloak client id

        Raises:
            MaterializeError: If the checkout, template or angular.json is
                missing or malformed.
        """
        params = params or {}
        if not VARIANT_NAME_PATTERN.match(name):
            raise MaterializeError(f"invalid variant name: {name!r}")

        checkout = repo_dir(base_dir, job)
        env_dir = self._env_dir(job, base_dir)
        if not env_dir.is_dir():
            raise MaterializeError(f"environments directory not found: {env_dir}")

        new_file = env_dir / f"environment.{name}.ts"
        if new_file.exists():
            logger.warning(f"Environment file {new_file} already exists. Skipping creation.")
        else:
            self._write_environment(env_dir, new_file, name, params)

        self._register_configuration(checkout / "angular.json", name)
        return True

    def _write_environment(
        self, env_dir: Path, new_file: Path, name: str, params: Dict[str, str]
    ) -> None:
        template = env_dir / self.template
        if not template.exists():
            raise MaterializeError(f"environment template not found: {template}")

        url = params.get("url") or self.url_pattern.format(name=name)
        realm = params.get("realm") or self.realm
        client_id = params.get("client_id") or self.client_id

        shutil.copyfile(template, new_file)
        content = new_file.read_text()
        content = content.replace(self.template_url, url)
        # Client id contains the realm, so it goes first
        content = content.replace(self.client_id, "\x00CLIENT\x00")
        content = content.replace(self.realm, realm)
        content = content.replace("\x00CLIENT\x00", client_id)
        new_file.write_text(content)
        logger.info(f"Created environment file {new_file}")

    def _register_configuration(self, angular_json: Path, name: str) -> None:
        if not angular_json.exists():
            raise MaterializeError(f"angular.json not found: {angular_json}")

        try:
            data = json.loads(angular_json.read_text())
            configurations = data["projects"][self.project]["architect"]["build"].setdefault(
                "configurations", {}
            )
        except json.JSONDecodeError as e:
            raise MaterializeError(f"invalid JSON in {angular_json}: {e}") from e
        except (KeyError, TypeError, AttributeError) as e:
            raise MaterializeError(
                f"{angular_json} has no build target for project '{self.project}'"
            ) from e

        env_path = f"{self.environments_dir}/environment.{name}.ts"
        configurations[name] = {
            "fileReplacements": [
                {
                    "replace": f"{self.environments_dir}/environment.ts",
                    "with": env_path,
                }
            ],
            "budgets": [
                {"type": "initial", "maximumWarning": "500kb", "maximumError": "1mb"},
                {"type": "anyComponentStyle", "maximumWarning": "2kb", "maximumError": "4kb"},
            ],
        }
        angular_json.write_text(json.dumps(data, indent=2) + "\n")
        logger.info(f"Registered build configuration '{name}' in {angular_json}")


def materializer_from_config(config: Dict[str, Any]) -> AngularEnvironmentMaterializer:
    """Build the Angular materializer from config['materialize']."""
    settings = config.get("materialize") or {}
    allowed = {
        "project",
        "environments_dir",
        "template",
        "template_url",
        "url_pattern",
        "realm",
        "client_id",
    }
    unknown = set(settings) - allowed
    if unknown:
        logger.warning(f"Ignoring unknown materialize settings: {sorted(unknown)}")
    return AngularEnvironmentMaterializer(**{k: str(v) for k, v in settings.items() if k in allowed})
