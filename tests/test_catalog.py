"""Tests for the job catalog."""

import logging

import pytest
import yaml

from repo_builder.catalog import (
    Job,
    JobCatalog,
    default_catalog,
    load_catalog,
    render_command,
    validate_name,
)
from repo_builder.errors import CatalogError, JobNotFoundError


def _job(name, **kwargs):
    return Job(name=name, command=("build.sh", "{branch}"), **kwargs)


class TestDefaultCatalog:
    """Tests for the compiled-in registry."""

    def test_canonical_order(self):
        """Jobs should come back in display order."""
        assert default_catalog().names() == [
            "dvm_visualization_tool",
            "off_highway_backend",
            "spriced-platform-data-management-layer",
            "spriced-platform-ib-ob",
        ]

    def test_default_branches(self):
        """ib-ob builds from develop, everything else from main."""
        catalog = default_catalog()
        assert catalog.find("spriced-platform-ib-ob").default_branch == "develop"
        assert catalog.find("off_highway_backend").default_branch == "main"

    def test_only_frontend_creates_variants(self):
        """Only the Angular job can create new variants."""
        creators = [j.name for j in default_catalog() if j.supports_new_variant]
        assert creators == ["dvm_visualization_tool"]

    def test_script_command(self):
        """Default jobs invoke <script> <branch> <base_dir> <variant>."""
        job = default_catalog().find("off_highway_backend")
        assert job.command == (
            "{scripts_dir}/build_off_highway_backend.sh",
            "{branch}",
            "{base_dir}",
            "{variant}",
        )


class TestJobCatalog:
    """Tests for JobCatalog lookups and validation."""

    def test_find(self):
        """find should return the registered job."""
        catalog = JobCatalog([_job("api"), _job("web")])
        assert catalog.find("web").name == "web"
        assert "api" in catalog
        assert len(catalog) == 2

    def test_find_unknown(self):
        """find should raise JobNotFoundError for unknown names."""
        catalog = JobCatalog([_job("api")])
        with pytest.raises(JobNotFoundError) as exc_info:
            catalog.find("nope")
        assert isinstance(exc_info.value, KeyError)
        assert "nope" in str(exc_info.value)

    def test_duplicate_names(self):
        """Duplicate names should be rejected."""
        with pytest.raises(CatalogError, match="duplicate"):
            JobCatalog([_job("api"), _job("api")])

    def test_empty_command(self):
        """Jobs need a command."""
        with pytest.raises(CatalogError, match="empty command"):
            JobCatalog([Job(name="api", command=())])

    def test_jobs_are_immutable(self):
        """Registered jobs cannot be changed."""
        job = _job("api")
        with pytest.raises(AttributeError):
            job.name = "other"

    @pytest.mark.parametrize("name", ["", "a/b", "..", "-dash", "sp ace"])
    def test_invalid_names(self, name):
        """Names unusable in file names should be rejected."""
        with pytest.raises(CatalogError):
            validate_name(name)


class TestLoadCatalog:
    """Tests for YAML catalog files."""

    def test_load_mapping(self, tmp_path):
        """A mapping with a jobs list should load in order."""
        path = tmp_path / "catalog.yml"
        path.write_text(yaml.safe_dump({
            "jobs": [
                {"name": "api", "command": ["./api.sh", "{branch}"], "default_branch": "develop"},
                {"name": "web", "command": "./web.sh", "supports_new_variant": True},
            ]
        }))

        catalog = load_catalog(path)

        assert catalog.names() == ["api", "web"]
        assert catalog.find("api").default_branch == "develop"
        assert catalog.find("web").command == ("./web.sh",)
        assert catalog.find("web").supports_new_variant is True

    def test_load_list(self, tmp_path):
        """A bare list of jobs should also load."""
        path = tmp_path / "catalog.yml"
        path.write_text(yaml.safe_dump([{"name": "api", "command": ["x"]}]))
        assert load_catalog(path).names() == ["api"]

    def test_missing_file(self, tmp_path):
        """Missing catalog files should raise CatalogError."""
        with pytest.raises(CatalogError, match="not found"):
            load_catalog(tmp_path / "missing.yml")

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML should raise CatalogError."""
        path = tmp_path / "catalog.yml"
        path.write_text("jobs: [unclosed")
        with pytest.raises(CatalogError, match="invalid YAML"):
            load_catalog(path)

    def test_bad_command(self, tmp_path):
        """Commands must be strings."""
        path = tmp_path / "catalog.yml"
        path.write_text(yaml.safe_dump([{"name": "api", "command": [1, 2]}]))
        with pytest.raises(CatalogError, match="command"):
            load_catalog(path)

    def test_empty_catalog(self, tmp_path):
        """An empty jobs list is an error."""
        path = tmp_path / "catalog.yml"
        path.write_text("jobs: []\n")
        with pytest.raises(CatalogError):
            load_catalog(path)


class TestRenderCommand:
    """Tests for command template rendering."""

    def test_substitutes_placeholders(self):
        """Each argv element should be rendered."""
        job = Job(name="api", command=("{scripts_dir}/b.sh", "{branch}", "{variant}"))
        argv = render_command(job, {"scripts_dir": "/s", "branch": "main", "variant": "dev"})
        assert argv == ["/s/b.sh", "main", "dev"]

    def test_escaped_braces(self):
        """Double braces should become literal braces."""
        job = Job(name="api", command=("echo", "{{branch}}={branch}"))
        assert render_command(job, {"branch": "x"}) == ["echo", "{branch}=x"]

    def test_values_are_not_rescanned(self):
        """A value that looks like a placeholder is passed through literally."""
        job = default_catalog().find("off_highway_backend")
        argv = render_command(job, {
            "scripts_dir": "/s",
            "branch": "feat/{variant}",
            "base_dir": "/b",
            "variant": "qa",
        })
        assert argv[1:] == ["feat/{variant}", "/b", "qa"]

    def test_unknown_placeholder_warns(self, caplog):
        """Unknown placeholders stay in place and are logged."""
        job = Job(name="api", command=("echo", "{missing}"))
        with caplog.at_level(logging.WARNING):
            argv = render_command(job, {"branch": "x"})
        assert argv == ["echo", "{missing}"]
        assert "Unsubstituted variables" in caplog.text
