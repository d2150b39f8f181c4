"""Tests for dependency graph construction."""

import email
import json
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Optional

import pytest

from license_gatherer import graph
from license_gatherer.errors import GraphError
from license_gatherer.models import PackageSource


def install(
    site: Path,
    name: str,
    version: str,
    headers: Optional[list[str]] = None,
    direct_url: Optional[dict] = None,
) -> Path:
    """Create a minimal .dist-info directory in site."""
    dist_info = site / f"{name}-{version}.dist-info"
    dist_info.mkdir(parents=True)
    lines = ["Metadata-Version: 2.4", f"Name: {name}", f"Version: {version}"]
    lines.extend(headers or [])
    (dist_info / "METADATA").write_text("\n".join(lines) + "\n\n", encoding="utf-8")
    if direct_url is not None:
        (dist_info / "direct_url.json").write_text(json.dumps(direct_url), encoding="utf-8")
    return dist_info


def metadata(*headers: str):
    return email.message_from_string("\n".join(headers) + "\n\n")


@pytest.fixture
def site(tmp_path) -> Path:
    """Create a site directory with a small dependency tree."""
    site = tmp_path / "site"
    install(
        site,
        "foo",
        "1.0",
        [
            "License-Expression: MIT",
            "Requires-Dist: bar>=1",
            'Requires-Dist: baz; extra == "extra1"',
            'Requires-Dist: winonly; sys_platform == "win32"',
        ],
    )
    install(
        site,
        "bar",
        "2.0",
        ["License: Apache 2.0", "Project-URL: Source, https://github.com/org/bar"],
        direct_url={
            "url": "git+https://github.com/org/bar.git",
            "vcs_info": {"vcs": "git", "commit_id": "c0ffee"},
        },
    )
    install(
        site,
        "baz",
        "3.0",
        ["Classifier: License :: OSI Approved :: MIT License"],
    )
    install(site, "winonly", "1.0")
    return site


def manifest(tmp_path: Path, dependencies: list[str], optional: Optional[dict] = None) -> Path:
    lines = ["[project]", 'name = "app"', f"dependencies = {json.dumps(dependencies)}"]
    if optional:
        lines.append("[project.optional-dependencies]")
        for extra, reqs in optional.items():
            lines.append(f"{extra} = {json.dumps(reqs)}")
    path = tmp_path / "pyproject.toml"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


LINUX = [{"sys_platform": "linux"}]
WINDOWS = [{"sys_platform": "win32"}]


class TestDeclaredLicense:
    """Test extraction of the declared license."""

    def test_license_expression_is_verbatim(self) -> None:
        meta = metadata("License-Expression: MIT OR garbage", "License: BSD")
        assert graph.declared_license(meta) == "MIT OR garbage"

    def test_license_field_is_mapped(self) -> None:
        assert graph.declared_license(metadata("License: MIT License")) == "MIT"

    def test_unknown_license_field_falls_back_to_classifier(self) -> None:
        meta = metadata(
            "License: UNKNOWN",
            "Classifier: License :: OSI Approved :: ISC License (ISCL)",
        )
        assert graph.declared_license(meta) == "ISC"

    def test_ambiguous_classifiers(self) -> None:
        meta = metadata(
            "Classifier: License :: OSI Approved :: MIT License",
            "Classifier: License :: OSI Approved :: Apache Software License",
        )
        assert graph.declared_license(meta) is None

    def test_nothing_declared(self) -> None:
        assert graph.declared_license(metadata("Name: x")) is None


def test_repository_url_prefers_git_hosts() -> None:
    meta = metadata(
        "Project-URL: Documentation, https://docs.example.com",
        "Project-URL: Homepage, https://example.com",
        "Project-URL: Repository, https://gitlab.com/org/x",
    )
    assert graph.repository_url(meta) == "https://gitlab.com/org/x"


class TestBuild:
    """Test graph traversal over installed distributions."""

    def test_transitive_closure(self, tmp_path, site) -> None:
        packages = graph.build(manifest(tmp_path, ["foo"]), targets=LINUX, search_path=[str(site)])
        assert [str(p) for p in packages] == ["bar 2.0", "foo 1.0"]

        bar, foo = packages
        assert foo.license == "MIT"
        assert foo.source is PackageSource.REGISTRY
        assert foo.manifest_path == site / "foo-1.0.dist-info" / "METADATA"
        assert foo.scan_root == site / "foo-1.0.dist-info"

        assert bar.license == "Apache-2.0"
        assert bar.source is PackageSource.GIT
        assert bar.vcs_commit == "c0ffee"
        assert bar.repository == "https://github.com/org/bar.git"

    def test_dependency_extras(self, tmp_path, site) -> None:
        packages = graph.build(
            manifest(tmp_path, ["foo[extra1]"]), targets=LINUX, search_path=[str(site)]
        )
        assert [p.name for p in packages] == ["bar", "baz", "foo"]
        assert packages[1].license == "MIT"

    def test_project_extras(self, tmp_path, site) -> None:
        path = manifest(tmp_path, [], {"cli": ["baz"]})
        assert graph.build(path, search_path=[str(site)]) == []
        packages = graph.build(path, extras=["cli"], search_path=[str(site)])
        assert [p.name for p in packages] == ["baz"]

    def test_targets_select_markers(self, tmp_path, site) -> None:
        packages = graph.build(
            manifest(tmp_path, ["foo"]), targets=LINUX + WINDOWS, search_path=[str(site)]
        )
        assert [p.name for p in packages] == ["bar", "foo", "winonly"]

    def test_missing_distribution_is_skipped(self, tmp_path, site, caplog) -> None:
        packages = graph.build(
            manifest(tmp_path, ["foo", "nothere"]), targets=LINUX, search_path=[str(site)]
        )
        assert [p.name for p in packages] == ["bar", "foo"]
        assert "'nothere' required by app is not installed" in caplog.text

    def test_local_and_private_distributions(self, tmp_path) -> None:
        site = tmp_path / "site"
        install(
            site,
            "mine",
            "0.1",
            ["Classifier: Private :: Do Not Upload"],
            direct_url={"url": "file:///work/mine", "dir_info": {"editable": True}},
        )
        (package,) = graph.build(manifest(tmp_path, ["mine"]), search_path=[str(site)])
        assert package.source is PackageSource.LOCAL
        assert package.root == Path("/work/mine")
        assert package.publish == ()

    def test_accepts_project_directory(self, tmp_path, site) -> None:
        manifest(tmp_path, ["foo"])
        packages = graph.build(tmp_path, targets=LINUX, search_path=[str(site)])
        assert len(packages) == 2

    def test_invalid_manifest(self, tmp_path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text("[tool.other]\n", encoding="utf-8")
        with pytest.raises(GraphError, match="no \\[project\\] name"):
            graph.build(path, search_path=[])

    def test_missing_manifest(self, tmp_path) -> None:
        with pytest.raises(GraphError, match="unable to read"):
            graph.build(tmp_path / "pyproject.toml", search_path=[])


class TestDistInfoDir:
    """Test locating the .dist-info directory of a distribution."""

    @staticmethod
    def only(site: Path):
        (dist,) = importlib_metadata.distributions(path=[str(site)])
        return dist

    def test_from_record(self, tmp_path) -> None:
        site = tmp_path / "site"
        dist_info = install(site, "Foo.Bar", "1.0")
        (dist_info / "RECORD").write_text(
            f"{dist_info.name}/METADATA,,\n{dist_info.name}/RECORD,,\n", encoding="utf-8"
        )
        package = graph.package_from_distribution(self.only(site))
        assert package.root == dist_info
        assert package.manifest_path == dist_info / "METADATA"

    def test_without_record(self, tmp_path) -> None:
        site = tmp_path / "site"
        dist_info = site / "foo_bar-2.0.dist-info"
        dist_info.mkdir(parents=True)
        (dist_info / "METADATA").write_text(
            "Metadata-Version: 2.4\nName: Foo.Bar\nVersion: 2.0\n\n", encoding="utf-8"
        )
        package = graph.package_from_distribution(self.only(site))
        assert package.root == dist_info
