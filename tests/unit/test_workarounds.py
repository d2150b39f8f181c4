"""Tests for the built-in workaround registry."""

from importlib import metadata
from pathlib import Path

import pytest

from license_gatherer import workarounds
from license_gatherer.clarify import apply_clarification
from license_gatherer.expression import Expression
from license_gatherer.fetch import GitCache
from license_gatherer.graph import package_from_distribution
from license_gatherer.models import Package


def installed(name: str) -> Package:
    try:
        dist = metadata.distribution(name)
    except metadata.PackageNotFoundError:
        pytest.skip(f"{name} is not installed")
    return package_from_distribution(dist)


class TestRegistry:
    """Test workaround lookup."""

    def test_names_are_sorted(self) -> None:
        assert workarounds.names() == [
            "certifi",
            "cryptography",
            "packaging",
            "typing-extensions",
        ]

    @pytest.mark.parametrize("name", ["typing_extensions", "Typing.Extensions"])
    def test_lookup_normalizes_names(self, name: str) -> None:
        assert workarounds.lookup(name) is workarounds.REGISTRY["typing-extensions"]

    def test_unknown(self) -> None:
        assert workarounds.lookup("left-pad") is None


@pytest.mark.parametrize("name", sorted(workarounds.REGISTRY))
def test_clarifications_are_valid(name: str) -> None:
    clarification = workarounds.REGISTRY[name](Package(name, "1.0"))
    assert clarification is not None
    Expression.parse(clarification.license)
    assert clarification.files


def test_certifi_uses_mpl_subsection() -> None:
    clarification = workarounds.lookup("certifi")(Package("certifi", "2024.2.2"))
    assert clarification.license == "MPL-2.0"
    (file,) = clarification.files
    assert file.path == Path("licenses/LICENSE")
    assert file.start == "This Source Code Form is subject to"
    assert file.end == "MPL/2.0/."


class TestLayout:
    """Test where workarounds look for license files."""

    def test_licenses_directory(self, tmp_path) -> None:
        (tmp_path / "licenses").mkdir()
        (tmp_path / "licenses" / "LICENSE").write_text("x", encoding="utf-8")
        package = Package("certifi", "2025.1.31", root=tmp_path)

        (file,) = workarounds.lookup("certifi")(package).files
        assert file.path == Path("licenses/LICENSE")

    def test_legacy_layout(self, tmp_path) -> None:
        (tmp_path / "LICENSE").write_text("x", encoding="utf-8")
        package = Package("certifi", "2023.7.22", root=tmp_path)

        (file,) = workarounds.lookup("certifi")(package).files
        assert file.path == Path("LICENSE")

    def test_defaults_to_licenses_directory(self, tmp_path) -> None:
        package = Package("packaging", "26.0", root=tmp_path)
        paths = [f.path for f in workarounds.lookup("packaging")(package).files]
        assert paths == [
            Path("licenses/LICENSE"),
            Path("licenses/LICENSE.APACHE"),
            Path("licenses/LICENSE.BSD"),
        ]


@pytest.mark.parametrize("name", sorted(workarounds.REGISTRY))
def test_files_exist_in_installed_distribution(name: str) -> None:
    package = installed(name)
    clarification = workarounds.lookup(name)(package)
    for file in clarification.files:
        assert (package.scan_root / file.path).is_file(), file.path


@pytest.mark.asyncio
async def test_packaging_workaround_applies_to_installed_distribution() -> None:
    package = installed("packaging")
    clarification = workarounds.lookup("packaging")(package)

    git_cache = GitCache()
    try:
        evidence = await apply_clarification(git_cache, package, clarification)
    finally:
        await git_cache.close()

    assert sorted(e.license_expr for e in evidence) == [
        "Apache-2.0",
        "Apache-2.0 OR BSD-2-Clause",
        "BSD-2-Clause",
    ]
    assert all(e.confidence == 1.0 for e in evidence)
