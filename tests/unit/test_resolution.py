"""Tests for license resolution."""

from pathlib import Path

import pytest

from license_gatherer.config import Config
from license_gatherer.diagnostics import Files, LabelStyle, Severity
from license_gatherer.expression import LicenseReq, Licensee
from license_gatherer.models import (
    LicenseEvidence,
    LicenseFileKind,
    LicenseInfo,
    Package,
    PackageLicense,
)
from license_gatherer.resolution import (
    Accepted,
    resolve,
    resolve_package,
    synthesize_expression,
    synthesize_manifest,
)


def licensees(*names: str) -> list[Licensee]:
    return [Licensee.parse(name) for name in names]


def evidence(expr: str) -> LicenseEvidence:
    return LicenseEvidence(expr, Path(f"LICENSE-{expr}"), 0.95, LicenseFileKind.TEXT, expr)


@pytest.fixture
def package() -> Package:
    return Package("foo", "1.0")


class TestSynthesis:
    """Test expression and manifest synthesis."""

    def test_expression_from_sorted_unique_evidence(self, package: Package) -> None:
        pl = PackageLicense(
            package,
            LicenseInfo.unknown(),
            [evidence("MIT"), evidence("Apache-2.0"), evidence("MIT")],
        )
        assert synthesize_expression(pl) == "(Apache-2.0) AND (MIT)"

    def test_no_evidence(self, package: Package) -> None:
        assert synthesize_expression(PackageLicense(package, LicenseInfo.unknown())) is None

    def test_new_manifest(self, package: Package) -> None:
        document, offset = synthesize_manifest(package, None, "MIT")
        assert "Name: foo\nVersion: 1.0\n" in document
        assert document[offset : offset + 3] == "MIT"

    def test_existing_manifest_replaces_header(self, package: Package) -> None:
        existing = (
            "Metadata-Version: 2.4\nName: foo\nLicense-Expression: BSD-3-Clause\n"
            "\nDescription body\n"
        )
        document, offset = synthesize_manifest(package, existing, "MIT")
        assert document == (
            "Metadata-Version: 2.4\nName: foo\nLicense-Expression: MIT\n"
            "\nDescription body\n"
        )
        assert document[offset : offset + 3] == "MIT"


class TestResolvePackage:
    """Test resolution of single packages."""

    def test_ignored_package(self, package: Package) -> None:
        pl = PackageLicense(package, LicenseInfo.ignore(), [evidence("GPL-3.0-only")])
        resolved = resolve_package(pl, Accepted(licensees("MIT")), Files())
        assert resolved.licenses == []
        assert resolved.diagnostics == []

    def test_declared_expression_is_minimized(self, package: Package) -> None:
        pl = PackageLicense(package, LicenseInfo.expr("MIT OR Apache-2.0"))
        resolved = resolve_package(
            pl, Accepted(licensees("Apache-2.0", "MIT")), Files()
        )
        assert resolved.licenses == [LicenseReq("Apache-2.0")]
        assert resolved.diagnostics == []

    def test_synthesized_expression_reports_unaccepted_terms(
        self, package: Package
    ) -> None:
        pl = PackageLicense(
            package, LicenseInfo.unknown(), [evidence("MIT"), evidence("Apache-2.0")]
        )
        files = Files()
        resolved = resolve_package(pl, Accepted(licensees("MIT")), files)

        assert resolved.licenses == []
        (diagnostic,) = resolved.diagnostics
        assert diagnostic.severity is Severity.ERROR
        assert diagnostic.message == "failed to satisfy license requirements"
        (label,) = diagnostic.labels
        assert label.style is LabelStyle.SECONDARY
        assert files.source(label.file_id)[label.start : label.end] == "Apache-2.0"
        assert files.name(label.file_id) == "foo 1.0/METADATA"

    def test_no_evidence_warns_once(self, package: Package, caplog) -> None:
        pl = PackageLicense(package, LicenseInfo.unknown())
        resolved = resolve_package(pl, Accepted(licensees("MIT")), Files())

        assert resolved.licenses == []
        assert [d.severity for d in resolved.diagnostics] == [Severity.WARNING]
        assert "unable to synthesize license expression for 'foo 1.0'" in caplog.text

    def test_label_points_into_real_manifest(self, tmp_path) -> None:
        manifest = tmp_path / "METADATA"
        manifest.write_text(
            "Metadata-Version: 2.1\nName: foo\nVersion: 1.0\n"
            "License: GPL-3.0-only\n\nSome description\n",
            encoding="utf-8",
        )
        package = Package("foo", "1.0", license="GPL-3.0-only", manifest_path=manifest)
        pl = PackageLicense(package, LicenseInfo.expr("GPL-3.0-only"))

        files = Files()
        resolved = resolve_package(pl, Accepted(licensees("MIT")), files)

        (label,) = resolved.diagnostics[0].labels
        assert files.name(label.file_id) == str(manifest)
        assert files.location(label.file_id, label.start) == (4, 10)
        assert files.source(label.file_id)[label.start : label.end] == "GPL-3.0-only"

    def test_unparseable_expression(self, package: Package) -> None:
        pl = PackageLicense(package, LicenseInfo.expr("MIT AND Totally-Made-Up"))
        files = Files()
        resolved = resolve_package(pl, Accepted(licensees("MIT")), files)

        (diagnostic,) = resolved.diagnostics
        assert diagnostic.message == "failed to parse license expression"
        (label,) = diagnostic.labels
        assert label.style is LabelStyle.PRIMARY
        assert files.name(label.file_id) == "foo 1.0.license"
        assert (label.start, label.end) == (8, 23)


class TestResolve:
    """Test resolution of a whole graph."""

    def test_package_accepted_extends_global(self) -> None:
        config = Config.model_validate(
            {"accepted": ["MIT"], "packages": {"foo": {"accepted": ["ISC"]}}}
        )
        package_licenses = [
            PackageLicense(Package("bar", "1.0"), LicenseInfo.expr("ISC")),
            PackageLicense(Package("foo", "1.0"), LicenseInfo.expr("ISC")),
        ]

        _, resolved = resolve(package_licenses, config.accepted, config)

        assert resolved[0].diagnostics[0].severity is Severity.ERROR
        assert resolved[1].licenses == [LicenseReq("ISC")]
        assert resolved[1].diagnostics == []

    def test_one_result_per_input(self) -> None:
        package_licenses = [
            PackageLicense(Package(name, "1.0"), LicenseInfo.expr("MIT"))
            for name in ("a", "b", "c")
        ]
        _, resolved = resolve(package_licenses, licensees("MIT"))
        assert [r.licenses for r in resolved] == [[LicenseReq("MIT")]] * 3


def test_accepted_str() -> None:
    accepted = Accepted(licensees("MIT"), licensees("ISC"))
    assert str(accepted) == "global: [MIT]\npackage: [ISC]"
    assert list(accepted) == licensees("MIT", "ISC")
