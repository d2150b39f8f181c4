"""Assembly of the license list that reports are rendered from."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from license_gatherer.diagnostics import Severity
from license_gatherer.errors import ExpressionError
from license_gatherer.expression import Expression, LicenseReq
from license_gatherer.models import (
    LicenseFileKind,
    LicenseInfoKind,
    Package,
    PackageLicense,
)
from license_gatherer.resolution import Resolved
from license_gatherer.store import LicenseStore

logger = logging.getLogger(__name__)


@dataclass
class UsedBy:
    package: Package
    path: Optional[Path] = None


@dataclass
class License:
    """One distinct license text and the packages it applies to.

    Attributes:
        name: Full name of the license.
        id: SPDX identifier.
        text: The license text.
        source_path: Where the text was found; None for canonical text.
        used_by: Packages the text applies to, sorted.
        first_of_kind: True for the first entry of each id in the list.
    """

    name: str
    id: str
    text: str
    source_path: Optional[Path] = None
    used_by: list[UsedBy] = field(default_factory=list)
    first_of_kind: bool = False


@dataclass
class LicenseSet:
    """Usage summary of one license id across all of its texts."""

    count: int
    name: str
    id: str
    indices: list[int]
    text: str


@dataclass
class PackageEntry:
    package: Package
    license: str


@dataclass
class LicenseList:
    overview: list[LicenseSet]
    licenses: list[License]
    packages: list[PackageEntry]

    def to_dict(self) -> dict[str, Any]:
        """Convert to plain data for JSON output."""

        def package_dict(package: Package) -> dict[str, Any]:
            return {
                "name": package.name,
                "version": package.version,
                "source": package.source.value,
                "repository": package.repository,
            }

        return {
            "overview": [
                {
                    "count": s.count,
                    "name": s.name,
                    "id": s.id,
                    "indices": s.indices,
                    "text": s.text,
                }
                for s in self.overview
            ],
            "licenses": [
                {
                    "name": lic.name,
                    "id": lic.id,
                    "first_of_kind": lic.first_of_kind,
                    "text": lic.text,
                    "source_path": str(lic.source_path) if lic.source_path else None,
                    "used_by": [
                        {
                            "package": package_dict(u.package),
                            "path": str(u.path) if u.path else None,
                        }
                        for u in lic.used_by
                    ],
                }
                for lic in self.licenses
            ],
            "packages": [
                {"package": package_dict(e.package), "license": e.license}
                for e in self.packages
            ],
        }


def error_count(resolved: list[Resolved]) -> int:
    """Count the diagnostics of error severity or worse."""
    return sum(
        1
        for result in resolved
        for diagnostic in result.diagnostics
        if diagnostic.severity >= Severity.ERROR
    )


def _license_texts(
    package_license: PackageLicense, req: LicenseReq, store: LicenseStore
) -> list[License]:
    license_id = req.license
    name = store.name(license_id) or license_id
    texts = []
    for lf in package_license.license_files:
        if lf.kind is LicenseFileKind.HEADER or lf.text is None:
            continue
        try:
            applies = Expression.parse(lf.license_expr).evaluate(
                lambda r: r.license == license_id
            )
        except ExpressionError:
            applies = False
        if applies:
            texts.append(License(name, license_id, lf.text, lf.path))

    if not texts:
        canonical = store.text(license_id)
        if canonical is None:
            logger.warning(
                "no license text found for '%s' used by '%s'",
                license_id,
                package_license.package,
            )
            return []
        logger.debug(
            "unable to find text for license '%s' for '%s', falling back to canonical text",
            license_id,
            package_license.package,
        )
        texts.append(License(name, license_id, canonical))
    return texts


def generate(
    package_licenses: list[PackageLicense],
    resolved: list[Resolved],
    store: LicenseStore,
) -> LicenseList:
    """Build the license list from gathered and resolved licenses.

    Args:
        package_licenses: Gathered license information.
        resolved: Resolution results, parallel to package_licenses.
        store: Corpus providing license names and canonical texts.

    Returns:
        Licenses grouped by name and text, sorted by id, with an overview
        sorted by use count, most used first.
    """
    grouped: dict[str, dict[str, License]] = {}
    for package_license, result in zip(package_licenses, resolved):
        for req in result.licenses:
            for lic in _license_texts(package_license, req, store):
                by_text = grouped.setdefault(lic.name, {})
                entry = by_text.setdefault(lic.text, lic)
                entry.used_by.append(UsedBy(package_license.package, lic.source_path))

    licenses = [
        lic
        for name in sorted(grouped)
        for _, lic in sorted(grouped[name].items())
    ]
    for lic in licenses:
        lic.used_by.sort(key=lambda u: u.package.sort_key)
    licenses.sort(key=lambda lic: lic.id)

    overview: dict[str, LicenseSet] = {}
    for index, lic in enumerate(licenses):
        summary = overview.get(lic.id)
        if summary is None:
            lic.first_of_kind = True
            summary = overview[lic.id] = LicenseSet(0, lic.name, lic.id, [], lic.text)
        summary.indices.append(index)
        summary.count += len(lic.used_by)

    sets = sorted(overview.values(), key=lambda s: s.count, reverse=True)

    packages = [
        PackageEntry(pl.package, str(pl.license_info))
        for pl in package_licenses
        if pl.license_info.kind is not LicenseInfoKind.IGNORE
    ]
    return LicenseList(sets, licenses, packages)
