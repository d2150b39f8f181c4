"""Core data models for license_gatherer.

This module defines the fundamental data structures shared by the
gathering pipeline and the resolution engine: packages, the per-package
license information, the evidence found for it, and the aggregate that
ties them together.
"""

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version


class PackageSource(str, enum.Enum):
    """Where a package's sources were obtained from."""

    REGISTRY = "registry"
    GIT = "git"
    LOCAL = "local"
    UNKNOWN = "unknown"


def _version_key(version: str) -> tuple:
    # Invalid versions sort after every valid one, by their raw text.
    try:
        return (0, Version(version), "")
    except InvalidVersion:
        return (1, Version("0"), version)


@dataclass(frozen=True)
class Package:
    """A single node of the dependency graph.

    Identity is (name, version); every other attribute is informational
    and excluded from equality and hashing. Packages order by canonical
    name and then by parsed version, which makes binary search over a
    sorted list of packages deterministic.

    Attributes:
        name: Distribution name (e.g., "requests").
        version: Exact version string (e.g., "2.31.0").
        license: Raw declared license field, possibly malformed, or None.
        manifest_path: Path of the file the declared license was read from.
        root: Directory whose files are this package's license evidence.
        source: Provenance of the package's sources.
        repository: URL of the upstream source repository, if known.
        vcs_commit: Commit recorded when the package was built from VCS.
        publish: None when the package may be published anywhere, otherwise
            the registries it may be published to (empty means nowhere).
    """

    name: str
    version: str
    license: Optional[str] = field(default=None, compare=False)
    manifest_path: Optional[Path] = field(default=None, compare=False)
    root: Optional[Path] = field(default=None, compare=False)
    source: PackageSource = field(default=PackageSource.UNKNOWN, compare=False)
    repository: Optional[str] = field(default=None, compare=False)
    vcs_commit: Optional[str] = field(default=None, compare=False)
    publish: Optional[tuple[str, ...]] = field(default=None, compare=False)

    @property
    def canonical_name(self) -> str:
        """Return the PEP 503 normalized name."""
        return canonicalize_name(self.name)

    @property
    def sort_key(self) -> tuple:
        """Return the key packages are totally ordered by."""
        return (self.canonical_name, _version_key(self.version))

    @property
    def scan_root(self) -> Optional[Path]:
        """Return the directory holding the package's files."""
        if self.root is not None:
            return self.root
        if self.manifest_path is not None:
            return self.manifest_path.parent
        return None

    def __lt__(self, other: "Package") -> bool:
        return self.sort_key < other.sort_key

    def __str__(self) -> str:
        return f"{self.name} {self.version}"


class LicenseInfoKind(str, enum.Enum):
    EXPR = "expr"
    UNKNOWN = "unknown"
    IGNORE = "ignore"


@dataclass(frozen=True)
class LicenseInfo:
    """The license information a package declares about itself.

    Attributes:
        kind: Whether the package declared a parseable expression, declared
            nothing usable, or is excluded from licensing obligations.
        expression: The declared expression text, exactly as written in
            the manifest, when kind is EXPR.
    """

    kind: LicenseInfoKind
    expression: Optional[str] = None

    @classmethod
    def expr(cls, expression: str) -> "LicenseInfo":
        return cls(LicenseInfoKind.EXPR, expression)

    @classmethod
    def unknown(cls) -> "LicenseInfo":
        return cls(LicenseInfoKind.UNKNOWN)

    @classmethod
    def ignore(cls) -> "LicenseInfo":
        return cls(LicenseInfoKind.IGNORE)

    def __str__(self) -> str:
        if self.kind is LicenseInfoKind.EXPR:
            return self.expression or ""
        if self.kind is LicenseInfoKind.IGNORE:
            return "Ignore"
        return "Unknown"


class LicenseFileKind(str, enum.Enum):
    """How strongly a piece of evidence proves its license."""

    TEXT = "text"
    ADDENDUM_TEXT = "addendum"
    HEADER = "header"


@dataclass(frozen=True)
class LicenseEvidence:
    """One discovered proof of license for one package.

    Attributes:
        license_expr: The detected SPDX expression.
        path: Path of the file the evidence came from, relative to the
            package root where possible.
        confidence: Similarity score in [0, 1].
        kind: Whether this is full license text, an addendum, or a header.
        text: The license text for TEXT and ADDENDUM_TEXT evidence.
        addendum_root: Sub-root an ADDENDUM_TEXT applies to.
    """

    license_expr: str
    path: Path
    confidence: float
    kind: LicenseFileKind
    text: Optional[str] = None
    addendum_root: Optional[Path] = None

    @property
    def sort_key(self) -> tuple:
        """Order by expression, best confidence first, then by path."""
        return (self.license_expr, -self.confidence, str(self.path))


def dedup_evidence(evidence: list[LicenseEvidence]) -> list[LicenseEvidence]:
    """Keep only the highest-confidence entry per distinct expression.

    Args:
        evidence: Evidence gathered for a single package, in any order.

    Returns:
        A new list sorted by expression, with one entry per expression.
    """
    kept: list[LicenseEvidence] = []
    for item in sorted(evidence, key=lambda e: e.sort_key):
        if kept and kept[-1].license_expr == item.license_expr:
            continue
        kept.append(item)
    return kept


@dataclass
class PackageLicense:
    """Everything known about the license of a single package.

    Created by exactly one gathering pass and never mutated afterwards.

    Attributes:
        package: The package this information belongs to.
        license_info: What the package declares about itself.
        license_files: Deduplicated evidence, sorted by expression.
    """

    package: Package
    license_info: LicenseInfo
    license_files: list[LicenseEvidence] = field(default_factory=list)
