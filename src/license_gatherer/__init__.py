"""License Gatherer - license evidence gathering and resolution.

This package gathers license evidence for every package of a Python
dependency graph, resolves it against the licenses a project accepts,
and generates attribution reports.
"""

__version__ = "0.1.0"
__author__ = "forkrul"

from license_gatherer.models import (
    LicenseEvidence,
    LicenseFileKind,
    LicenseInfo,
    Package,
    PackageLicense,
    PackageSource,
)

__all__ = [
    "__version__",
    "LicenseEvidence",
    "LicenseFileKind",
    "LicenseInfo",
    "Package",
    "PackageLicense",
    "PackageSource",
]
