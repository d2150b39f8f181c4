"""Base interface for license evidence sources.

Sources are the gathering passes: each one looks at the packages no
earlier pass has claimed and returns license information for the ones it
can account for.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Optional

from license_gatherer.config import Config
from license_gatherer.errors import ExpressionError
from license_gatherer.expression import Expression
from license_gatherer.fetch import GitCache
from license_gatherer.models import LicenseInfo, Package, PackageLicense
from license_gatherer.scan import FilesystemScanner
from license_gatherer.store import Classifier

logger = logging.getLogger(__name__)


@dataclass
class GatherContext:
    """Shared collaborators handed to every source.

    Attributes:
        config: The loaded configuration.
        classifier: Text classifier for locally read files.
        scanner: Filesystem scanner built on the classifier.
        git_cache: Cache used to retrieve clarification files.
        executor: Pool that blocking per-package work runs on.
    """

    config: Config
    classifier: Classifier
    scanner: FilesystemScanner
    git_cache: GitCache
    executor: Optional[Executor] = None


def declared_license(package: Package) -> LicenseInfo:
    """Return what a package declares about its own license.

    A missing field, or one that does not parse as a valid SPDX
    expression, is Unknown; the latter is logged.
    """
    if not package.license:
        return LicenseInfo.unknown()
    try:
        Expression.parse(package.license)
    except ExpressionError as e:
        logger.error(
            "unable to parse license expression '%s' for '%s': %s",
            package.license,
            package,
            e,
        )
        return LicenseInfo.unknown()
    return LicenseInfo.expr(package.license)


class EvidenceSource(ABC):
    """Abstract base class for gathering passes."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the source name for logging/debugging."""
        ...

    @property
    def priority(self) -> int:
        """Return the pass order; lower numbers run first. Default is 100."""
        return 100

    @abstractmethod
    async def gather(
        self, pending: list[Package], context: GatherContext
    ) -> list[PackageLicense]:
        """Claim packages this source can account for.

        Args:
            pending: Packages not claimed by an earlier pass, sorted.
            context: Shared collaborators.

        Returns:
            License information for the newly claimed packages. Packages
            not returned fall through to the next pass.
        """
        ...
