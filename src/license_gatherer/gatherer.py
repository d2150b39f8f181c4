"""Gathering of license evidence across all sources.

The gatherer runs every evidence source as a pass over the packages that
no earlier pass has claimed, folding the claims into one accumulator kept
sorted by package identity.
"""

import bisect
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from license_gatherer.config import Config
from license_gatherer.fetch import GitCache
from license_gatherer.models import Package, PackageLicense
from license_gatherer.scan import FilesystemScanner
from license_gatherer.sources import (
    ClarifiedSource,
    ClearlyDefinedSource,
    EvidenceSource,
    FilesystemSource,
    GatherContext,
    PrivateSource,
    WorkaroundSource,
)
from license_gatherer.store import Classifier

logger = logging.getLogger(__name__)


class Gatherer:
    """Collects license information for every package of a graph.

    Attributes:
        classifier: Text classifier shared by the sources.
        git_cache: Cache for clarification files.
        max_workers: Size of the thread pool for blocking work.
    """

    def __init__(
        self,
        classifier: Classifier,
        git_cache: Optional[GitCache] = None,
        clearly_defined: Optional[ClearlyDefinedSource] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.classifier = classifier
        self.git_cache = git_cache or GitCache()
        self.clearly_defined = clearly_defined
        self.max_workers = max_workers

    def sources(self, config: Config) -> list[EvidenceSource]:
        """Return the passes to run for a configuration, in priority order."""
        sources: list[EvidenceSource] = [
            PrivateSource(),
            WorkaroundSource(),
            ClarifiedSource(),
            FilesystemSource(),
        ]
        if not config.disallow_clearly_defined:
            if self.clearly_defined is None:
                self.clearly_defined = ClearlyDefinedSource(
                    timeout=config.clearly_defined_timeout_secs
                )
            sources.append(self.clearly_defined)
        return sorted(sources, key=lambda s: s.priority)

    async def gather(
        self, packages: list[Package], config: Config
    ) -> list[PackageLicense]:
        """Gather license information for packages.

        Args:
            packages: The packages of the graph.
            config: The loaded configuration.

        Returns:
            Exactly one PackageLicense per distinct package, sorted by
            package identity.
        """
        packages = _unique(packages)
        scanner = FilesystemScanner(
            self.classifier,
            threshold=config.confidence_threshold,
            max_depth=config.max_depth,
        )

        accumulator: list[PackageLicense] = []
        keys: list[tuple] = []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            context = GatherContext(
                config=config,
                classifier=self.classifier,
                scanner=scanner,
                git_cache=self.git_cache,
                executor=executor,
            )
            for source in self.sources(config):
                pending = [p for p in packages if not _claimed(keys, p)]
                if not pending:
                    break

                logger.debug(
                    "running %s pass over %d package(s)", source.name, len(pending)
                )
                claimed = await source.gather(pending, context)

                count = 0
                for package_license in claimed:
                    key = package_license.package.sort_key
                    index = bisect.bisect_left(keys, key)
                    if index < len(keys) and keys[index] == key:
                        continue
                    keys.insert(index, key)
                    accumulator.insert(index, package_license)
                    count += 1
                logger.info("%s pass claimed %d package(s)", source.name, count)

        accumulator.sort(key=lambda pl: pl.package.sort_key)
        return accumulator

    async def close(self) -> None:
        await self.git_cache.close()
        if self.clearly_defined is not None:
            await self.clearly_defined.close()

    async def __aenter__(self) -> "Gatherer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _unique(packages: list[Package]) -> list[Package]:
    """Sort packages, keeping one per canonical name and parsed version."""
    unique: dict[tuple, Package] = {}
    for package in sorted(packages, key=lambda p: (p.sort_key, p.name, p.version)):
        kept = unique.setdefault(package.sort_key, package)
        if kept != package:
            logger.warning(
                "'%s' is the same package as '%s', gathering it once", package, kept
            )
    return list(unique.values())


def _claimed(keys: list[tuple], package: Package) -> bool:
    index = bisect.bisect_left(keys, package.sort_key)
    return index < len(keys) and keys[index] == package.sort_key
