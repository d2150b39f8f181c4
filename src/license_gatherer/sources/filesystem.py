import asyncio
import logging

from license_gatherer.models import Package, PackageLicense
from license_gatherer.sources.base import EvidenceSource, GatherContext, declared_license

logger = logging.getLogger(__name__)


class FilesystemSource(EvidenceSource):
    """Scans package files for evidence; claims every remaining package."""

    @property
    def name(self) -> str:
        return "filesystem"

    async def gather(
        self, pending: list[Package], context: GatherContext
    ) -> list[PackageLicense]:
        loop = asyncio.get_running_loop()
        scannable = [p for p in pending if p.scan_root is not None]
        for package in pending:
            if package.scan_root is None:
                logger.warning("'%s' has no files to scan for license evidence", package)

        results = await asyncio.gather(
            *(
                loop.run_in_executor(
                    context.executor,
                    context.scanner.scan,
                    package.scan_root,
                    context.config.package_config(package),
                    str(package),
                )
                for package in scannable
            ),
            return_exceptions=True,
        )
        scanned = dict(zip(scannable, results))

        claimed = []
        for package in pending:
            evidence = scanned.get(package, [])
            if isinstance(evidence, Exception):
                logger.error("failed to scan '%s': %s", package, evidence)
                evidence = []
            claimed.append(PackageLicense(package, declared_license(package), evidence))
        return claimed
