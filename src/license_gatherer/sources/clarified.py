"""Gathering passes driven by clarifications.

User clarifications come from per-package configuration; the workaround
pass (see workarounds.py) feeds built-in clarifications through the same
machinery.
"""

import asyncio
import logging

from license_gatherer.clarify import apply_clarification
from license_gatherer.config import Clarification
from license_gatherer.models import LicenseInfo, Package, PackageLicense, dedup_evidence
from license_gatherer.sources.base import EvidenceSource, GatherContext

logger = logging.getLogger(__name__)


class ClarificationSourceBase(EvidenceSource):
    """Applies one clarification per candidate package, concurrently."""

    async def _apply(
        self,
        candidates: list[tuple[Package, Clarification]],
        context: GatherContext,
    ) -> list[PackageLicense]:
        tasks = [
            apply_clarification(context.git_cache, package, clarification)
            for package, clarification in candidates
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        claimed = []
        for (package, clarification), result in zip(candidates, results):
            if isinstance(result, Exception):
                logger.error(
                    "failed to apply %s clarification to '%s': %s",
                    self.name,
                    package,
                    result,
                )
                continue
            # The clarified expression replaces whatever the package declares.
            info = LicenseInfo.expr(clarification.license)
            claimed.append(PackageLicense(package, info, dedup_evidence(result)))
        return claimed


class ClarifiedSource(ClarificationSourceBase):
    """Applies the clarifications users configure per package."""

    @property
    def name(self) -> str:
        return "user"

    @property
    def priority(self) -> int:
        return 20

    async def gather(
        self, pending: list[Package], context: GatherContext
    ) -> list[PackageLicense]:
        candidates = []
        for package in pending:
            package_config = context.config.package_config(package)
            if package_config is not None and package_config.clarify is not None:
                candidates.append((package, package_config.clarify))
        return await self._apply(candidates, context)
