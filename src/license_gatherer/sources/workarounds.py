import logging

from packaging.utils import canonicalize_name

from license_gatherer import workarounds
from license_gatherer.config import Clarification
from license_gatherer.models import Package, PackageLicense
from license_gatherer.sources.base import GatherContext
from license_gatherer.sources.clarified import ClarificationSourceBase

logger = logging.getLogger(__name__)


class WorkaroundSource(ClarificationSourceBase):
    """Applies the built-in workarounds enabled in the configuration."""

    @property
    def name(self) -> str:
        return "workaround"

    @property
    def priority(self) -> int:
        return 10

    async def gather(
        self, pending: list[Package], context: GatherContext
    ) -> list[PackageLicense]:
        candidates: dict[Package, Clarification] = {}
        for entry in context.config.workarounds:
            workaround = workarounds.lookup(entry.name)
            if workaround is None:
                logger.warning(
                    "no workaround registered for '%s', known workarounds are: %s",
                    entry.name,
                    ", ".join(workarounds.names()),
                )
                continue

            name = canonicalize_name(entry.name)
            for package in pending:
                if package.canonical_name != name or package in candidates:
                    continue
                if not entry.matches_version(package):
                    logger.debug(
                        "workaround '%s' does not apply to '%s', version is outside %s",
                        entry.name,
                        package,
                        entry.version,
                    )
                    continue
                clarification = workaround(package)
                if clarification is not None:
                    candidates[package] = clarification

        return await self._apply(list(candidates.items()), context)
