import logging

from license_gatherer.config import PrivateConfig
from license_gatherer.models import LicenseInfo, Package, PackageLicense
from license_gatherer.sources.base import EvidenceSource, GatherContext

logger = logging.getLogger(__name__)


def is_private(package: Package, private: PrivateConfig) -> bool:
    """Check whether a package is never published to a public registry."""
    if package.publish is None:
        return False
    return all(registry in private.registries for registry in package.publish)


class PrivateSource(EvidenceSource):
    """Marks unpublished packages as ignored, before anything else runs."""

    @property
    def name(self) -> str:
        return "private"

    @property
    def priority(self) -> int:
        return 0

    async def gather(
        self, pending: list[Package], context: GatherContext
    ) -> list[PackageLicense]:
        private = context.config.private
        if not private.ignore:
            return []

        claimed = []
        for package in pending:
            if is_private(package, private):
                logger.debug("ignoring private package '%s'", package)
                claimed.append(PackageLicense(package, LicenseInfo.ignore()))
        return claimed
