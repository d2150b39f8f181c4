"""ClearlyDefined harvested license metadata.

ClearlyDefined harvests license information for published packages. Its
definitions point at the license files it found; each one is re-read from
the local copy of the package and verified against the harvested hash
before it counts as evidence.
"""

import asyncio
import hashlib
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Optional

import aiohttp
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from license_gatherer.errors import ExpressionError, FetchError
from license_gatherer.expression import Expression, license_id
from license_gatherer.http import HttpClient
from license_gatherer.models import (
    LicenseEvidence,
    LicenseFileKind,
    Package,
    PackageLicense,
    PackageSource,
    dedup_evidence,
)
from license_gatherer.sources.base import EvidenceSource, GatherContext, declared_license

logger = logging.getLogger(__name__)

DEFINITIONS_URL = "https://api.clearlydefined.io/definitions"
BATCH_SIZE = 100


def coordinate(package: Package) -> str:
    """Return the ClearlyDefined coordinate of a PyPI package."""
    return f"pypi/pypi/-/{package.name}/{package.version}"


def _is_harvested(definition: dict) -> bool:
    return bool(definition.get("described", {}).get("tools"))


def _local_path(root: Path, package: Package, harvested: str) -> Optional[Path]:
    # Harvested paths are relative to the sdist, which nests everything
    # under "{name}-{version}/"; wheels keep license files under licenses/.
    parts = PurePosixPath(harvested).parts
    if parts and parts[0].lower() in (
        f"{package.name}-{package.version}".lower(),
        f"{package.name.replace('-', '_')}-{package.version}".lower(),
    ):
        parts = parts[1:]
    if not parts:
        return None
    relative = Path(*parts)
    for candidate in (root / relative, root / "licenses" / relative):
        if candidate.is_file():
            return candidate
    return None


def _hash_matches(data: bytes, hashes: dict) -> Optional[bool]:
    if "sha256" in hashes:
        return hashlib.sha256(data).hexdigest() == hashes["sha256"].lower()
    if "sha1" in hashes:
        return hashlib.sha1(data).hexdigest() == hashes["sha1"].lower()
    return None


class ClearlyDefinedSource(HttpClient, EvidenceSource):
    """Merges ClearlyDefined definitions for registry packages.

    Attributes:
        batch_size: Maximum number of coordinates per request.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        super().__init__(session=session, timeout=timeout)
        self.batch_size = batch_size

    @property
    def name(self) -> str:
        return "clearlydefined"

    @property
    def priority(self) -> int:
        return 30

    async def fetch_definitions(self, coordinates: list[str]) -> dict[str, Any]:
        """Query definitions for one batch of coordinates.

        Raises:
            FetchError: If the request fails or returns a non-200 status.
        """
        try:
            session = await self._get_session()
            async with session.post(DEFINITIONS_URL, json=coordinates) as response:
                if response.status != 200:
                    raise FetchError(
                        f"{DEFINITIONS_URL} returned status {response.status}"
                    )
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"failed to query ClearlyDefined: {e}") from e

    async def gather(
        self, pending: list[Package], context: GatherContext
    ) -> list[PackageLicense]:
        packages = [p for p in pending if p.source is PackageSource.REGISTRY]
        if not packages:
            return []

        batches = [
            packages[i : i + self.batch_size]
            for i in range(0, len(packages), self.batch_size)
        ]
        results = await asyncio.gather(
            *(self.fetch_definitions([coordinate(p) for p in batch]) for batch in batches),
            return_exceptions=True,
        )

        lookup = {(p.canonical_name, p.version): p for p in packages}
        matched: list[tuple[Package, dict]] = []
        for batch, result in zip(batches, results):
            if isinstance(result, Exception):
                logger.error(
                    "ClearlyDefined lookup failed for %d package(s): %s",
                    len(batch),
                    result,
                )
                continue
            for key, definition in sorted(result.items()):
                package = self._match(key, definition, lookup)
                if package is not None:
                    matched.append((package, definition))

        loop = asyncio.get_running_loop()
        collected = await asyncio.gather(
            *(
                loop.run_in_executor(
                    context.executor, self.collect, package, definition, context
                )
                for package, definition in matched
            ),
            return_exceptions=True,
        )

        claimed = []
        for (package, _), evidence in zip(matched, collected):
            if isinstance(evidence, Exception):
                logger.error(
                    "failed to merge ClearlyDefined data for '%s': %s", package, evidence
                )
                continue
            if evidence:
                claimed.append(PackageLicense(package, declared_license(package), evidence))
        return claimed

    def _match(
        self, key: str, definition: dict, lookup: dict[tuple[str, str], Package]
    ) -> Optional[Package]:
        if not _is_harvested(definition):
            logger.debug("%s has not been harvested by ClearlyDefined", key)
            return None

        coordinates = definition.get("coordinates", {})
        revision = coordinates.get("revision", "")
        try:
            Version(revision)
        except InvalidVersion:
            logger.debug("%s has an invalid revision '%s'", key, revision)
            return None

        return lookup.get((canonicalize_name(coordinates.get("name", "")), revision))

    def collect(
        self, package: Package, definition: dict, context: GatherContext
    ) -> list[LicenseEvidence]:
        """Turn the license files of a definition into evidence.

        Args:
            package: The local package the definition describes.
            definition: The ClearlyDefined definition.
            context: Shared collaborators; the classifier recovers
                identifiers for files harvested without one.

        Returns:
            Deduplicated evidence; empty if nothing could be verified.
        """
        root = package.scan_root
        if root is None:
            return []

        score = definition.get("scores", {}).get("effective", 0) / 100
        threshold = context.scanner.threshold
        evidence = []

        for file in definition.get("files", []) or []:
            if "license" not in (file.get("natures") or []):
                continue

            harvested_path = file.get("path", "")
            path = _local_path(root, package, harvested_path)
            data = None
            if path is not None:
                try:
                    data = path.read_bytes()
                except OSError as e:
                    logger.error("%s: unable to read %s: %s", package, path, e)

            hashes = file.get("hashes") or {}
            if data is not None and _hash_matches(data, hashes) is False:
                logger.warning(
                    "%s: %s does not match the hash harvested by ClearlyDefined, skipping",
                    package,
                    harvested_path,
                )
                continue

            text = None
            if data is not None:
                try:
                    text = data.decode("utf-8")
                except UnicodeDecodeError:
                    logger.debug("%s: %s is not valid UTF-8", package, harvested_path)

            relative = path.relative_to(root) if path is not None else Path(harvested_path)
            declared = file.get("license")
            if declared:
                try:
                    expression = Expression.parse(declared)
                except ExpressionError as e:
                    logger.error(
                        "%s: ClearlyDefined license '%s' for %s is invalid: %s",
                        package,
                        declared,
                        harvested_path,
                        e,
                    )
                    continue
                evidence.append(
                    LicenseEvidence(
                        license_expr=str(expression),
                        path=relative,
                        confidence=score,
                        kind=LicenseFileKind.TEXT if text else LicenseFileKind.HEADER,
                        text=text,
                    )
                )
            elif text:
                found = context.classifier.classify(text, context.scanner.confidence_floor)
                if found is None or found.confidence < threshold:
                    logger.debug(
                        "%s: unable to identify the license in %s", package, harvested_path
                    )
                    continue
                identifier = license_id(found.name)
                if identifier is None:
                    logger.error(
                        "%s: %s matched license '%s' which is not a known SPDX identifier",
                        package,
                        harvested_path,
                        found.name,
                    )
                    continue
                evidence.append(
                    LicenseEvidence(
                        license_expr=identifier,
                        path=relative,
                        confidence=found.confidence,
                        kind=LicenseFileKind.TEXT,
                        text=text,
                    )
                )

        return dedup_evidence(evidence)
