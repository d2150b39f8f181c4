"""Application of checksum-verified clarifications.

A clarification is all-or-nothing: if any of its files cannot be read,
lacks its anchors, or fails its checksum, no evidence is produced.
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from license_gatherer.config import Clarification, ClarificationFile
from license_gatherer.errors import (
    ChecksumError,
    ClarificationError,
    FetchError,
)
from license_gatherer.expression import license_id
from license_gatherer.fetch import GitCache, read_local
from license_gatherer.models import LicenseEvidence, LicenseFileKind, Package
from license_gatherer.store import Classifier

logger = logging.getLogger(__name__)

_HEX = frozenset("0123456789abcdefABCDEF")


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def validate_sha256(text: str, expected: str) -> None:
    """Check that text hashes to the expected hex SHA-256 digest.

    The comparison is case-insensitive.

    Raises:
        ChecksumError: If expected is malformed or does not match.
    """
    if len(expected) != 64:
        raise ChecksumError(
            f"checksum '{expected}' length is {len(expected)} instead of expected 64"
        )
    for index, char in enumerate(expected):
        if char not in _HEX:
            raise ChecksumError(
                f"invalid character in checksum '{expected}' @ {index}: {char!r}"
            )
    if sha256_hex(text) != expected.lower():
        raise ChecksumError(f"checksum mismatch, expected '{expected}'")


def extract_subsection(
    contents: str,
    start: Optional[str],
    end: Optional[str],
    name: str = "file",
) -> str:
    """Return the part of contents between the start and end anchors.

    The subsection begins at the first occurrence of start and ends after
    the first occurrence of end that follows it. Missing anchors default
    to the beginning and end of the file.

    Raises:
        ClarificationError: If an anchor cannot be found.
    """
    start_index = 0
    if start is not None:
        start_index = contents.find(start)
        if start_index == -1:
            raise ClarificationError(
                f"failed to find subsection starting with '{start}' in {name}"
            )

    end_index = len(contents)
    if end is not None:
        found = contents.find(end, start_index)
        if found == -1:
            raise ClarificationError(
                f"failed to find subsection ending with '{end}' in {name}"
            )
        end_index = found + len(end)

    return contents[start_index:end_index]


def _evidence(
    contents: str,
    cf: ClarificationFile,
    clarification: Clarification,
    name: str,
) -> LicenseEvidence:
    if not contents:
        raise ClarificationError(f"clarification file '{name}' is empty")

    text = extract_subsection(contents, cf.start, cf.end, name)
    try:
        validate_sha256(text, cf.checksum)
    except ChecksumError as e:
        raise ChecksumError(f"{name}: {e}") from e

    return LicenseEvidence(
        license_expr=cf.license or clarification.license,
        path=cf.path,
        confidence=1.0,
        kind=LicenseFileKind.TEXT,
        text=text,
    )


async def apply_clarification(
    git_cache: GitCache,
    package: Package,
    clarification: Clarification,
) -> list[LicenseEvidence]:
    """Turn a clarification into evidence for a package.

    Args:
        git_cache: Cache used to retrieve remote (git) files.
        package: The package being clarified.
        clarification: The clarification to apply.

    Returns:
        One TEXT evidence entry per clarified file, each with confidence 1.0.

    Raises:
        ClarificationError: If any file fails; no partial result is returned.
    """
    if not clarification.files and not clarification.git:
        raise ClarificationError(
            f"clarification for '{package}' does not specify any license files to checksum"
        )

    evidence = []
    root = package.scan_root
    for cf in clarification.files:
        if root is None:
            raise ClarificationError(f"package '{package}' has no root directory")
        try:
            contents = await asyncio.to_thread(read_local, root, cf.path)
        except FetchError as e:
            raise ClarificationError(str(e)) from e
        evidence.append(_evidence(contents, cf, clarification, str(root / cf.path)))

    for cf in clarification.git:
        try:
            contents = await git_cache.retrieve(
                package, cf, clarification.override_git_commit
            )
        except FetchError as e:
            raise ClarificationError(
                f"unable to retrieve '{cf.path}' for '{package}' from remote git host: {e}"
            ) from e
        evidence.append(_evidence(contents, cf, clarification, str(cf.path)))

    return evidence


@dataclass
class ClarifiedSubsection:
    """A subsection of a license file with its checksum and license.

    Attributes:
        start: Start anchor, or None for the beginning of the file.
        end: End anchor, or None for the end of the file.
        text: The subsection text.
        checksum: Hex SHA-256 of text.
        license: SPDX identifier detected in text.
        confidence: Classifier confidence for license.
    """

    start: Optional[str]
    end: Optional[str]
    text: str
    checksum: str
    license: str
    confidence: float


def parse_subsection(value: str) -> tuple[Optional[str], Optional[str]]:
    """Split a "START!!END" subsection argument into its anchors.

    Raises:
        ValueError: If the value has no "!!" separator.
    """
    start, sep, end = value.partition("!!")
    if not sep:
        raise ValueError(f"unable to find '!!' in {value}")
    return (start or None, end or None)


def clarify_file(
    contents: str,
    path: Path,
    classifier: Classifier,
    subsections: list[tuple[Optional[str], Optional[str]]],
    threshold: float,
) -> tuple[str, list[ClarifiedSubsection]]:
    """Compute the clarification entries for a license file.

    Args:
        contents: Full text of the license file.
        path: Path of the file, used in messages.
        classifier: Classifier used to detect each subsection's license.
        subsections: (start, end) anchor pairs; empty means the whole file.
        threshold: Minimum classifier confidence.

    Returns:
        The combined expression (each detected license ANDed once) and
        one entry per subsection.

    Raises:
        ClarificationError: If an anchor is missing or a subsection has no
            recognizable SPDX license.
    """
    if "\r" in contents:
        logger.warning(
            "%s contains CRLF line endings, checksums are calculated over the text as read",
            path,
        )

    pairs = subsections or [(None, None)]
    floor = min(max(threshold, 0.1), 1.0)

    licenses: list[str] = []
    results = []
    for start, end in pairs:
        text = extract_subsection(contents, start, end, str(path))
        found = classifier.classify(text, floor)
        if found is None:
            raise ClarificationError(
                f"failed to discern license for subsection of {path}:\n{text}"
            )
        identifier = license_id(found.name)
        if identifier is None:
            raise ClarificationError(
                f"detected license '{found.name}' which is not a valid SPDX identifier"
            )
        if identifier in licenses:
            logger.info("%s already present in the expression", identifier)
        else:
            licenses.append(identifier)
        results.append(
            ClarifiedSubsection(
                start=start,
                end=end,
                text=text,
                checksum=sha256_hex(text),
                license=identifier,
                confidence=found.confidence,
            )
        )

    return " AND ".join(licenses), results
