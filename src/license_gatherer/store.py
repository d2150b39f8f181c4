"""License text corpus and the text classifier built on it.

The corpus is the SPDX license list (full texts and standard headers),
downloaded once from the SPDX license-list-data repository and kept as a
gzip'd JSON file in the user cache directory. LicenseStore scores text
against every corpus entry with word-bigram overlap, which is
deterministic for identical input.
"""

import asyncio
import enum
import gzip
import json
import logging
import re
from dataclasses import asdict, dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional, Protocol

import aiohttp

from license_gatherer.cache import DEFAULT_CACHE_DIR
from license_gatherer.errors import CorpusError
from license_gatherer.http import HttpClient

logger = logging.getLogger(__name__)

CORPUS_PATH = DEFAULT_CACHE_DIR / "licenses.json.gz"
LICENSE_LIST_URL = (
    "https://raw.githubusercontent.com/spdx/license-list-data/main/json/licenses.json"
)
LICENSE_DETAILS_URL = (
    "https://raw.githubusercontent.com/spdx/license-list-data/main/json/details/{id}.json"
)

# Headers shorter than this are too generic to identify a license.
MIN_HEADER_BIGRAMS = 10


class MatchKind(str, enum.Enum):
    HEADER = "header"
    ORIGINAL = "original"


@dataclass(frozen=True)
class Match:
    """A classifier result.

    Attributes:
        name: Identifier of the matched license.
        confidence: Similarity score in [0, 1].
        kind: ORIGINAL for full license text, HEADER for a short notice.
    """

    name: str
    confidence: float
    kind: MatchKind


class Classifier(Protocol):
    def classify(self, text: str, confidence_floor: float) -> Optional[Match]:
        """Return the best match scoring at least confidence_floor."""
        ...


@dataclass(frozen=True)
class LicenseEntry:
    id: str
    name: str
    text: str
    header: Optional[str] = None


_COPYRIGHT_RE = re.compile(r"^\s*(copyright|\(c\)|©).*$", re.IGNORECASE | re.MULTILINE)
_WORD_RE = re.compile(r"[a-z0-9]+")


def _bigrams(text: str) -> frozenset:
    text = _COPYRIGHT_RE.sub(" ", text.lower())
    words = _WORD_RE.findall(text)
    return frozenset(zip(words, words[1:]))


class LicenseStore:
    """Corpus of canonical license texts and the classifier over it."""

    def __init__(self, entries: Iterable[LicenseEntry]) -> None:
        self._entries = {entry.id: entry for entry in sorted(entries, key=lambda e: e.id)}
        self._texts = [
            (entry.id, grams)
            for entry in self._entries.values()
            if (grams := _bigrams(entry.text))
        ]
        self._headers = [
            (entry.id, grams)
            for entry in self._entries.values()
            if entry.header and len(grams := _bigrams(entry.header)) >= MIN_HEADER_BIGRAMS
        ]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, license_id: str) -> bool:
        return license_id in self._entries

    def name(self, license_id: str) -> Optional[str]:
        entry = self._entries.get(license_id)
        return entry.name if entry else None

    def text(self, license_id: str) -> Optional[str]:
        entry = self._entries.get(license_id)
        return entry.text if entry else None

    def classify(self, text: str, confidence_floor: float) -> Optional[Match]:
        """Classify text against the corpus.

        Full texts are scored with the Dice coefficient of the two bigram
        sets; headers by the fraction of the header's bigrams present in
        the text. The best full-text score wins ties against headers, and
        equal scores resolve to the smallest identifier.

        Args:
            text: Text to classify.
            confidence_floor: Scores below this produce no match.

        Returns:
            The best match, or None.
        """
        grams = _bigrams(text)
        if not grams:
            return None

        best_original = self._best(
            (2 * len(grams & other) / (len(grams) + len(other)), license_id)
            for license_id, other in self._texts
        )
        best_header = self._best(
            (len(grams & other) / len(other), license_id)
            for license_id, other in self._headers
        )

        if best_original and (not best_header or best_original[0] >= best_header[0]):
            score, license_id = best_original
            kind = MatchKind.ORIGINAL
        elif best_header:
            score, license_id = best_header
            kind = MatchKind.HEADER
        else:
            return None

        if score < confidence_floor:
            return None
        return Match(license_id, round(score, 4), kind)

    @staticmethod
    def _best(scores: Iterable[tuple[float, str]]) -> Optional[tuple[float, str]]:
        best = None
        for score, license_id in scores:
            if best is None or score > best[0]:
                best = (score, license_id)
        return best


def load_corpus(path: Path = CORPUS_PATH) -> list[LicenseEntry]:
    """Load the corpus from its gzip'd JSON cache.

    Raises:
        CorpusError: If the file is missing or malformed.
    """
    try:
        with gzip.open(path, "rt", encoding="utf-8") as f:
            data = json.load(f)
        return [LicenseEntry(**item) for item in data["licenses"]]
    except FileNotFoundError as e:
        raise CorpusError(f"license corpus not found at {path}") from e
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise CorpusError(f"license corpus at {path} is unreadable: {e}") from e


def save_corpus(entries: list[LicenseEntry], path: Path = CORPUS_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, "wt", encoding="utf-8") as f:
        json.dump({"licenses": [asdict(entry) for entry in entries]}, f)


@lru_cache(maxsize=None)
def store_from_cache(path: Path = CORPUS_PATH) -> LicenseStore:
    """Load the store once per process for a given corpus path."""
    entries = load_corpus(path)
    logger.debug("loaded %d licenses from %s", len(entries), path)
    return LicenseStore(entries)


class CorpusDownloader(HttpClient):
    """Downloads the SPDX license list into the local corpus cache."""

    def __init__(self, concurrency: int = 16, **kwargs) -> None:
        super().__init__(**kwargs)
        self.concurrency = concurrency

    async def _get_json(self, url: str) -> dict:
        session = await self._get_session()
        async with session.get(url) as response:
            if response.status != 200:
                raise CorpusError(f"{url} returned status {response.status}")
            # raw.githubusercontent.com serves JSON as text/plain
            return await response.json(content_type=None)

    async def download(self, path: Path = CORPUS_PATH) -> list[LicenseEntry]:
        """Download every non-deprecated license and save the corpus.

        Licenses whose details cannot be fetched are logged and skipped.

        Raises:
            CorpusError: If the license list itself cannot be fetched.
        """
        try:
            listing = await self._get_json(LICENSE_LIST_URL)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CorpusError(f"failed to fetch the SPDX license list: {e}") from e

        ids = sorted(
            item["licenseId"]
            for item in listing.get("licenses", [])
            if not item.get("isDeprecatedLicenseId", False)
        )
        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch(license_id: str) -> LicenseEntry:
            async with semaphore:
                details = await self._get_json(LICENSE_DETAILS_URL.format(id=license_id))
            return LicenseEntry(
                id=license_id,
                name=details.get("name", license_id),
                text=details.get("licenseText", ""),
                header=details.get("standardLicenseHeader") or None,
            )

        results = await asyncio.gather(*(fetch(i) for i in ids), return_exceptions=True)

        entries = []
        for license_id, result in zip(ids, results):
            if isinstance(result, Exception):
                logger.error("Failed to fetch license text for %s: %s", license_id, result)
                continue
            entries.append(result)

        save_corpus(entries, path)
        logger.info("Saved %d/%d licenses to %s", len(entries), len(ids), path)
        return entries
