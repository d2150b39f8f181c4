"""Tests for the license corpus and classifier."""

import gzip

import pytest
from aioresponses import aioresponses

from license_gatherer.errors import CorpusError
from license_gatherer.store import (
    LICENSE_DETAILS_URL,
    LICENSE_LIST_URL,
    CorpusDownloader,
    LicenseEntry,
    LicenseStore,
    MatchKind,
    load_corpus,
    save_corpus,
    store_from_cache,
)


class TestLicenseStore:
    """Test lookups and classification."""

    def test_lookups(self, store: LicenseStore) -> None:
        assert len(store) == 2
        assert "MIT" in store
        assert "ISC" not in store
        assert store.name("Apache-2.0") == "Apache License 2.0"
        assert store.text("ISC") is None

    def test_exact_text(self, store: LicenseStore) -> None:
        found = store.classify(store.text("MIT"), 0.5)
        assert found is not None
        assert (found.name, found.confidence, found.kind) == ("MIT", 1.0, MatchKind.ORIGINAL)

    def test_copyright_lines_are_ignored(self, store: LicenseStore) -> None:
        text = "Copyright (c) 2024 Example Corp\n\n" + store.text("MIT")
        assert store.classify(text, 0.5).confidence == 1.0

    def test_header(self, store: LicenseStore) -> None:
        text = (
            "# Licensed under the Apache License, Version 2.0 (the License);\n"
            "# you may not use this file except in compliance with the License.\n"
            "import os\n"
        )
        found = store.classify(text, 0.5)
        assert found is not None
        assert found.name == "Apache-2.0"
        assert found.kind is MatchKind.HEADER

    def test_below_floor(self, store: LicenseStore) -> None:
        assert store.classify("a recipe for pancakes with syrup", 0.5) is None

    def test_empty(self, store: LicenseStore) -> None:
        assert store.classify("", 0.0) is None

    def test_deterministic(self, store: LicenseStore) -> None:
        text = store.text("MIT")[:80]
        assert store.classify(text, 0.1) == store.classify(text, 0.1)


class TestCorpus:
    """Test corpus persistence."""

    def test_save_and_load(self, tmp_path) -> None:
        path = tmp_path / "corpus" / "licenses.json.gz"
        entries = [LicenseEntry("MIT", "MIT License", "text", None)]
        save_corpus(entries, path)
        assert load_corpus(path) == entries
        assert "MIT" in store_from_cache(path)

    def test_missing(self, tmp_path) -> None:
        with pytest.raises(CorpusError, match="not found"):
            load_corpus(tmp_path / "missing.json.gz")

    def test_malformed(self, tmp_path) -> None:
        path = tmp_path / "licenses.json.gz"
        with gzip.open(path, "wt", encoding="utf-8") as f:
            f.write('{"nope": []}')
        with pytest.raises(CorpusError, match="unreadable"):
            load_corpus(path)


class TestCorpusDownloader:
    """Test downloading the SPDX license list."""

    @pytest.mark.asyncio
    async def test_download(self, tmp_path, caplog) -> None:
        path = tmp_path / "licenses.json.gz"
        listing = {
            "licenses": [
                {"licenseId": "MIT"},
                {"licenseId": "Apache-2.0"},
                {"licenseId": "GPL-2.0", "isDeprecatedLicenseId": True},
            ]
        }
        with aioresponses() as m:
            m.get(LICENSE_LIST_URL, payload=listing)
            m.get(
                LICENSE_DETAILS_URL.format(id="MIT"),
                payload={"name": "MIT License", "licenseText": "mit text"},
            )
            m.get(LICENSE_DETAILS_URL.format(id="Apache-2.0"), status=500)

            async with CorpusDownloader() as downloader:
                entries = await downloader.download(path)

        assert entries == [LicenseEntry("MIT", "MIT License", "mit text", None)]
        assert load_corpus(path) == entries
        assert "Failed to fetch license text for Apache-2.0" in caplog.text

    @pytest.mark.asyncio
    async def test_listing_failure(self, tmp_path) -> None:
        with aioresponses() as m:
            m.get(LICENSE_LIST_URL, status=404)
            async with CorpusDownloader() as downloader:
                with pytest.raises(CorpusError, match="404"):
                    await downloader.download(tmp_path / "licenses.json.gz")
