"""Shared fixtures for license_gatherer tests."""

from typing import Callable, Optional

import pytest

from license_gatherer.models import Package, PackageSource
from license_gatherer.store import LicenseEntry, LicenseStore, Match, MatchKind


class FakeClassifier:
    """Classifier that recognizes text by marker substrings.

    Each marker maps to the match returned for any text containing it;
    the first marker found, in insertion order, wins.
    """

    def __init__(self, markers: Optional[dict[str, Match]] = None) -> None:
        self.markers = dict(markers or {})
        self.calls: list[str] = []

    def classify(self, text: str, confidence_floor: float) -> Optional[Match]:
        self.calls.append(text)
        for marker, found in self.markers.items():
            if marker in text:
                return found if found.confidence >= confidence_floor else None
        return None


@pytest.fixture
def classifier() -> FakeClassifier:
    """Return a classifier that knows MIT and Apache-2.0 markers."""
    return FakeClassifier(
        {
            "MIT-TEXT-099": Match("MIT", 0.99, MatchKind.ORIGINAL),
            "MIT-TEXT-095": Match("MIT", 0.95, MatchKind.ORIGINAL),
            "APACHE-TEXT": Match("Apache-2.0", 0.97, MatchKind.ORIGINAL),
            "MIT-HEADER": Match("MIT", 0.9, MatchKind.HEADER),
            "WEAK-BSD": Match("BSD-3-Clause", 0.5, MatchKind.ORIGINAL),
            "NOT-SPDX": Match("Not A License", 0.99, MatchKind.ORIGINAL),
        }
    )


@pytest.fixture
def make_package(tmp_path) -> Callable[..., Package]:
    """Return a factory for packages rooted in a temporary directory."""

    def factory(
        name: str = "example",
        version: str = "1.0.0",
        license: Optional[str] = None,
        files: Optional[dict[str, str]] = None,
        **kwargs,
    ) -> Package:
        root = tmp_path / f"{name}-{version}"
        root.mkdir(parents=True, exist_ok=True)
        for relative, contents in (files or {}).items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(contents, encoding="utf-8")
        kwargs.setdefault("source", PackageSource.REGISTRY)
        return Package(name=name, version=version, license=license, root=root, **kwargs)

    return factory


@pytest.fixture
def store() -> LicenseStore:
    """Return a small corpus store."""
    return LicenseStore(
        [
            LicenseEntry(
                id="MIT",
                name="MIT License",
                text=(
                    "Permission is hereby granted, free of charge, to any person "
                    "obtaining a copy of this software and associated documentation "
                    "files (the Software), to deal in the Software without restriction"
                ),
            ),
            LicenseEntry(
                id="Apache-2.0",
                name="Apache License 2.0",
                text=(
                    "Apache License Version 2.0, January 2004 TERMS AND CONDITIONS "
                    "FOR USE, REPRODUCTION, AND DISTRIBUTION"
                ),
                header=(
                    "Licensed under the Apache License, Version 2.0 (the License); "
                    "you may not use this file except in compliance with the License."
                ),
            ),
        ]
    )
