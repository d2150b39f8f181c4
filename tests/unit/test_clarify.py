"""Tests for clarification application and computation."""

import hashlib
from pathlib import Path

import pytest

from license_gatherer.clarify import (
    apply_clarification,
    clarify_file,
    extract_subsection,
    parse_subsection,
    validate_sha256,
)
from license_gatherer.config import Clarification
from license_gatherer.errors import ChecksumError, ClarificationError
from license_gatherer.fetch import GitCache
from license_gatherer.models import LicenseFileKind


def sha(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class TestValidateSha256:
    """Test checksum validation."""

    def test_match_is_case_insensitive(self) -> None:
        validate_sha256("hello", sha("hello").upper())

    def test_wrong_length(self) -> None:
        with pytest.raises(ChecksumError, match="length is 3"):
            validate_sha256("hello", "abc")

    def test_invalid_character(self) -> None:
        with pytest.raises(ChecksumError, match="@ 0"):
            validate_sha256("hello", "g" + "0" * 63)

    def test_mismatch(self) -> None:
        with pytest.raises(ChecksumError, match="mismatch"):
            validate_sha256("hello", sha("world"))


class TestExtractSubsection:
    """Test anchor-based subsection extraction."""

    CONTENTS = "preamble\nSTART of the license\nEND\ntrailer END"

    def test_both_anchors(self) -> None:
        assert extract_subsection(self.CONTENTS, "START", "END") == (
            "START of the license\nEND"
        )

    def test_missing_anchors_default_to_file_bounds(self) -> None:
        assert extract_subsection(self.CONTENTS, None, None) == self.CONTENTS
        assert extract_subsection(self.CONTENTS, "trailer", None) == "trailer END"

    def test_missing_start(self) -> None:
        with pytest.raises(ClarificationError, match="starting with 'NOPE'"):
            extract_subsection(self.CONTENTS, "NOPE", None)

    def test_missing_end(self) -> None:
        with pytest.raises(ClarificationError, match="ending with 'NOPE'"):
            extract_subsection(self.CONTENTS, "START", "NOPE")


class TestApplyClarification:
    """Test turning clarifications into evidence."""

    @pytest.mark.asyncio
    async def test_produces_text_evidence(self, make_package) -> None:
        package = make_package("foo", "1.0", files={"LICENSE": "MIT-TEXT-099"})
        clarification = Clarification.model_validate(
            {
                "license": "MIT",
                "files": [{"path": "LICENSE", "checksum": sha("MIT-TEXT-099")}],
            }
        )

        async with GitCache() as git_cache:
            evidence = await apply_clarification(git_cache, package, clarification)

        assert len(evidence) == 1
        assert evidence[0].license_expr == "MIT"
        assert evidence[0].confidence == 1.0
        assert evidence[0].kind is LicenseFileKind.TEXT
        assert evidence[0].text == "MIT-TEXT-099"

    @pytest.mark.asyncio
    async def test_per_file_license_overrides(self, make_package) -> None:
        package = make_package(
            "foo", "1.0", files={"LICENSE-MIT": "m", "LICENSE-APACHE": "a"}
        )
        clarification = Clarification.model_validate(
            {
                "license": "MIT AND Apache-2.0",
                "files": [
                    {"path": "LICENSE-MIT", "license": "MIT", "checksum": sha("m")},
                    {"path": "LICENSE-APACHE", "license": "Apache-2.0", "checksum": sha("a")},
                ],
            }
        )

        async with GitCache() as git_cache:
            evidence = await apply_clarification(git_cache, package, clarification)

        assert [e.license_expr for e in evidence] == ["MIT", "Apache-2.0"]

    @pytest.mark.asyncio
    async def test_all_or_nothing(self, make_package) -> None:
        package = make_package("foo", "1.0", files={"GOOD": "good", "BAD": "bad"})
        clarification = Clarification.model_validate(
            {
                "license": "MIT",
                "files": [
                    {"path": "GOOD", "checksum": sha("good")},
                    {"path": "BAD", "checksum": sha("not bad")},
                ],
            }
        )

        async with GitCache() as git_cache:
            with pytest.raises(ChecksumError, match="BAD"):
                await apply_clarification(git_cache, package, clarification)

    @pytest.mark.asyncio
    async def test_subsection(self, make_package) -> None:
        contents = "header\nBEGIN license body END\nfooter"
        package = make_package("foo", "1.0", files={"LICENSE": contents})
        subsection = "BEGIN license body END"
        clarification = Clarification.model_validate(
            {
                "license": "MIT",
                "files": [
                    {
                        "path": "LICENSE",
                        "checksum": sha(subsection),
                        "start": "BEGIN",
                        "end": "END",
                    }
                ],
            }
        )

        async with GitCache() as git_cache:
            evidence = await apply_clarification(git_cache, package, clarification)

        assert evidence[0].text == subsection

    @pytest.mark.asyncio
    async def test_missing_file(self, make_package) -> None:
        package = make_package("foo", "1.0")
        clarification = Clarification.model_validate(
            {"license": "MIT", "files": [{"path": "LICENSE", "checksum": "0" * 64}]}
        )

        async with GitCache() as git_cache:
            with pytest.raises(ClarificationError, match="unable to read"):
                await apply_clarification(git_cache, package, clarification)

    @pytest.mark.asyncio
    async def test_empty_file(self, make_package) -> None:
        package = make_package("foo", "1.0", files={"LICENSE": ""})
        clarification = Clarification.model_validate(
            {"license": "MIT", "files": [{"path": "LICENSE", "checksum": sha("")}]}
        )

        async with GitCache() as git_cache:
            with pytest.raises(ClarificationError, match="is empty"):
                await apply_clarification(git_cache, package, clarification)


class TestClarifyFile:
    """Test computing clarifications for a file."""

    def test_whole_file(self, classifier) -> None:
        expression, sections = clarify_file(
            "MIT-TEXT-099", Path("LICENSE"), classifier, [], 0.8
        )
        assert expression == "MIT"
        assert sections[0].checksum == sha("MIT-TEXT-099")
        assert sections[0].start is None

    def test_subsections_are_anded(self, classifier) -> None:
        contents = "<a> MIT-TEXT-099 </a>\n<b> APACHE-TEXT </b>"
        expression, sections = clarify_file(
            contents,
            Path("LICENSE"),
            classifier,
            [("<a>", "</a>"), ("<b>", "</b>")],
            0.8,
        )
        assert expression == "MIT AND Apache-2.0"
        assert [s.license for s in sections] == ["MIT", "Apache-2.0"]
        assert sections[1].text == "<b> APACHE-TEXT </b>"

    def test_repeated_license_appears_once(self, classifier) -> None:
        contents = "<a> MIT-TEXT-099 </a> <b> MIT-TEXT-095 </b>"
        expression, sections = clarify_file(
            contents,
            Path("LICENSE"),
            classifier,
            [("<a>", "</a>"), ("<b>", "</b>")],
            0.8,
        )
        assert expression == "MIT"
        assert len(sections) == 2

    def test_unrecognized(self, classifier) -> None:
        with pytest.raises(ClarificationError, match="failed to discern"):
            clarify_file("nothing here", Path("LICENSE"), classifier, [], 0.8)

    def test_not_spdx(self, classifier) -> None:
        with pytest.raises(ClarificationError, match="not a valid SPDX"):
            clarify_file("NOT-SPDX", Path("LICENSE"), classifier, [], 0.8)


def test_parse_subsection() -> None:
    assert parse_subsection("a!!b") == ("a", "b")
    assert parse_subsection("!!b") == (None, "b")
    with pytest.raises(ValueError):
        parse_subsection("ab")
