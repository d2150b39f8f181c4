"""Tests for the diagnostics source map and renderer."""

from io import StringIO

from rich.console import Console

from license_gatherer.diagnostics import (
    Diagnostic,
    Files,
    Label,
    LabelStyle,
    Severity,
    render_diagnostic,
)


class TestFiles:
    """Test the Files source map."""

    def test_ids_are_sequential(self) -> None:
        files = Files()
        assert files.add("a", "one") == 0
        assert files.add("b", "two") == 1
        assert len(files) == 2
        assert files.name(1) == "b"
        assert files.source(0) == "one"

    def test_location(self) -> None:
        files = Files()
        file_id = files.add("m", "first\nsecond line\nthird")
        assert files.location(file_id, 0) == (1, 1)
        assert files.location(file_id, 6) == (2, 1)
        assert files.location(file_id, 13) == (2, 8)
        assert files.line(file_id, 2) == "second line"
        assert files.line(file_id, 3) == "third"


def test_constructors() -> None:
    assert Diagnostic.error("boom").severity is Severity.ERROR
    assert Diagnostic.warning("hmm").labels == []


def test_render_points_at_span() -> None:
    files = Files()
    file_id = files.add("foo/METADATA", "Name: foo\nLicense: GPL-3.0-only\n")
    diagnostic = Diagnostic.error(
        "failed to satisfy license requirements",
        [Label(LabelStyle.SECONDARY, file_id, 19, 31)],
    )

    output = StringIO()
    console = Console(file=output, width=120, color_system=None)
    render_diagnostic(console, files, diagnostic)

    text = output.getvalue()
    assert "error: failed to satisfy license requirements" in text
    assert "foo/METADATA:2:10" in text
    assert "2 │ License: GPL-3.0-only" in text
    assert " " * 9 + "-" * 12 in text
