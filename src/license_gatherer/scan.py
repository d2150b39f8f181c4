"""Filesystem scanning for license evidence.

Walks a package's files, honouring hidden-entry and ignore-file
conventions, and classifies every readable UTF-8 file against the license
corpus. Per-package rules can mark files as scanner checks (ignore) or as
addenda that govern a subtree.
"""

import fnmatch
import logging
import os
import stat
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional, Union

from license_gatherer.config import AddendumRule, IgnoreRule, PackageConfig
from license_gatherer.expression import license_id
from license_gatherer.models import LicenseEvidence, LicenseFileKind, dedup_evidence
from license_gatherer.store import Classifier, MatchKind

logger = logging.getLogger(__name__)

IGNORE_FILES = (".gitignore", ".ignore")

SKIPPED_DIRS = frozenset({"__pycache__"})

# Distribution bookkeeping files never carry license text of their own.
SKIPPED_NAMES = frozenset(
    {
        "RECORD",
        "WHEEL",
        "INSTALLER",
        "REQUESTED",
        "METADATA",
        "PKG-INFO",
        "direct_url.json",
        "entry_points.txt",
        "top_level.txt",
        "py.typed",
    }
)

SKIPPED_SUFFIXES = frozenset(
    {
        ".pyc", ".pyo", ".pyd", ".so", ".dll", ".dylib", ".exe", ".a", ".o",
        ".png", ".jpg", ".jpeg", ".gif", ".ico", ".bmp", ".webp",
        ".whl", ".egg", ".gz", ".bz2", ".xz", ".zip", ".tar", ".tgz",
        ".pdf", ".woff", ".woff2", ".ttf", ".otf", ".mo",
        ".db", ".sqlite", ".pem", ".crt",
    }
)


def _load_ignore_patterns(directory: Path, root: Path) -> list[tuple[str, str]]:
    base = directory.relative_to(root).as_posix()
    base = "" if base == "." else base
    patterns = []
    for name in IGNORE_FILES:
        ignore_file = directory / name
        if not ignore_file.is_file():
            continue
        try:
            with open(ignore_file, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#"):
                        patterns.append((base, line))
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Failed to read %s: %s", ignore_file, exc)
    return patterns


def _is_ignored(
    rel_path: str, name: str, is_dir: bool, patterns: list[tuple[str, str]]
) -> bool:
    """Check a path against gitignore-style patterns.

    Later patterns override earlier ones and "!" re-includes a path.
    Patterns containing a slash are anchored to the directory of the
    ignore file they came from; others match the entry name anywhere.
    """
    ignored = False
    for base, pattern in patterns:
        negate = pattern.startswith("!")
        if negate:
            pattern = pattern[1:]
        if pattern.endswith("/"):
            if not is_dir:
                continue
            pattern = pattern.rstrip("/")

        if base:
            if not rel_path.startswith(base + "/"):
                continue
            local = rel_path[len(base) + 1 :]
        else:
            local = rel_path

        if "/" in pattern:
            matched = fnmatch.fnmatchcase(local, pattern.lstrip("/"))
        else:
            matched = fnmatch.fnmatchcase(name, pattern)

        if matched:
            ignored = not negate
    return ignored


def walk_files(root: Path, max_depth: Optional[int] = None) -> Iterator[Path]:
    """Yield the regular files under root, in sorted order.

    Hidden entries, ignored paths and cache directories are skipped.
    Symbolic links are followed, but each real directory is only visited
    once. Special files such as named pipes are skipped.

    Args:
        root: Directory to walk.
        max_depth: Maximum directory depth below root, or None for no limit.

    Yields:
        Absolute paths of regular files.
    """
    visited: set[Path] = set()
    stack: list[tuple[Path, int, list[tuple[str, str]]]] = [(root, 0, [])]

    while stack:
        directory, depth, inherited = stack.pop()
        try:
            real = directory.resolve()
        except OSError as exc:
            logger.error("Unable to resolve %s: %s", directory, exc)
            continue
        if real in visited:
            continue
        visited.add(real)

        patterns = inherited + _load_ignore_patterns(directory, root)

        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as exc:
            logger.error("Unable to list %s: %s", directory, exc)
            continue

        subdirs = []
        for entry in entries:
            if entry.name.startswith("."):
                continue
            path = Path(entry.path)
            rel_path = path.relative_to(root).as_posix()

            try:
                mode = os.stat(path).st_mode
            except OSError as exc:
                logger.debug("Skipping %s: %s", path, exc)
                continue

            is_dir = stat.S_ISDIR(mode)
            if _is_ignored(rel_path, entry.name, is_dir, patterns):
                continue

            if is_dir:
                if entry.name in SKIPPED_DIRS:
                    continue
                if max_depth is None or depth < max_depth:
                    subdirs.append(path)
            elif stat.S_ISREG(mode):
                yield path
            else:
                logger.debug("Skipping special file %s", path)

        stack.extend((d, depth + 1, patterns) for d in reversed(subdirs))


def snip_contents(
    contents: str, start: Optional[int] = None, end: Optional[int] = None
) -> str:
    """Keep only lines [start, end) of contents; open bounds mean no limit."""
    if start is None and end is None:
        return contents
    lines = contents.splitlines()[start or 0 : end]
    return "".join(f"{line}\n" for line in lines)


def _same_license(expected: str, detected: str) -> bool:
    return (license_id(expected) or expected) == detected


class FilesystemScanner:
    """Produces license evidence from the files of a package.

    Attributes:
        classifier: Text classifier used on every candidate file.
        threshold: Minimum confidence for evidence to be kept.
        max_depth: Maximum directory depth to descend into.
    """

    def __init__(
        self,
        classifier: Classifier,
        threshold: float = 0.8,
        max_depth: Optional[int] = None,
    ) -> None:
        self.classifier = classifier
        self.threshold = min(max(threshold, 0.0), 1.0)
        self.max_depth = max_depth
        # Scores between the floor and the threshold are reported, not kept.
        self.confidence_floor = max(self.threshold - 0.5, 0.1)

    def scan(
        self,
        root: Path,
        rules: Optional[PackageConfig] = None,
        label: Optional[str] = None,
    ) -> list[LicenseEvidence]:
        """Scan a directory for license evidence.

        Args:
            root: Root directory of the package.
            rules: Per-package ignore and addendum rules.
            label: Name used for the package in log messages.

        Returns:
            Evidence sorted by expression, one entry per expression.
        """
        label = label or str(root)
        evidence = []
        for path in walk_files(root, self.max_depth):
            rel_path = PurePosixPath(path.relative_to(root).as_posix())
            if path.name in SKIPPED_NAMES or path.suffix.lower() in SKIPPED_SUFFIXES:
                logger.debug("%s: skipping non-text file %s", label, rel_path)
                continue
            found = self._scan_file(path, rel_path, rules, label)
            if found is not None:
                evidence.append(found)
        return dedup_evidence(evidence)

    def _match_rules(
        self, rel_path: PurePosixPath, rules: Optional[PackageConfig], label: str
    ) -> Union[IgnoreRule, AddendumRule, None, bool]:
        # Returns the matching rule, None for no rule, or False to skip.
        if rules is None:
            return None
        for rule in rules.ignore:
            if PurePosixPath(rule.license_file.as_posix()) == rel_path:
                return rule
        for rule in rules.additional:
            if PurePosixPath(rule.license_file.as_posix()) == rel_path:
                return rule
            if rel_path.is_relative_to(PurePosixPath(rule.root.as_posix())):
                logger.debug(
                    "%s: skipping %s, covered by addendum %s",
                    label,
                    rel_path,
                    rule.license_file,
                )
                return False
        return None

    def _scan_file(
        self,
        path: Path,
        rel_path: PurePosixPath,
        rules: Optional[PackageConfig],
        label: str,
    ) -> Optional[LicenseEvidence]:
        rule = self._match_rules(rel_path, rules, label)
        if rule is False:
            return None

        try:
            contents = path.read_bytes().decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("%s: skipping %s, not valid UTF-8", label, rel_path)
            return None
        except OSError as exc:
            logger.error("%s: unable to read %s: %s", label, rel_path, exc)
            return None

        if rule is not None:
            contents = snip_contents(contents, rule.license_start, rule.license_end)

        found = self.classifier.classify(contents, self.confidence_floor)
        if found is None:
            return None

        if found.confidence < self.threshold:
            logger.debug(
                "%s: %s matched %s with confidence %.2f, below threshold %.2f",
                label,
                rel_path,
                found.name,
                found.confidence,
                self.threshold,
            )
            return None

        identifier = license_id(found.name)
        if identifier is None:
            logger.error(
                "%s: %s matched license '%s' which is not a known SPDX identifier",
                label,
                rel_path,
                found.name,
            )
            return None

        if rule is not None:
            if not _same_license(rule.license, identifier):
                logger.error(
                    "%s: %s was expected to be '%s' but was detected as '%s'",
                    label,
                    rel_path,
                    rule.license,
                    identifier,
                )
            elif isinstance(rule, IgnoreRule):
                logger.debug(
                    "%s: ignoring %s, validated as '%s'", label, rel_path, identifier
                )
                return None

        addendum = rule if isinstance(rule, AddendumRule) else None
        if found.kind is MatchKind.HEADER:
            kind = LicenseFileKind.HEADER
        elif addendum is not None:
            kind = LicenseFileKind.ADDENDUM_TEXT
        else:
            kind = LicenseFileKind.TEXT

        return LicenseEvidence(
            license_expr=identifier,
            path=Path(rel_path),
            confidence=found.confidence,
            kind=kind,
            text=None if kind is LicenseFileKind.HEADER else contents,
            addendum_root=addendum.root if addendum is not None else None,
        )
