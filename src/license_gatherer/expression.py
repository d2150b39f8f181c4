"""SPDX license expression support built on license-expression.

The license-expression library parses and validates expressions against
the SPDX license list. This module adds the operations resolution needs
on top of its AST: evaluating an expression against a predicate,
collecting the leaf requirements that fail it, and reducing a satisfied
expression to the smallest set of preferred terms.
"""

import itertools
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Iterable, Optional, Sequence

from license_expression import ExpressionError as SpdxExpressionError
from license_expression import ExpressionParseError, get_spdx_licensing

from license_gatherer.errors import ExpressionError

logger = logging.getLogger(__name__)

SPDX = get_spdx_licensing()

_LATER_SUFFIXES = ("-or-later", "+")
_ONLY_SUFFIX = "-only"

# User-defined identifiers are valid SPDX without being on the license list.
_USER_DEFINED_RE = re.compile(r"^(DocumentRef-[A-Za-z0-9.-]+:)?LicenseRef-[A-Za-z0-9.-]+$")


def _base_license(key: str) -> str:
    key = key.lower()
    for suffix in _LATER_SUFFIXES + (_ONLY_SUFFIX,):
        if key.endswith(suffix):
            return key[: -len(suffix)]
    return key


@dataclass(frozen=True)
class LicenseReq:
    """A single leaf requirement of an expression.

    Attributes:
        license: SPDX license identifier.
        exception: Optional SPDX exception identifier joined with WITH.
    """

    license: str
    exception: Optional[str] = None

    def __str__(self) -> str:
        if self.exception:
            return f"{self.license} WITH {self.exception}"
        return self.license


@dataclass(frozen=True)
class Licensee:
    """A license term an operator has accepted.

    The "-only", "-or-later" and "+" spellings of the same license are
    treated as the same term.
    """

    license: str
    exception: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "Licensee":
        """Parse a licensee such as "MIT" or "Apache-2.0 WITH LLVM-exception".

        Raises:
            ExpressionError: If the text is not a single known license term.
        """
        expression = Expression.parse(text)
        reqs = expression.requirements()
        if len(reqs) != 1 or not expression.is_leaf:
            raise ExpressionError(f"'{text}' is not a single license term")
        return cls(reqs[0].license, reqs[0].exception)

    def satisfies(self, req: LicenseReq) -> bool:
        if _base_license(self.license) != _base_license(req.license):
            return False
        mine = self.exception.lower() if self.exception else None
        theirs = req.exception.lower() if req.exception else None
        return mine == theirs

    def __str__(self) -> str:
        return str(LicenseReq(self.license, self.exception))


@dataclass(frozen=True)
class FailedRequirement:
    """A leaf requirement that an evaluation rejected.

    Attributes:
        req: The rejected requirement.
        span: (start, end) character offsets of the requirement inside the
            expression text.
    """

    req: LicenseReq
    span: tuple[int, int]


def _to_req(node) -> LicenseReq:
    license_symbol = getattr(node, "license_symbol", None)
    if license_symbol is not None:
        return LicenseReq(license_symbol.key, node.exception_symbol.key)
    return LicenseReq(node.key)


class Expression:
    """A parsed, validated SPDX license expression.

    Attributes:
        text: The expression exactly as it was written.
    """

    def __init__(self, text: str, tree) -> None:
        self.text = text
        self._tree = tree

    @classmethod
    def parse(cls, text: str) -> "Expression":
        """Parse and validate an expression.

        Every identifier must be a known SPDX license or exception, or a
        user-defined LicenseRef.

        Raises:
            ExpressionError: With the span of the offending token when the
                text is empty, malformed, or names an unknown license.
        """
        if not text or not text.strip():
            raise ExpressionError("empty license expression", (0, len(text or "")))

        try:
            tree = SPDX.parse(text)
        except ExpressionParseError as e:
            position = max(getattr(e, "position", 0) or 0, 0)
            token = getattr(e, "token_string", "") or ""
            raise ExpressionError(
                f"invalid license expression: {e}", (position, position + len(token))
            ) from e
        except SpdxExpressionError as e:
            raise ExpressionError(
                f"invalid license expression: {e}", (0, len(text))
            ) from e

        if tree is None:
            raise ExpressionError("empty license expression", (0, len(text)))

        unknown = [
            key
            for key in SPDX.unknown_license_keys(tree)
            if not _USER_DEFINED_RE.match(key)
        ]
        if unknown:
            key = unknown[0]
            raise ExpressionError(
                f"unknown license identifier '{key}'", _locate(text, key)
            )

        return cls(text, tree)

    @property
    def is_leaf(self) -> bool:
        return not isinstance(self._tree, (SPDX.AND, SPDX.OR))

    def requirements(self) -> list[LicenseReq]:
        """Return the distinct leaf requirements in order of appearance."""
        seen: list[LicenseReq] = []
        for req in self._leaves(self._tree):
            if req not in seen:
                seen.append(req)
        return seen

    def _leaves(self, node) -> Iterable[LicenseReq]:
        if isinstance(node, (SPDX.AND, SPDX.OR)):
            for arg in node.args:
                yield from self._leaves(arg)
        else:
            yield _to_req(node)

    def evaluate(self, predicate: Callable[[LicenseReq], bool]) -> bool:
        """Evaluate the expression with each leaf decided by predicate."""
        return self._evaluate(self._tree, predicate)

    def _evaluate(self, node, predicate: Callable[[LicenseReq], bool]) -> bool:
        if isinstance(node, SPDX.AND):
            return all(self._evaluate(arg, predicate) for arg in node.args)
        if isinstance(node, SPDX.OR):
            return any(self._evaluate(arg, predicate) for arg in node.args)
        return predicate(_to_req(node))

    def evaluate_with_failures(
        self, predicate: Callable[[LicenseReq], bool]
    ) -> list[FailedRequirement]:
        """Evaluate the expression and report the requirements that failed.

        Returns:
            An empty list when the expression is satisfied, otherwise every
            distinct leaf the predicate rejected, with its span in text.
        """
        if self.evaluate(predicate):
            return []
        return [
            FailedRequirement(req, _locate(self.text, str(req)))
            for req in self.requirements()
            if not predicate(req)
        ]

    def minimized_requirements(
        self, accepted: Sequence[Licensee]
    ) -> list[LicenseReq]:
        """Reduce the expression to the smallest preferred satisfying set.

        Each requirement is ranked by the position of the first accepted
        licensee that satisfies it; the first combination in that order,
        smallest first, that satisfies the whole expression wins.

        Args:
            accepted: Priority-ordered accepted licensees.

        Raises:
            ExpressionError: If no combination of accepted terms satisfies
                the expression.
        """
        ranked: list[tuple[int, str, LicenseReq]] = []
        for req in self.requirements():
            for index, licensee in enumerate(accepted):
                if licensee.satisfies(req):
                    ranked.append((index, str(req), req))
                    break
        ranked.sort(key=lambda r: (r[0], r[1]))
        candidates = [req for _, _, req in ranked]

        for size in range(1, len(candidates) + 1):
            for combo in itertools.combinations(candidates, size):
                chosen = set(combo)
                if self.evaluate(lambda r: r in chosen):
                    return list(combo)

        raise ExpressionError(
            f"accepted licenses cannot satisfy '{self.text}'", (0, len(self.text))
        )

    def __str__(self) -> str:
        return str(self._tree)

    def __repr__(self) -> str:
        return f"Expression({self.text!r})"


def _locate(text: str, needle: str) -> tuple[int, int]:
    # Identifiers are matched case-insensitively on token boundaries; a
    # rendering that differs from the source falls back to the whole text.
    parts = [re.escape(p) for p in needle.split(" WITH ")]
    pattern = r"\s+WITH\s+".join(parts)
    match = re.search(
        rf"(?<![\w.+-]){pattern}(?![\w.+-])", text, flags=re.IGNORECASE
    )
    if match is None:
        return (0, len(text))
    return match.span()


@lru_cache(maxsize=1024)
def license_id(name: str) -> Optional[str]:
    """Map a license name to its canonical SPDX identifier.

    Args:
        name: Candidate identifier, e.g. a classifier match name.

    Returns:
        The canonical identifier, or None if it is not a single known
        SPDX license.
    """
    try:
        expression = Expression.parse(name)
    except ExpressionError:
        return None
    if not expression.is_leaf:
        return None
    return str(expression.requirements()[0])

