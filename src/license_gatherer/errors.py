"""Exception hierarchy for license_gatherer.

Per-package failures are raised as one of these types, caught at the
boundary of the gathering pass that triggered them, logged, and never
allowed to abort a whole batch.
"""

from typing import Optional


class LicenseGathererError(Exception):
    """Base class for every error raised by license_gatherer."""


class ConfigError(LicenseGathererError):
    """The configuration file could not be read or failed validation."""


class ExpressionError(LicenseGathererError):
    """A license expression could not be parsed or validated.

    Attributes:
        span: Optional (start, end) character offsets of the offending
            portion of the expression text.
    """

    def __init__(self, message: str, span: Optional[tuple[int, int]] = None) -> None:
        super().__init__(message)
        self.span = span


class ClarificationError(LicenseGathererError):
    """A clarification could not be applied to a package."""


class ChecksumError(ClarificationError):
    """A clarified subsection did not match its declared checksum."""


class FetchError(LicenseGathererError):
    """A remote file could not be retrieved."""


class CorpusError(LicenseGathererError):
    """The license text corpus is missing or unreadable."""


class GraphError(LicenseGathererError):
    """The dependency graph could not be built from the manifest."""
