"""Evidence sources, one per gathering pass.

Sources run in priority order: private packages, built-in workarounds,
user clarifications, ClearlyDefined, and finally the filesystem.
"""

from license_gatherer.sources.base import (
    EvidenceSource,
    GatherContext,
    declared_license,
)
from license_gatherer.sources.clarified import ClarifiedSource
from license_gatherer.sources.clearlydefined import ClearlyDefinedSource
from license_gatherer.sources.filesystem import FilesystemSource
from license_gatherer.sources.private import PrivateSource
from license_gatherer.sources.workarounds import WorkaroundSource

__all__ = [
    "EvidenceSource",
    "GatherContext",
    "declared_license",
    "ClarifiedSource",
    "ClearlyDefinedSource",
    "FilesystemSource",
    "PrivateSource",
    "WorkaroundSource",
]
