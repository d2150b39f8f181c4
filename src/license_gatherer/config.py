"""Configuration models and loading for license_gatherer.

Configuration lives in a ``license-gatherer.toml`` file, found by walking
up from the directory of the manifest being scanned. Keys are written in
kebab-case in TOML and exposed as snake_case attributes.
"""

import logging
import re
import tomllib
from pathlib import Path
from typing import Any, Optional

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import canonicalize_name
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from license_gatherer.errors import ConfigError, ExpressionError
from license_gatherer.expression import Expression, Licensee
from license_gatherer.models import Package

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "license-gatherer.toml"
DEFAULT_CONFIDENCE_THRESHOLD = 0.8
DEFAULT_CLEARLY_DEFINED_TIMEOUT_SECS = 30

_SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class _Model(BaseModel):
    model_config = {
        "extra": "forbid",
        "alias_generator": _kebab,
        "populate_by_name": True,
    }


def _parse_licensees(values: Any) -> Any:
    if not isinstance(values, list):
        return values
    licensees = []
    for value in values:
        if isinstance(value, str):
            try:
                value = Licensee.parse(value)
            except ExpressionError as e:
                raise ValueError(str(e)) from e
        licensees.append(value)
    return licensees


def _validate_expression(value: str) -> str:
    try:
        Expression.parse(value)
    except ExpressionError as e:
        raise ValueError(str(e)) from e
    return value


class ClarificationFile(_Model):
    """A checksummed file, or part of one, that proves a license.

    Attributes:
        path: Path relative to the package root (or repository root for
            remote files).
        license: Expression for this file, overriding the clarification's.
        checksum: Hex SHA-256 of the selected subsection.
        start: Text the subsection starts with.
        end: Text the subsection ends with.
    """

    path: Path
    license: Optional[str] = None
    checksum: str
    start: Optional[str] = None
    end: Optional[str] = None

    @field_validator("checksum")
    @classmethod
    def check_checksum(cls, value: str) -> str:
        if not _SHA256_RE.match(value):
            raise ValueError(
                f"checksum '{value}' must be 64 hexadecimal characters"
            )
        return value

    @field_validator("license")
    @classmethod
    def check_license(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _validate_expression(value)


class Clarification(_Model):
    """A manual, checksum-verified override of a package's evidence.

    Attributes:
        license: Expression the clarified files prove.
        override_git_commit: Commit to fetch remote files at, for packages
            that were published without VCS information.
        files: Files read from the package root.
        git: Files fetched from the package's upstream repository.
    """

    license: str
    override_git_commit: Optional[str] = None
    files: list[ClarificationFile] = Field(default_factory=list)
    git: list[ClarificationFile] = Field(default_factory=list)

    @field_validator("license")
    @classmethod
    def check_license(cls, value: str) -> str:
        return _validate_expression(value)

    @model_validator(mode="after")
    def require_files(self) -> "Clarification":
        if not self.files and not self.git:
            raise ValueError("a clarification must reference at least one file")
        return self


class IgnoreRule(_Model):
    """A license file that is only used to validate the scanner."""

    license: str
    license_file: Path
    license_start: Optional[int] = None
    license_end: Optional[int] = None

    @field_validator("license")
    @classmethod
    def check_license(cls, value: str) -> str:
        return _validate_expression(value)


class AddendumRule(_Model):
    """A license file that governs a subtree of the package."""

    root: Path
    license: str
    license_file: Path
    license_start: Optional[int] = None
    license_end: Optional[int] = None

    @field_validator("license")
    @classmethod
    def check_license(cls, value: str) -> str:
        return _validate_expression(value)


class PackageConfig(_Model):
    """Per-package configuration.

    Attributes:
        accepted: Licensees accepted for this package in addition to the
            global list.
        clarify: Clarification to apply to this package.
        ignore: Files whose detected license is only checked, not kept.
        additional: Addendum files that govern a subtree.
    """

    accepted: list[Licensee] = Field(default_factory=list)
    clarify: Optional[Clarification] = None
    ignore: list[IgnoreRule] = Field(default_factory=list)
    additional: list[AddendumRule] = Field(default_factory=list)

    @field_validator("accepted", mode="before")
    @classmethod
    def parse_accepted(cls, values: Any) -> Any:
        return _parse_licensees(values)


class WorkaroundEntry(_Model):
    """A built-in workaround enabled by the user.

    Attributes:
        name: Name of the workaround in the registry.
        version: Optional PEP 440 specifier restricting the package
            versions the workaround applies to.
    """

    name: str
    version: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def from_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        return data

    @field_validator("version")
    @classmethod
    def check_version(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                SpecifierSet(value)
            except InvalidSpecifier as e:
                raise ValueError(f"invalid version specifier '{value}'") from e
        return value

    def matches_version(self, package: Package) -> bool:
        if self.version is None:
            return True
        return SpecifierSet(self.version).contains(package.version, prereleases=True)


class PrivateConfig(_Model):
    """Handling of packages that are never published publicly.

    Attributes:
        ignore: Mark unpublished packages as ignored.
        registries: Private registries; packages only published to these
            are treated as unpublished.
    """

    ignore: bool = False
    registries: list[str] = Field(default_factory=list)


class Config(_Model):
    """Top-level configuration."""

    accepted: list[Licensee] = Field(default_factory=list)
    workarounds: list[WorkaroundEntry] = Field(default_factory=list)
    private: PrivateConfig = Field(default_factory=PrivateConfig)
    disallow_clearly_defined: bool = False
    clearly_defined_timeout_secs: int = Field(
        default=DEFAULT_CLEARLY_DEFINED_TIMEOUT_SECS, ge=1
    )
    max_depth: Optional[int] = Field(default=None, ge=0)
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    extras: list[str] = Field(default_factory=list)
    targets: list[dict[str, str]] = Field(default_factory=list)
    packages: dict[str, PackageConfig] = Field(default_factory=dict)

    @field_validator("accepted", mode="before")
    @classmethod
    def parse_accepted(cls, values: Any) -> Any:
        return _parse_licensees(values)

    @field_validator("confidence_threshold")
    @classmethod
    def clamp_threshold(cls, value: float) -> float:
        return min(max(value, 0.0), 1.0)

    @field_validator("packages")
    @classmethod
    def canonical_keys(cls, value: dict[str, PackageConfig]) -> dict[str, PackageConfig]:
        return {canonicalize_name(name): cfg for name, cfg in value.items()}

    def package_config(self, package: Package) -> Optional[PackageConfig]:
        """Return the configuration for a package, if any."""
        return self.packages.get(package.canonical_name)


def find_config(start: Path) -> Optional[Path]:
    """Walk up from start looking for a configuration file.

    Args:
        start: A file or directory to start the search from.

    Returns:
        Path of the first configuration file found, or None.
    """
    directory = start if start.is_dir() else start.parent
    for candidate in [directory, *directory.parents]:
        path = candidate / CONFIG_FILENAME
        if path.is_file():
            return path
    return None


def load_config(
    path: Optional[Path] = None,
    manifest_path: Optional[Path] = None,
) -> Config:
    """Load and validate the configuration.

    Args:
        path: Explicit configuration file. Must exist when given.
        manifest_path: Manifest being scanned; its directory is the start
            of the search when no explicit path is given.

    Returns:
        The validated configuration, or defaults when no file is found.

    Raises:
        ConfigError: If the file cannot be read, is not valid TOML, or
            fails validation.
    """
    if path is None and manifest_path is not None:
        path = find_config(manifest_path.resolve())
        if path is None:
            logger.warning(
                "no %s found above %s, using default configuration",
                CONFIG_FILENAME,
                manifest_path,
            )
            return Config()
    elif path is None:
        return Config()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"unable to read config '{path}': {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"config '{path}' is not valid TOML: {e}") from e

    try:
        config = Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid config '{path}':\n{e}") from e

    logger.debug("loaded configuration from %s", path)
    return config
