"""Dependency graph construction from a pyproject.toml and the environment.

The graph is the transitive closure of the project's requirements over
the installed distributions, with environment markers evaluated for the
configured targets. Each installed distribution becomes a Package carrying
its declared license, provenance and the directory its files live in.
"""

import json
import logging
import tomllib
from collections import deque
from importlib import metadata
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import unquote, urlparse

from packaging.markers import UndefinedEnvironmentName
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from license_gatherer.errors import ExpressionError, GraphError
from license_gatherer.expression import Expression
from license_gatherer.models import Package, PackageSource

logger = logging.getLogger(__name__)

# Trove classifier and legacy License field names that map to one SPDX id.
LICENSE_MAP = {
    "Apache 2.0": "Apache-2.0",
    "Apache License 2.0": "Apache-2.0",
    "Apache License, Version 2.0": "Apache-2.0",
    "Apache Software License": "Apache-2.0",
    "MIT License": "MIT",
    "MIT No Attribution License (MIT-0)": "MIT-0",
    "BSD 3-Clause License": "BSD-3-Clause",
    "BSD 2-Clause License": "BSD-2-Clause",
    "ISC License (ISCL)": "ISC",
    "ISC License": "ISC",
    "Mozilla Public License 2.0 (MPL 2.0)": "MPL-2.0",
    "Mozilla Public License 2.0": "MPL-2.0",
    "Python Software Foundation License": "PSF-2.0",
    "The Unlicense (Unlicense)": "Unlicense",
    "zlib/libpng License": "Zlib",
    "Boost Software License 1.0 (BSL-1.0)": "BSL-1.0",
    "GNU General Public License v2 (GPLv2)": "GPL-2.0-only",
    "GNU General Public License v3 (GPLv3)": "GPL-3.0-only",
    "GNU Lesser General Public License v3 (LGPLv3)": "LGPL-3.0-only",
    "GNU Affero General Public License v3": "AGPL-3.0-only",
}

REPOSITORY_URL_LABELS = (
    "source",
    "repository",
    "source code",
    "code",
    "github",
    "gitlab",
    "homepage",
)
GIT_HOSTS = ("github.com", "gitlab.com", "bitbucket.org")

PRIVATE_CLASSIFIER = "Private :: Do Not Upload"


def _spdx(value: str) -> Optional[str]:
    value = value.strip()
    value = LICENSE_MAP.get(value, value)
    try:
        Expression.parse(value)
    except ExpressionError:
        return None
    return value


def declared_license(meta) -> Optional[str]:
    """Extract the declared license of a distribution's metadata.

    License-Expression wins; otherwise a single-line License field that
    is (or maps to) a valid expression; otherwise a single license trove
    classifier that maps to an SPDX identifier.

    Args:
        meta: The distribution's metadata message.

    Returns:
        The declared expression text, or None.
    """
    expression = meta.get("License-Expression")
    if expression:
        # Kept verbatim, even if malformed, so resolution can report it.
        return expression.strip()

    field = meta.get("License")
    if field and "\n" not in field.strip() and field.strip().upper() != "UNKNOWN":
        found = _spdx(field)
        if found is not None:
            return found

    classifiers = [
        c for c in (meta.get_all("Classifier") or []) if c.startswith("License :: ")
    ]
    if len(classifiers) == 1:
        return _spdx(classifiers[0].split(" :: ")[-1])
    return None


def repository_url(meta) -> Optional[str]:
    """Return the first Project-URL pointing at a recognized git host."""
    urls = {}
    for entry in meta.get_all("Project-URL") or []:
        label, _, url = entry.partition(",")
        urls.setdefault(label.strip().lower(), url.strip())
    if meta.get("Home-page"):
        urls.setdefault("homepage", meta["Home-page"].strip())

    for label in REPOSITORY_URL_LABELS:
        url = urls.get(label)
        if url and any(host in url.lower() for host in GIT_HOSTS):
            return url
    return None


def _dist_info_dir(dist: metadata.Distribution) -> Optional[Path]:
    """Return the .dist-info directory of an installed distribution.

    RECORD lists the METADATA file relative to the install location.
    Without a RECORD, the install location is searched for the directory
    whose normalized name and version match the distribution.
    """
    for file in dist.files or ():
        if file.name == "METADATA" and file.parent.name.endswith(".dist-info"):
            return Path(dist.locate_file(file)).parent

    site = Path(dist.locate_file(""))
    name = canonicalize_name(dist.metadata["Name"] or "")
    for candidate in sorted(site.glob("*.dist-info")):
        dist_name, _, version = candidate.name[: -len(".dist-info")].rpartition("-")
        if canonicalize_name(dist_name) == name and version == dist.version:
            return candidate
    return None


def _file_url_path(url: str) -> Path:
    return Path(unquote(urlparse(url).path))


def package_from_distribution(dist: metadata.Distribution) -> Package:
    """Build a Package from an installed distribution.

    Provenance comes from the PEP 610 direct_url.json record: no record
    means the distribution came from a registry, a VCS record means git
    (with its commit), a directory record means a local project.
    """
    meta = dist.metadata
    dist_info = _dist_info_dir(dist)
    root = dist_info
    source = PackageSource.REGISTRY
    repository = repository_url(meta)
    vcs_commit = None

    direct_url = dist.read_text("direct_url.json")
    if direct_url:
        try:
            record = json.loads(direct_url)
        except ValueError:
            logger.warning("%s has a malformed direct_url.json", meta["Name"])
            record = {}
        url = record.get("url", "")
        if "vcs_info" in record:
            source = PackageSource.GIT
            vcs_commit = record["vcs_info"].get("commit_id")
            repository = url[4:] if url.startswith("git+") else url
        elif "dir_info" in record and url.startswith("file:"):
            source = PackageSource.LOCAL
            root = _file_url_path(url)
        else:
            source = PackageSource.UNKNOWN

    classifiers = meta.get_all("Classifier") or []
    return Package(
        name=meta["Name"],
        version=dist.version,
        license=declared_license(meta),
        manifest_path=dist_info / "METADATA" if dist_info is not None else None,
        root=root,
        source=source,
        repository=repository,
        vcs_commit=vcs_commit,
        publish=() if PRIVATE_CLASSIFIER in classifiers else None,
    )


def _environments(targets: Optional[list[dict[str, str]]], extra: str) -> list[dict]:
    return [{**target, "extra": extra} for target in (targets or [{}])]


def _wanted(
    requirement: Requirement,
    extras: Iterable[str],
    targets: Optional[list[dict[str, str]]],
) -> bool:
    if requirement.marker is None:
        return True
    for extra in ("", *extras):
        for env in _environments(targets, extra):
            try:
                if requirement.marker.evaluate(env):
                    return True
            except UndefinedEnvironmentName:
                continue
    return False


def _read_project(manifest_path: Path) -> dict:
    if manifest_path.is_dir():
        manifest_path = manifest_path / "pyproject.toml"
    try:
        with open(manifest_path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise GraphError(f"unable to read manifest '{manifest_path}': {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise GraphError(f"manifest '{manifest_path}' is not valid TOML: {e}") from e

    project = data.get("project")
    if not isinstance(project, dict) or "name" not in project:
        raise GraphError(f"manifest '{manifest_path}' has no [project] name")
    return project


def build(
    manifest_path: Path,
    extras: Optional[list[str]] = None,
    targets: Optional[list[dict[str, str]]] = None,
    search_path: Optional[list[str]] = None,
) -> list[Package]:
    """Build the sorted, deduplicated package list for a project.

    Args:
        manifest_path: The project's pyproject.toml, or its directory.
        extras: Optional dependency groups of the project to include.
        targets: Marker environment overrides; a requirement is kept if
            its marker matches any of them. None means the running
            interpreter.
        search_path: Directories to look for distributions in, instead
            of sys.path.

    Returns:
        One Package per installed distribution reached, sorted.

    Raises:
        GraphError: If the manifest cannot be read.
    """
    project = _read_project(manifest_path)
    extras = extras or []

    if search_path is None:
        installed = metadata.distributions()
    else:
        installed = metadata.distributions(path=search_path)
    index: dict[str, metadata.Distribution] = {}
    for dist in installed:
        name = dist.metadata["Name"]
        if name:
            index.setdefault(canonicalize_name(name), dist)

    requirements = list(project.get("dependencies", []))
    optional = project.get("optional-dependencies", {})
    for extra in extras:
        if extra not in optional:
            logger.warning("project has no optional dependency group '%s'", extra)
        requirements.extend(optional.get(extra, []))

    root_name = canonicalize_name(project["name"])
    queue: deque[tuple[str, set[str]]] = deque()
    if root_name in index:
        queue.append((root_name, set(extras)))
    else:
        logger.debug("project '%s' is not installed", project["name"])

    packages: dict[str, Package] = {}
    seen_extras: dict[str, set[str]] = {}

    def enqueue(raw: str, parent: str) -> None:
        try:
            requirement = Requirement(raw)
        except InvalidRequirement as e:
            logger.warning("skipping invalid requirement '%s' of %s: %s", raw, parent, e)
            return
        if not _wanted(requirement, parent_extras.get(parent, ()), targets):
            return
        name = canonicalize_name(requirement.name)
        if name not in index:
            logger.warning(
                "'%s' required by %s is not installed, skipping", requirement.name, parent
            )
            return
        wanted = set(requirement.extras)
        if name in seen_extras and wanted <= seen_extras[name]:
            return
        queue.append((name, wanted))

    parent_extras: dict[str, set[str]] = {root_name: set(extras)}
    for raw in requirements:
        enqueue(raw, root_name)

    while queue:
        name, wanted = queue.popleft()
        new_extras = wanted - seen_extras.get(name, set())
        if name in seen_extras and not new_extras:
            continue
        seen_extras.setdefault(name, set()).update(wanted)
        parent_extras[name] = seen_extras[name]

        dist = index[name]
        if name not in packages:
            packages[name] = package_from_distribution(dist)
        for raw in dist.requires or []:
            enqueue(raw, name)

    return sorted(packages.values())
