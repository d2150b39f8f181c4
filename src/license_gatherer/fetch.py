"""Retrieval of license files from git hosts.

Remote files are fetched through the githack raw-file CDN for the public
git hosts it mirrors, and cached by (repository, revision, path) because
many packages built from one repository share the same license files.
"""

import asyncio
import enum
import logging
import threading
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import urlparse

import aiohttp

from license_gatherer.cache import RemoteFileCache, cache_key
from license_gatherer.config import ClarificationFile
from license_gatherer.errors import FetchError
from license_gatherer.http import HttpClient
from license_gatherer.models import Package, PackageSource

logger = logging.getLogger(__name__)


class GitHostFlavor(enum.Enum):
    """The git hosts remote license files can be fetched from."""

    GITHUB = "github.com"
    GITLAB = "gitlab.com"
    BITBUCKET = "bitbucket.org"

    @classmethod
    def from_host(cls, host: str) -> Optional["GitHostFlavor"]:
        host = host.lower()
        if host.startswith("www."):
            host = host[4:]
        for flavor in cls:
            if flavor.value == host:
                return flavor
        return None

    def raw_url(self, project: str, revision: str, path: str) -> str:
        """Return the CDN URL of a file at a revision of a project."""
        if self is GitHostFlavor.GITHUB:
            return f"https://rawcdn.githack.com/{project}/{revision}/{path}"
        if self is GitHostFlavor.GITLAB:
            return f"https://glcdn.githack.com/{project}/-/raw/{revision}/{path}"
        return f"https://bbcdn.githack.com/{project}/raw/{revision}/{path}"


def parse_repository(url: str) -> tuple[GitHostFlavor, str]:
    """Split a repository URL into its host flavor and org/repo path.

    Args:
        url: Repository URL, e.g. "https://github.com/pypa/packaging.git".
            A "git+" scheme prefix is accepted.

    Returns:
        The host flavor and the "org/repo" project path.

    Raises:
        FetchError: If the host is not supported or the path has no
            org/repo component.
    """
    if url.startswith("git+"):
        url = url[4:]
    parsed = urlparse(url)
    flavor = GitHostFlavor.from_host(parsed.hostname or "")
    if flavor is None:
        raise FetchError(f"unsupported git host for repository '{url}'")

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise FetchError(f"repository '{url}' has no org/repo path")

    repo = parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return flavor, f"{parts[0]}/{repo}"


class GitCache(HttpClient):
    """Fetches license files for packages, caching remote contents.

    The in-memory map is guarded by a lock that is only held to read or
    write the map; fetching happens outside it, so two concurrent misses
    for the same file both fetch and the later write wins.

    Attributes:
        store: Optional persistent cache consulted before the network.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10,
        store: Optional[RemoteFileCache] = None,
    ) -> None:
        super().__init__(session=session, timeout=timeout)
        self.store = store
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()

    async def retrieve(
        self,
        package: Package,
        file: ClarificationFile,
        commit_override: Optional[str] = None,
    ) -> str:
        """Retrieve a clarification file for a package.

        Locally sourced packages read the file relative to their root;
        every other package fetches it from its upstream repository at the
        override commit, or at the commit recorded when it was built.

        Raises:
            FetchError: If the file cannot be read or fetched.
        """
        if package.source is PackageSource.LOCAL and package.scan_root is not None:
            return await asyncio.to_thread(read_local, package.scan_root, file.path)

        if not package.repository:
            raise FetchError(f"package '{package}' has no repository URL")

        revision = commit_override or package.vcs_commit
        if not revision:
            raise FetchError(
                f"package '{package}' has no recorded VCS commit and no "
                "override commit was given"
            )

        return await self.retrieve_remote(
            package.repository, revision, PurePosixPath(file.path).as_posix()
        )

    async def retrieve_remote(self, repository: str, revision: str, path: str) -> str:
        """Retrieve a file at a revision of a repository.

        Raises:
            FetchError: If the repository host is unsupported or the fetch
                fails.
        """
        key = cache_key(repository, revision, path)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        contents = None
        if self.store is not None:
            contents = self.store.get(repository, revision, path)

        if contents is None:
            flavor, project = parse_repository(repository)
            contents = await self._fetch(flavor.raw_url(project, revision, path))
            if self.store is not None:
                self.store.set(repository, revision, path, contents)

        with self._lock:
            self._cache[key] = contents
        return contents

    async def _fetch(self, url: str) -> str:
        logger.debug("Fetching %s", url)
        try:
            session = await self._get_session()
            async with session.get(url) as response:
                if response.status != 200:
                    raise FetchError(f"{url} returned status {response.status}")
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"failed to fetch {url}: {e}") from e


def read_local(root: Path, relative: Path) -> str:
    """Read a UTF-8 file relative to a package root."""
    path = root / relative
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FetchError(f"unable to read '{path}': {e}") from e
