from typing import Optional

import aiohttp

DEFAULT_TIMEOUT_SECS = 10


class HttpClient:
    """Base class for components that make HTTP requests.

    Manages a lazily created aiohttp.ClientSession for connection pooling
    and reuse. A session passed in by the caller is shared and is not
    closed by this client.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = DEFAULT_TIMEOUT_SECS,
    ) -> None:
        """Initialize the client.

        Args:
            session: Optional session to use instead of creating one.
            timeout: Total timeout, in seconds, for each request.
        """
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session.

        Returns:
            The shared aiohttp ClientSession.
        """
        if self._session is None or self._session.closed:
            self._session = self._create_session()
            self._owns_session = True
        return self._session

    def _create_session(self) -> aiohttp.ClientSession:
        """Create a new aiohttp.ClientSession.

        Returns:
            A session with DNS caching and a bounded total timeout.
        """
        connector = aiohttp.TCPConnector(ttl_dns_cache=300)
        return aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )

    async def close(self) -> None:
        """Close the aiohttp session if this client created it."""
        if (
            self._owns_session
            and self._session is not None
            and not self._session.closed
        ):
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
