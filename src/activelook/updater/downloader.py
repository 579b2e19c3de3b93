"""HTTP access to the update server."""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from ..exceptions import AbortedByCaller, ClientError, DecodeError, InvalidToken, ServerError
from ..protocol.queue import parse_hex_script

_LOGGER = logging.getLogger(__name__)


class Downloader:
    """Fetches catalog entries and update artifacts.

    Failures are classified as ClientError (no response), InvalidToken
    (HTTP 403), ServerError (any other non-2xx) or DecodeError (payload
    does not parse). After :meth:`abort` every pending and future request
    raises AbortedByCaller instead of returning.
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
            self,
            session: aiohttp.ClientSession | None = None,
            timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the downloader.

        Args:
            session: Shared aiohttp session; one is created (and owned) if omitted
            timeout: Total timeout of one request in seconds (default: 30)
        """
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout
        self._tasks: set[asyncio.Task] = set()
        self._aborted = False

    async def __aenter__(self) -> Downloader:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def abort(self) -> None:
        """Cancel every in-flight request."""
        self._aborted = True
        for task in list(self._tasks):
            task.cancel()

    def reset(self) -> None:
        """Accept requests again after :meth:`abort`."""
        self._aborted = False
        self._tasks.clear()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _fetch(self, url: str) -> tuple[int, bytes]:
        session = self._get_session()
        try:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                body = await response.read()
                return response.status, body
        except asyncio.TimeoutError as e:
            raise ClientError(f"Request to {url} timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ClientError(f"Request to {url} failed: {e}") from e

    async def request(self, url: str) -> tuple[int, bytes]:
        """GET ``url`` and return the status code and raw body.

        Raises:
            ClientError: If no response was received
            AbortedByCaller: If the downloader was aborted
        """
        if self._aborted:
            raise AbortedByCaller("Download aborted")

        _LOGGER.debug("GET %s", url)
        task = asyncio.ensure_future(self._fetch(url))
        self._tasks.add(task)
        try:
            status, body = await task
        except asyncio.CancelledError:
            if self._aborted:
                raise AbortedByCaller("Download aborted") from None
            raise
        finally:
            self._tasks.discard(task)

        if self._aborted:
            raise AbortedByCaller("Download aborted")
        _LOGGER.debug("GET %s -> %d (%d bytes)", url, status, len(body))
        return status, body

    @staticmethod
    def _check_status(status: int, url: str) -> None:
        if status == 403:
            raise InvalidToken(status, url)
        if not 200 <= status <= 299:
            raise ServerError(status, url)

    async def download_firmware(self, url: str) -> bytes:
        """Download a firmware image.

        Raises:
            ClientError, InvalidToken, ServerError, DecodeError, AbortedByCaller
        """
        status, body = await self.request(url)
        self._check_status(status, url)
        if not body:
            raise DecodeError(f"Empty firmware received from {url}")
        _LOGGER.info("Downloaded firmware: %d bytes", len(body))
        return body

    async def download_configuration(self, url: str) -> str:
        """Download a configuration script (newline-delimited hex frames).

        Raises:
            ClientError, InvalidToken, ServerError, DecodeError, AbortedByCaller
        """
        status, body = await self.request(url)
        self._check_status(status, url)
        try:
            script = body.decode("utf-8")
            parse_hex_script(script)
        except ValueError as e:
            raise DecodeError(f"Invalid configuration received from {url}: {e}") from e
        _LOGGER.info("Downloaded configuration: %d bytes", len(body))
        return script
