"""Test update artifact downloads."""

from __future__ import annotations

import asyncio

import aiohttp
import pytest

from activelook.exceptions import AbortedByCaller, ClientError, DecodeError, InvalidToken, ServerError
from activelook.updater.downloader import Downloader

URL = "http://updates.test/v1/firmwares/ALK01A/token/4/6/3"


class _FakeResponse:
    def __init__(self, status: int, body: bytes):
        self.status = status
        self._body = body

    async def read(self) -> bytes:
        return self._body


class _FakeRequest:
    def __init__(self, session, url):
        self._session = session
        self._url = url

    async def __aenter__(self):
        outcome = self._session.routes[self._url]
        if self._session.gate is not None:
            await self._session.gate.wait()
        if isinstance(outcome, Exception):
            raise outcome
        return _FakeResponse(*outcome)

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


class _FakeClientSession:
    def __init__(self, routes):
        self.routes = routes
        self.requested: list[str] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    def get(self, url, timeout=None):
        self.requested.append(url)
        return _FakeRequest(self, url)

    async def close(self):
        self.closed = True


class TestDownloader:
    """Test status classification and payload validation."""

    @pytest.mark.asyncio
    async def test_download_firmware(self):
        session = _FakeClientSession({URL: (200, b"\x01\x02\x03")})
        downloader = Downloader(session)

        assert await downloader.download_firmware(URL) == b"\x01\x02\x03"
        assert session.requested == [URL]

    @pytest.mark.asyncio
    async def test_empty_firmware(self):
        downloader = Downloader(_FakeClientSession({URL: (200, b"")}))

        with pytest.raises(DecodeError):
            await downloader.download_firmware(URL)

    @pytest.mark.asyncio
    async def test_forbidden_is_invalid_token(self):
        downloader = Downloader(_FakeClientSession({URL: (403, b"denied")}))

        with pytest.raises(InvalidToken) as excinfo:
            await downloader.download_firmware(URL)
        assert excinfo.value.status == 403

    @pytest.mark.asyncio
    async def test_server_error(self):
        downloader = Downloader(_FakeClientSession({URL: (502, b"")}))

        with pytest.raises(ServerError) as excinfo:
            await downloader.download_configuration(URL)
        assert not isinstance(excinfo.value, InvalidToken)
        assert excinfo.value.status == 502

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        downloader = Downloader(_FakeClientSession({URL: aiohttp.ClientConnectionError("refused")}))

        with pytest.raises(ClientError, match="refused"):
            await downloader.download_firmware(URL)

    @pytest.mark.asyncio
    async def test_request_timeout(self):
        downloader = Downloader(_FakeClientSession({URL: asyncio.TimeoutError()}), timeout=2.0)

        with pytest.raises(ClientError, match="timed out"):
            await downloader.request(URL)

    @pytest.mark.asyncio
    async def test_download_configuration(self):
        script = "FF0101060AAA\nFF0101060BAA\n"
        downloader = Downloader(_FakeClientSession({URL: (200, script.encode())}))

        assert await downloader.download_configuration(URL) == script

    @pytest.mark.asyncio
    async def test_configuration_not_hex(self):
        downloader = Downloader(_FakeClientSession({URL: (200, b"FF0101\nhello\n")}))

        with pytest.raises(DecodeError):
            await downloader.download_configuration(URL)

    @pytest.mark.asyncio
    async def test_configuration_not_utf8(self):
        downloader = Downloader(_FakeClientSession({URL: (200, b"\xff\xfe")}))

        with pytest.raises(DecodeError):
            await downloader.download_configuration(URL)

    @pytest.mark.asyncio
    async def test_abort_cancels_in_flight_request(self):
        session = _FakeClientSession({URL: (200, b"\x01")})
        session.gate = asyncio.Event()
        downloader = Downloader(session)

        task = asyncio.create_task(downloader.download_firmware(URL))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        downloader.abort()

        with pytest.raises(AbortedByCaller):
            await task
        with pytest.raises(AbortedByCaller):
            await downloader.request(URL)
        assert downloader.aborted

    @pytest.mark.asyncio
    async def test_reset_after_abort_accepts_requests(self):
        session = _FakeClientSession({URL: (200, b"\x01")})
        downloader = Downloader(session)
        downloader.abort()

        downloader.reset()

        assert not downloader.aborted
        assert await downloader.download_firmware(URL) == b"\x01"

    @pytest.mark.asyncio
    async def test_shared_session_is_not_closed(self):
        session = _FakeClientSession({})

        async with Downloader(session):
            pass

        assert not session.closed
