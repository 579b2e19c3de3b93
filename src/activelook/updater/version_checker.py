"""Compares installed firmware and configuration with the update catalog."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..exceptions import (
    AbortedByCaller,
    ActiveLookError,
    DeviceNotConnected,
    NetworkUnavailable,
    VersionCheckError,
)
from ..models.enums import SoftwareClass
from ..models.firmware import FirmwareVersion
from ..protocol import uuids

if TYPE_CHECKING:
    from ..session import GlassesSession
    from .downloader import Downloader
    from .urls import UpdaterURL

_LOGGER = logging.getLogger(__name__)

# Name of the configuration whose version is tracked by the update server
CONFIGURATION_NAME = "ALooK"


class VersionStatus(str, Enum):
    UP_TO_DATE = "up_to_date"
    NEEDS_UPDATE = "needs_update"
    NO_UPDATE_AVAILABLE = "no_update_available"


@dataclass(frozen=True, slots=True)
class VersionCheckResult:
    software: SoftwareClass
    status: VersionStatus
    installed: str
    remote: str | None = None
    url: str | None = None

    @property
    def needs_update(self) -> bool:
        return self.status == VersionStatus.NEEDS_UPDATE


def _parse_latest(body: bytes) -> tuple[str, list[int]]:
    """Extract ``latest.api_path`` and ``latest.version`` from a catalog answer."""
    try:
        latest = json.loads(body)["latest"]
        api_path = latest["api_path"]
        version = [int(v) for v in latest["version"]]
    except (ValueError, TypeError, KeyError) as e:
        raise VersionCheckError(f"Malformed catalog answer: {e}") from e
    if not isinstance(api_path, str):
        raise VersionCheckError("Malformed catalog answer: api_path is not a string")
    return api_path, version


class VersionChecker:
    """Asks the update server whether a newer firmware or configuration exists.

    Each check fails fast, before any I/O, when the glasses are disconnected
    or the network is unreachable, and is bounded by a single timeout.
    """

    DEFAULT_TIMEOUT = 5.0

    def __init__(
            self,
            urls: UpdaterURL,
            downloader: Downloader,
            network_available: Callable[[], bool] = lambda: True,
            timeout: float = DEFAULT_TIMEOUT,
    ):
        self._urls = urls
        self._downloader = downloader
        self._network_available = network_available
        self.timeout = timeout

    def abort(self) -> None:
        self._downloader.abort()

    def _check_preconditions(self, session: GlassesSession) -> None:
        if session.closed or not session.connection.is_connected:
            raise DeviceNotConnected("Glasses not connected")
        if not self._network_available():
            raise NetworkUnavailable("Network unavailable")

    async def _bounded(self, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise VersionCheckError(f"Version check timed out after {self.timeout}s") from None
        except (VersionCheckError, AbortedByCaller):
            raise
        except ActiveLookError as e:
            raise VersionCheckError(f"Version check failed: {e}") from e

    async def installed_firmware(self, session: GlassesSession) -> FirmwareVersion:
        """Read the firmware revision characteristic."""
        raw = await session.connection.read(uuids.FIRMWARE_VERSION_CHAR)
        text = raw.decode("utf-8", errors="replace").rstrip("\x00")
        try:
            return FirmwareVersion.parse(text)
        except ValueError as e:
            raise VersionCheckError(f"Unreadable firmware version {text!r}") from e

    async def check_firmware(self, session: GlassesSession) -> VersionCheckResult:
        """Check the installed firmware against the catalog.

        Raises:
            DeviceNotConnected: If the glasses are not connected
            NetworkUnavailable: If the network is unreachable
            VersionCheckError: On timeout, unreadable version or malformed catalog
        """
        self._check_preconditions(session)
        return await self._bounded(self._check_firmware(session))

    async def _check_firmware(self, session: GlassesSession) -> VersionCheckResult:
        installed = await self.installed_firmware(session)
        status, body = await self._downloader.request(self._urls.firmware_history_url(installed))
        if not 200 <= status <= 299:
            _LOGGER.info("No firmware available (catalog answered %d)", status)
            return VersionCheckResult(
                SoftwareClass.FIRMWARES, VersionStatus.NO_UPDATE_AVAILABLE, str(installed),
            )

        api_path, values = _parse_latest(body)
        try:
            remote = FirmwareVersion.from_list(values, path=api_path)
        except ValueError as e:
            raise VersionCheckError(f"Malformed firmware version: {e}") from e

        if remote > installed:
            _LOGGER.info("Firmware %s available (installed %s)", remote, installed)
            return VersionCheckResult(
                SoftwareClass.FIRMWARES,
                VersionStatus.NEEDS_UPDATE,
                str(installed),
                str(remote),
                self._urls.firmware_download_url(api_path),
            )
        _LOGGER.info("Firmware %s is up to date", installed)
        return VersionCheckResult(
            SoftwareClass.FIRMWARES, VersionStatus.UP_TO_DATE, str(installed), str(remote),
        )

    async def check_configuration(
            self,
            session: GlassesSession,
            firmware: FirmwareVersion,
    ) -> VersionCheckResult:
        """Check the installed configuration against the catalog.

        Args:
            session: Session used to query the installed configuration
            firmware: Installed firmware; the catalog only lists compatible entries

        Raises:
            DeviceNotConnected: If the glasses are not connected
            NetworkUnavailable: If the network is unreachable
            VersionCheckError: On timeout or malformed catalog
        """
        self._check_preconditions(session)
        return await self._bounded(self._check_configuration(session, firmware))

    async def _check_configuration(
            self,
            session: GlassesSession,
            firmware: FirmwareVersion,
    ) -> VersionCheckResult:
        info = await session.cfg_read(CONFIGURATION_NAME)
        installed = info.version

        status, body = await self._downloader.request(self._urls.configuration_history_url(firmware))
        if not 200 <= status <= 299:
            _LOGGER.info("No configuration available (catalog answered %d)", status)
            return VersionCheckResult(
                SoftwareClass.CONFIGURATIONS, VersionStatus.NO_UPDATE_AVAILABLE, str(installed),
            )

        api_path, values = _parse_latest(body)
        if len(values) < 4:
            raise VersionCheckError(f"Malformed configuration version: {values}")
        remote = values[3]

        if remote > installed:
            _LOGGER.info("Configuration %d available (installed %d)", remote, installed)
            return VersionCheckResult(
                SoftwareClass.CONFIGURATIONS,
                VersionStatus.NEEDS_UPDATE,
                str(installed),
                str(remote),
                self._urls.configuration_download_url(api_path),
            )
        _LOGGER.info("Configuration %d is up to date", installed)
        return VersionCheckResult(
            SoftwareClass.CONFIGURATIONS, VersionStatus.UP_TO_DATE, str(installed), str(remote),
        )
