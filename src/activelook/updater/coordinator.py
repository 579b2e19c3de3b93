"""Sequences a complete glasses update: firmware first, then configuration."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from ..exceptions import (
    AbortedByCaller,
    ActiveLookError,
    DowngradeForbidden,
    LowBattery,
    NetworkUnavailable,
    UpdateForbidden,
    VersionCheckError,
)
from ..models.enums import PublicUpdateState, UpdateState
from ..models.firmware import Firmware, FirmwareVersion
from ..models.update import GlassesUpdate
from ..protocol.commands import UPDATE_LAYOUT_ID
from .downloader import Downloader
from .firmware_updater import FirmwareUpdater
from .urls import UpdaterURL, UpdateServerConfig
from .version_checker import VersionChecker

if TYPE_CHECKING:
    from ..models.device_info import DeviceInformation
    from ..session import GlassesSession

_LOGGER = logging.getLogger(__name__)

AuthorizationCallback = Callable[[GlassesUpdate], Union[bool, Awaitable[bool]]]
UpdateProgressCallback = Callable[[GlassesUpdate], None]
ReconnectCallback = Callable[[], Awaitable["GlassesSession"]]


@dataclass(frozen=True, slots=True)
class UpdateParameters:
    """Settings of the update pipeline.

    Attributes:
        token: Update server access token
        on_update_available: Asked before installing anything; must return
            (or resolve to) True for the update to proceed
        hardware: Hardware id used in catalog URLs; defaults to the hardware
            revision read from the glasses
        on_progress: Receives a new GlassesUpdate snapshot on every change
        network_available: Network reachability predicate
        battery_threshold: Minimum battery level in percent to flash firmware
        battery_timeout: Give up waiting for the battery after this many
            seconds (None waits forever)
        max_firmware_version: Newest firmware this library can talk to
        server: Update server location
    """

    token: str
    on_update_available: AuthorizationCallback
    hardware: str | None = None
    on_progress: UpdateProgressCallback | None = None
    network_available: Callable[[], bool] = lambda: True
    battery_threshold: int = 10
    battery_timeout: float | None = None
    max_firmware_version: FirmwareVersion | None = None
    server: UpdateServerConfig = field(default_factory=UpdateServerConfig)


def reboot_delay(firmware: FirmwareVersion) -> float:
    """Seconds to wait after the reboot command before reconnecting."""
    if (firmware.major, firmware.minor) == (4, 12):
        return 3.0
    return 0.5


class GlassesUpdater:
    """Brings glasses up to date.

    Steps: firmware version check, battery gate, firmware download,
    authorization, SUOTA transfer, reboot and reconnection, configuration
    version check, configuration download, authorization, configuration
    load. Nothing is retried. Without a reconnect hook the run ends in the
    REBOOTING state after a firmware transfer; calling :meth:`update` again
    once reconnected continues with the configuration.
    """

    def __init__(
            self,
            parameters: UpdateParameters,
            reconnect: ReconnectCallback | None = None,
            downloader: Downloader | None = None,
    ):
        """Initialize the coordinator.

        Args:
            parameters: Update settings
            reconnect: Coroutine function returning a fresh, initialized
                session after the firmware reboot
            downloader: HTTP client; a new one is created for each run if omitted
        """
        self._params = parameters
        self._reconnect = reconnect
        self._shared_downloader = downloader

        self._update: GlassesUpdate | None = None
        self._downloader: Downloader | None = None
        self._firmware_updater: FirmwareUpdater | None = None
        self._battery_event: asyncio.Event | None = None
        self._aborted = False

    @property
    def state(self) -> GlassesUpdate | None:
        """Latest update snapshot."""
        return self._update

    def abort(self) -> None:
        """Stop the run at the next step boundary.

        In-flight requests are cancelled; a BLE write already issued still
        completes. The run raises AbortedByCaller.
        """
        _LOGGER.info("Aborting update")
        self._aborted = True
        if self._downloader is not None:
            self._downloader.abort()
        if self._firmware_updater is not None:
            self._firmware_updater.abort()
        if self._battery_event is not None:
            self._battery_event.set()

    def _check_abort(self) -> None:
        if self._aborted:
            raise AbortedByCaller("Update aborted")

    def _publish(self, **changes) -> None:
        self._update = self._update.evolve(**changes)
        _LOGGER.debug("Update %s: %s", self._update.address, self._update)
        if self._params.on_progress is None:
            return
        try:
            self._params.on_progress(self._update)
        except Exception:
            _LOGGER.exception("Update progress callback failed")

    def _enter(self, state: UpdateState) -> None:
        self._check_abort()
        self._publish(state=state, progress=0.0)

    async def update(
            self,
            session: GlassesSession,
            information: DeviceInformation | None = None,
    ) -> GlassesUpdate:
        """Run the update.

        Args:
            session: Session of connected, initialized glasses
            information: Device information read at initialization

        Returns:
            Final update snapshot (UP_TO_DATE, or REBOOTING without reconnect hook)

        Raises:
            NetworkUnavailable: If the network is unreachable (not reported as a failure)
            UpdateForbidden: If the application refused the update
            DowngradeForbidden: If the installed firmware is too recent
            LowBattery: If the battery did not recover before battery_timeout
            AbortedByCaller: If :meth:`abort` was called
            ActiveLookError: Any other failure, reported as UPDATE_FAILED
        """
        self._aborted = False
        self._update = GlassesUpdate(address=session.connection.address)
        self._downloader = self._shared_downloader or Downloader()
        self._downloader.reset()
        try:
            return await self._run(session, information)
        except (NetworkUnavailable, AbortedByCaller) as e:
            _LOGGER.info("Update stopped: %s", e)
            raise
        except UpdateForbidden:
            self._publish(
                state=UpdateState.UPDATE_FAILED,
                public_state_override=PublicUpdateState.ERROR_UPDATE_FORBIDDEN,
            )
            raise
        except DowngradeForbidden:
            self._publish(
                state=UpdateState.UPDATE_FAILED,
                public_state_override=PublicUpdateState.ERROR_DOWNGRADE_FORBIDDEN,
            )
            raise
        except LowBattery:
            self._publish(
                state=UpdateState.UPDATE_FAILED,
                public_state_override=PublicUpdateState.ERROR_UPDATE_FAIL_LOW_BATTERY,
            )
            raise
        except ActiveLookError as e:
            _LOGGER.warning("Update failed: %s", e)
            self._publish(state=UpdateState.UPDATE_FAILED)
            raise
        finally:
            self._firmware_updater = None
            if self._shared_downloader is None:
                await self._downloader.close()
            self._downloader = None

    async def _run(
            self,
            session: GlassesSession,
            information: DeviceInformation | None,
    ) -> GlassesUpdate:
        self._enter(UpdateState.STARTING_UPDATE)
        hardware = self._params.hardware or (information.hardware_version if information else None)
        if not hardware:
            raise VersionCheckError("Hardware id unknown")
        checker = VersionChecker(
            UpdaterURL(hardware, self._params.token, self._params.server),
            self._downloader,
            self._params.network_available,
        )

        self._publish(battery_level=await session.battery())

        self._enter(UpdateState.CHECKING_FW_VERSION)
        result = await checker.check_firmware(session)
        installed = FirmwareVersion.parse(result.installed)
        self._publish(
            source_firmware_version=result.installed,
            target_firmware_version=result.remote or result.installed,
        )
        maximum = self._params.max_firmware_version
        if maximum is not None and installed > maximum:
            raise DowngradeForbidden(f"Firmware {installed} is newer than supported {maximum}")

        if result.needs_update:
            await self._wait_for_battery(session)

            self._enter(UpdateState.DOWNLOADING_FW)
            content = await self._downloader.download_firmware(result.url)
            firmware = Firmware(content, FirmwareVersion.parse(result.remote))

            await self._authorize(UpdateState.UPDATING_FW)

            self._enter(UpdateState.UPDATING_FW)
            self._firmware_updater = FirmwareUpdater(
                session.connection,
                on_progress=lambda progress: self._publish(progress=progress),
                session=session,
            )
            await self._firmware_updater.update(firmware, installed)
            self._firmware_updater = None

            self._enter(UpdateState.REBOOTING)
            session.close()
            if self._reconnect is None:
                _LOGGER.info("Glasses rebooting, reconnect to finish the update")
                return self._update

            await asyncio.sleep(reboot_delay(installed))
            self._check_abort()
            session = await self._reconnect()
            installed = await checker.installed_firmware(session)
            self._publish(source_firmware_version=str(installed))

        self._enter(UpdateState.CHECKING_CONFIG_VERSION)
        result = await checker.check_configuration(session, installed)
        self._publish(
            source_configuration_version=result.installed,
            target_configuration_version=result.remote or result.installed,
        )

        if result.needs_update:
            self._enter(UpdateState.DOWNLOADING_CONFIG)
            script = await self._downloader.download_configuration(result.url)

            await self._authorize(UpdateState.UPDATING_CONFIG)

            self._enter(UpdateState.UPDATING_CONFIG)
            session.clear()
            session.layout_display(UPDATE_LAYOUT_ID, "")
            await session.load_configuration(
                script,
                on_progress=lambda progress: self._publish(progress=progress),
            )
            session.clear()

        self._enter(UpdateState.UP_TO_DATE)
        self._publish(progress=100.0)
        _LOGGER.info("Glasses %s are up to date", self._update.address)
        return self._update

    async def _authorize(self, state: UpdateState) -> None:
        self._check_abort()
        decision = self._params.on_update_available(self._update.evolve(state=state))
        if inspect.isawaitable(decision):
            decision = await decision
        self._check_abort()
        if not decision:
            raise UpdateForbidden(f"Update to {state.value} refused")

    async def _wait_for_battery(self, session: GlassesSession) -> None:
        threshold = self._params.battery_threshold
        level = self._update.battery_level
        if level is not None and level >= threshold:
            return

        _LOGGER.info("Battery at %s%%, waiting for %d%%", level, threshold)
        self._enter(UpdateState.LOW_BATTERY)
        event = asyncio.Event()
        self._battery_event = event

        def on_level(level: int) -> None:
            self._publish(battery_level=level)
            if level >= threshold:
                event.set()

        await session.subscribe_battery(on_level)
        try:
            if self._params.battery_timeout is None:
                await event.wait()
            else:
                await asyncio.wait_for(event.wait(), timeout=self._params.battery_timeout)
        except asyncio.TimeoutError:
            raise LowBattery(self._update.battery_level, threshold) from None
        finally:
            self._battery_event = None
            try:
                await session.unsubscribe_battery()
            except ActiveLookError as e:
                _LOGGER.debug("Could not unsubscribe from battery notifications: %s", e)
        self._check_abort()
