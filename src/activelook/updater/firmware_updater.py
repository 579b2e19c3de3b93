"""SUOTA firmware transfer.

The glasses run a Dialog SUOTA bootloader. The transfer is driven over the
SPOTA service: select the memory device, map the GPIOs, then stream the
image block by block, each block acknowledged on the status characteristic.

Firmware 4.12.0 is updated through the command interface instead: the
update partition of the external flash is erased and rewritten with
qspi commands, then the glasses are reset.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from collections.abc import Callable
from typing import TYPE_CHECKING

from ..exceptions import AbortedByCaller, ActiveLookError, FirmwareUpdateError
from ..models.firmware import DEFAULT_BLOCK_SIZE, Firmware, FirmwareVersion
from ..protocol import uuids
from ..protocol.commands import QSPI_DATA_SIZE_MAX, QSPI_WRITE_OVERHEAD, UPDATE_LAYOUT_ID

if TYPE_CHECKING:
    from ..session import GlassesSession
    from ..transport import BLEConnection, ProtocolOwner

_LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Memory device commands, written little-endian on SPOTA_MEM_DEV
MEM_DEV_SPI_FLASH = 0x13000000
MEM_DEV_END_OF_TRANSFER = 0xFE000000
MEM_DEV_REBOOT = 0xFD000000

# SPI flash pin mapping (MISO, MOSI, CS, SCK)
GPIO_MAP = 0x05060300

# Values notified on SPOTA_SERV_STATUS
STATUS_IMG_STARTED = 0x10
STATUS_CMP_OK = 0x02

# Installed firmware updated over the command interface
QSPI_FIRMWARE = FirmwareVersion(4, 12, 0)
QSPI_PARTITION_FW_UPDATE = 7
QSPI_SECTOR_SIZE = 4 * 1024
QSPI_WRITE_SIZE = QSPI_DATA_SIZE_MAX - QSPI_WRITE_OVERHEAD

_REQUIRED_CHARACTERISTICS = (
    uuids.SPOTA_SERV_STATUS_CHAR,
    uuids.SPOTA_MEM_DEV_CHAR,
    uuids.SPOTA_GPIO_MAP_CHAR,
    uuids.SPOTA_PATCH_LEN_CHAR,
    uuids.SPOTA_PATCH_DATA_CHAR,
    uuids.SUOTA_VERSION_CHAR,
    uuids.SUOTA_PATCH_DATA_CHAR_SIZE_CHAR,
    uuids.SUOTA_MTU_CHAR,
    uuids.SUOTA_L2CAP_PSM_CHAR,
)


class FirmwareUpdater:
    """Transfers one firmware image over SUOTA, or over qspi commands for 4.12.0.

    The link is claimed for the whole SUOTA transfer. The qspi path goes
    through the command session, which owns RX writes. Any failure raises
    FirmwareUpdateError naming the stage it happened in; nothing is
    retried. On success the glasses reboot and the link drop that follows
    is flagged as expected.
    """

    #: Seconds to wait for a status notification.
    #: Class attribute so tests can shrink it.
    _status_timeout: float = 30.0

    def __init__(
            self,
            connection: BLEConnection,
            on_progress: ProgressCallback | None = None,
            block_size: int = DEFAULT_BLOCK_SIZE,
            session: GlassesSession | None = None,
    ):
        self._connection = connection
        self._session = session
        self._on_progress: ProgressCallback = on_progress or (lambda _: None)
        self.block_size = block_size

        self._status: asyncio.Queue[int | None] = asyncio.Queue()
        self._owner: ProtocolOwner | None = None
        self._aborted = False
        self._stage = "idle"

        self.suota_version: int | None = None
        self.patch_data_size: int | None = None
        self.mtu: int | None = None
        self.l2cap_psm: int | None = None

    @property
    def stage(self) -> str:
        return self._stage

    @property
    def chunk_size(self) -> int | None:
        if self.patch_data_size is None or self.mtu is None:
            return None
        return min(self.patch_data_size, self.mtu - 3)

    def abort(self) -> None:
        """Stop before the next write. A write already issued completes."""
        self._aborted = True
        self._status.put_nowait(None)

    async def update(self, firmware: Firmware, installed: FirmwareVersion | None = None) -> None:
        """Run the transfer.

        Args:
            firmware: Image to install
            installed: Firmware currently on the glasses; 4.12.0 selects the qspi path

        Raises:
            FirmwareUpdateError: If any stage fails
            AbortedByCaller: If :meth:`abort` was called
        """
        if installed == QSPI_FIRMWARE:
            await self._update_qspi(firmware)
            return

        _LOGGER.info("Starting SUOTA transfer of %r to %s", firmware, self._connection.address)
        with self._connection.claim("firmware_updater") as owner:
            self._owner = owner
            try:
                await self._run(firmware)
            except (FirmwareUpdateError, AbortedByCaller):
                await self._cleanup()
                raise
            except ActiveLookError as e:
                await self._cleanup()
                raise FirmwareUpdateError(self._stage, str(e)) from e
            finally:
                self._owner = None
        _LOGGER.info("SUOTA transfer complete, glasses rebooting")

    async def _update_qspi(self, firmware: Firmware) -> None:
        if self._session is None:
            raise FirmwareUpdateError("qspi_discovery", "A command session is required for firmware 4.12.0")
        _LOGGER.info("Starting qspi transfer of %r to %s", firmware, self._connection.address)
        try:
            await self._run_qspi(firmware)
        except (FirmwareUpdateError, AbortedByCaller):
            raise
        except ActiveLookError as e:
            raise FirmwareUpdateError(self._stage, str(e)) from e
        _LOGGER.info("qspi transfer complete, glasses resetting")

    async def _cleanup(self) -> None:
        if not self._connection.is_connected:
            return
        if self._connection.is_notifying(uuids.SPOTA_SERV_STATUS_CHAR):
            try:
                await self._connection.stop_notify(uuids.SPOTA_SERV_STATUS_CHAR, owner=self._owner)
            except ActiveLookError as e:
                _LOGGER.debug("Could not disable status notifications: %s", e)

    def _check_abort(self) -> None:
        if self._aborted:
            raise AbortedByCaller(f"Firmware update aborted during {self._stage}")

    async def _write(self, char_uuid: str, data: bytes, response: bool = True) -> None:
        self._check_abort()
        await self._connection.write(char_uuid, data, response=response, owner=self._owner)

    async def _read_uint(self, char_uuid: str, fmt: str) -> int:
        value = await self._connection.read(char_uuid, owner=self._owner)
        try:
            return struct.unpack_from(fmt, value)[0]
        except struct.error:
            raise FirmwareUpdateError(
                self._stage, f"Malformed value {value.hex()} on {char_uuid}"
            ) from None

    def _on_status(self, data: bytes) -> None:
        if not data:
            _LOGGER.debug("Empty SUOTA status notification")
            return
        self._status.put_nowait(data[0])

    async def _wait_status(self, expected: int) -> None:
        try:
            status = await asyncio.wait_for(self._status.get(), timeout=self._status_timeout)
        except asyncio.TimeoutError:
            raise FirmwareUpdateError(
                "status", f"No status notification within {self._status_timeout}s during {self._stage}"
            ) from None
        if status is None:
            self._check_abort()
        if status != expected:
            raise FirmwareUpdateError(
                self._stage, f"Unexpected status 0x{status:02x} (expected 0x{expected:02x})"
            )

    async def _run(self, firmware: Firmware) -> None:
        self._stage = "discovery"
        if not self._connection.has_service(uuids.SPOTA_SERVICE):
            raise FirmwareUpdateError(self._stage, "SUOTA service not found")
        for char in _REQUIRED_CHARACTERISTICS:
            if not self._connection.has_characteristic(char):
                raise FirmwareUpdateError(self._stage, f"Characteristic {char} not found")

        self._stage = "parameters"
        self.suota_version = await self._read_uint(uuids.SUOTA_VERSION_CHAR, "<B")
        self.patch_data_size = await self._read_uint(uuids.SUOTA_PATCH_DATA_CHAR_SIZE_CHAR, "<H")
        self.mtu = await self._read_uint(uuids.SUOTA_MTU_CHAR, "<H")
        self.l2cap_psm = await self._read_uint(uuids.SUOTA_L2CAP_PSM_CHAR, "<H")
        _LOGGER.debug(
            "SUOTA version %d, patch data size %d, MTU %d, L2CAP PSM %d",
            self.suota_version, self.patch_data_size, self.mtu, self.l2cap_psm,
        )

        self._stage = "notifications"
        self._check_abort()
        await self._connection.start_notify(
            uuids.SPOTA_SERV_STATUS_CHAR, self._on_status, owner=self._owner
        )

        self._stage = "mem_dev"
        await self._write(uuids.SPOTA_MEM_DEV_CHAR, struct.pack("<I", MEM_DEV_SPI_FLASH))
        await self._wait_status(STATUS_IMG_STARTED)

        self._stage = "gpio_map"
        await self._write(uuids.SPOTA_GPIO_MAP_CHAR, struct.pack("<I", GPIO_MAP))

        self._stage = "partition"
        try:
            blocks = firmware.blocks(self.block_size, self.chunk_size)
        except ValueError as e:
            raise FirmwareUpdateError(self._stage, str(e)) from e
        if not blocks:
            raise FirmwareUpdateError(self._stage, "Empty firmware")
        _LOGGER.debug("Firmware split into %d blocks", len(blocks))

        patch_length = 0
        for index, block in enumerate(blocks):
            if block.size != patch_length:
                self._stage = "patch_length"
                await self._write(uuids.SPOTA_PATCH_LEN_CHAR, struct.pack("<H", block.size))
                patch_length = block.size

            self._stage = "patch_data"
            for chunk in block.chunks:
                await self._write(uuids.SPOTA_PATCH_DATA_CHAR, chunk, response=False)

            await self._wait_status(STATUS_CMP_OK)
            self._on_progress((index + 1) * 100 / len(blocks))

        self._stage = "end_of_transfer"
        self._check_abort()
        await self._connection.stop_notify(uuids.SPOTA_SERV_STATUS_CHAR, owner=self._owner)
        await self._write(uuids.SPOTA_MEM_DEV_CHAR, struct.pack("<I", MEM_DEV_END_OF_TRANSFER))

        self._stage = "reboot"
        self._check_abort()
        self._connection.expect_disconnect()
        await self._connection.write(
            uuids.SPOTA_MEM_DEV_CHAR, struct.pack("<I", MEM_DEV_REBOOT), owner=self._owner
        )
        self._stage = "done"

    async def _run_qspi(self, firmware: Firmware) -> None:
        session = self._session
        data = firmware.data
        size = len(data)

        self._stage = "qspi_discovery"
        if not self._connection.has_characteristic(uuids.RX_CHAR):
            raise FirmwareUpdateError(self._stage, f"Characteristic {uuids.RX_CHAR} not found")
        session.clear()
        session.layout_display(UPDATE_LAYOUT_ID, "")

        # Erase reports 0-50, write 50-100
        self._stage = "qspi_erase"
        address = 0
        while address < size:
            self._check_abort()
            length = min(QSPI_SECTOR_SIZE, size - address)
            session.qspi_erase(QSPI_PARTITION_FW_UPDATE, address, length)
            await session.flush()
            address += length
            self._on_progress(address * 50 / size)

        self._stage = "qspi_write"
        address = 0
        while address < size:
            self._check_abort()
            chunk = data[address:address + QSPI_WRITE_SIZE]
            session.qspi_write(QSPI_PARTITION_FW_UPDATE, address, chunk)
            await session.flush()
            address += len(chunk)
            self._on_progress(50 + address * 50 / size)

        self._stage = "reset"
        self._check_abort()
        session.reset()
        await session.flush()
        self._stage = "done"
