"""BLE connection management."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError
from bleak_retry_connector import BleakClientWithServiceCache, establish_connection

from ..exceptions import BLEConnectionError, BLETimeoutError, DeviceNotConnected

if TYPE_CHECKING:
    from bleak.backends.characteristic import BleakGATTCharacteristic
    from bleak.backends.device import BLEDevice

_LOGGER = logging.getLogger(__name__)

NotificationHandler = Callable[[bytes], None]


class ProtocolOwner:
    """Token for exclusive use of the link by one protocol component.

    While an owner is active, writes and notification changes issued without
    that token are refused. Notifications keep being delivered to whatever
    handler was registered for a characteristic.
    """

    def __init__(self, name: str):
        self.name = name
        self.active = True

    def __repr__(self) -> str:
        return f"ProtocolOwner({self.name!r}, active={self.active})"


class BLEConnection:
    """Manages the BLE link to ActiveLook glasses.

    Features:
    - Automatic retry logic with bleak-retry-connector
    - Service caching for faster reconnections
    - Per-characteristic notification routing
    - Exclusive protocol ownership (initialization, firmware update)
    - Intentional disconnect tracking, so reboots are not reported as losses
    """

    def __init__(
            self,
            address: str,
            ble_device: BLEDevice | None = None,
            timeout: float = 10.0,
            max_attempts: int = 4,
            use_services_cache: bool = True,
            on_disconnected: Callable[[bool], None] | None = None,
    ):
        """Initialize BLE connection manager.

        Args:
            address: Device address (MAC, or platform identifier on macOS)
            ble_device: Optional BLEDevice from a previous scan
            timeout: Connection timeout in seconds (default: 10)
            max_attempts: Maximum connection attempts for bleak-retry-connector (default: 4)
            use_services_cache: Enable GATT service caching for faster reconnections (default: True)
            on_disconnected: Called with ``expected`` when the link goes down
        """
        self.address = address
        self.ble_device = ble_device
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.use_services_cache = use_services_cache
        self.on_disconnected = on_disconnected

        self._client: BleakClient | None = None
        self._handlers: dict[str, NotificationHandler] = {}
        self._notifying: set[str] = set()
        self._owner: ProtocolOwner | None = None
        self._expect_disconnect = False

    async def __aenter__(self) -> BLEConnection:
        """Connect to device (context manager entry)."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Disconnect from device (context manager exit)."""
        await self.disconnect()

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to device."""
        return self._client is not None and self._client.is_connected

    @property
    def name(self) -> str | None:
        if self.ble_device is not None:
            return self.ble_device.name
        return None

    @property
    def expected_disconnect(self) -> bool:
        return self._expect_disconnect

    def expect_disconnect(self) -> None:
        """Mark the next link loss as intentional (reboot, shutdown)."""
        self._expect_disconnect = True

    async def connect(self) -> None:
        """Establish BLE connection to device.

        Uses bleak-retry-connector for automatic retry logic and service caching.

        Raises:
            BLEConnectionError: If connection fails
            BLETimeoutError: If connection times out
        """
        if self.is_connected:
            return

        try:
            _LOGGER.debug(
                "Connecting to %s with bleak-retry-connector (max_attempts=%d)",
                self.address,
                self.max_attempts,
            )

            if self.ble_device is None:
                self.ble_device = await BleakScanner.find_device_by_address(
                    self.address,
                    timeout=self.timeout,
                )
                if self.ble_device is None:
                    raise BLEConnectionError(f"Device {self.address} not found during scan")

            self._client = await establish_connection(
                client_class=BleakClientWithServiceCache,
                device=self.ble_device,
                name=self.ble_device.name or self.address,
                disconnected_callback=self._on_bleak_disconnect,
                max_attempts=self.max_attempts,
                use_services_cache=self.use_services_cache,
                timeout=self.timeout,
            )
            self._expect_disconnect = False
            self._notifying.clear()

            _LOGGER.debug("Connected to %s", self.address)

        except BLEConnectionError:
            raise
        except asyncio.TimeoutError as e:
            raise BLETimeoutError(f"Connection timeout after {self.timeout}s") from e
        except Exception as e:
            raise BLEConnectionError(f"Failed to connect: {e}") from e

    async def disconnect(self) -> None:
        """Disconnect from device. An explicit disconnect is never reported as a loss."""
        self._expect_disconnect = True
        if self._client and self._client.is_connected:
            try:
                _LOGGER.debug("Disconnecting from %s", self.address)
                await self._client.disconnect()
            except Exception as e:
                _LOGGER.warning("Error during disconnect: %s", e)
        self._client = None
        self._notifying.clear()

    def _on_bleak_disconnect(self, client: BleakClient) -> None:
        expected = self._expect_disconnect
        self._notifying.clear()
        if expected:
            _LOGGER.debug("Link to %s closed as expected", self.address)
        else:
            _LOGGER.warning("Link to %s lost", self.address)
        if self.on_disconnected is not None:
            self.on_disconnected(expected)

    # Ownership

    @property
    def owner(self) -> ProtocolOwner | None:
        return self._owner

    @contextmanager
    def claim(self, name: str) -> Iterator[ProtocolOwner]:
        """Take exclusive ownership of the link for the duration of the block.

        Raises:
            BLEConnectionError: If another component already owns the link
        """
        if self._owner is not None:
            raise BLEConnectionError(f"Link already owned by {self._owner.name}")
        owner = ProtocolOwner(name)
        self._owner = owner
        _LOGGER.debug("%s took ownership of %s", name, self.address)
        try:
            yield owner
        finally:
            owner.active = False
            self._owner = None
            _LOGGER.debug("%s released %s", name, self.address)

    def _check(self, owner: ProtocolOwner | None) -> BleakClient:
        if not self.is_connected:
            raise DeviceNotConnected(f"{self.address} is not connected")
        if self._owner is not None and owner is not self._owner:
            raise BLEConnectionError(f"Link owned by {self._owner.name}")
        return self._client

    # Services

    def has_service(self, service_uuid: str) -> bool:
        if not self.is_connected:
            return False
        return self._client.services.get_service(service_uuid) is not None

    def get_characteristic(self, char_uuid: str) -> BleakGATTCharacteristic | None:
        if not self.is_connected:
            return None
        return self._client.services.get_characteristic(char_uuid)

    def has_characteristic(self, char_uuid: str) -> bool:
        return self.get_characteristic(char_uuid) is not None

    # GATT operations

    async def read(self, char_uuid: str, owner: ProtocolOwner | None = None) -> bytes:
        """Read a characteristic value.

        Raises:
            DeviceNotConnected: If not connected
            BLEConnectionError: If the read fails
        """
        client = self._check(owner)
        try:
            return bytes(await client.read_gatt_char(char_uuid))
        except BleakError as e:
            raise BLEConnectionError(f"Read of {char_uuid} failed: {e}") from e

    async def write(
            self,
            char_uuid: str,
            data: bytes,
            response: bool = True,
            owner: ProtocolOwner | None = None,
    ) -> None:
        """Write a characteristic value.

        Args:
            char_uuid: Target characteristic
            data: Bytes to write
            response: Wait for the write acknowledgement (default: True)
            owner: Ownership token, required while the link is claimed

        Raises:
            DeviceNotConnected: If not connected
            BLEConnectionError: If the write fails or the link is owned elsewhere
        """
        client = self._check(owner)
        try:
            await client.write_gatt_char(char_uuid, data, response=response)
        except BleakError as e:
            raise BLEConnectionError(f"Write to {char_uuid} failed: {e}") from e

    async def start_notify(
            self,
            char_uuid: str,
            handler: NotificationHandler,
            owner: ProtocolOwner | None = None,
    ) -> None:
        """Enable notifications on a characteristic and route them to ``handler``."""
        client = self._check(owner)
        key = char_uuid.lower()
        self._handlers[key] = handler
        try:
            await client.start_notify(char_uuid, self._make_callback(key))
        except BleakError as e:
            self._handlers.pop(key, None)
            raise BLEConnectionError(f"Enabling notifications on {char_uuid} failed: {e}") from e
        self._notifying.add(key)
        _LOGGER.debug("Notifications started on %s", char_uuid)

    async def stop_notify(self, char_uuid: str, owner: ProtocolOwner | None = None) -> None:
        """Disable notifications on a characteristic."""
        client = self._check(owner)
        key = char_uuid.lower()
        try:
            await client.stop_notify(char_uuid)
        except BleakError as e:
            raise BLEConnectionError(f"Disabling notifications on {char_uuid} failed: {e}") from e
        finally:
            self._notifying.discard(key)
            self._handlers.pop(key, None)
        _LOGGER.debug("Notifications stopped on %s", char_uuid)

    def is_notifying(self, char_uuid: str) -> bool:
        return char_uuid.lower() in self._notifying

    def _make_callback(self, key: str) -> Callable[[BleakGATTCharacteristic, bytearray], None]:
        def callback(sender: BleakGATTCharacteristic, data: bytearray) -> None:
            handler = self._handlers.get(key)
            if handler is None:
                _LOGGER.debug("Dropping notification on %s: no handler", key)
                return
            handler(bytes(data))

        return callback
