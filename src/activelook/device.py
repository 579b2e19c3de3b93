"""Main ActiveLook glasses class."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from .encoding import encode_image
from .exceptions import DeviceNotConnected
from .initializer import GlassesInitializer
from .models.serialized import SerializedGlasses
from .session import GlassesSession
from .transport import BLEConnection
from .updater import GlassesUpdater, UpdateParameters

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice
    from PIL import Image

    from .discovery import DiscoveredGlasses
    from .models.device_info import DeviceInformation
    from .models.update import GlassesUpdate

_LOGGER = logging.getLogger(__name__)


class ActiveLookGlasses:
    """ActiveLook BLE smart glasses.

    Main API: connects, brings the link to a usable state and exposes the
    command session.

    Usage:
        async with ActiveLookGlasses("AA:BB:CC:DD:EE:FF") as glasses:
            glasses.session.clear()
            glasses.session.txt(200, 128, TextRotation.TOP_LR, 2, 15, "Hello")

        # Reconnect from a stored token
        token = SerializedGlasses.unserialize(stored)
        async with ActiveLookGlasses.from_serialized(token) as glasses:
            print(await glasses.session.battery())
    """

    def __init__(
            self,
            address: str,
            ble_device: BLEDevice | None = None,
            name: str | None = None,
            manufacturer_id: str = "",
            timeout: float = 10.0,
            init_timeout: float = GlassesInitializer.DEFAULT_TIMEOUT,
            on_disconnected: Callable[[], None] | None = None,
    ):
        """Initialize ActiveLook glasses.

        Args:
            address: Device address (MAC, or platform identifier on macOS)
            ble_device: Optional BLEDevice from a previous scan
            name: Advertised name, used in reconnection tokens
            manufacturer_id: Advertised manufacturer data as hex
            timeout: BLE connection timeout in seconds (default: 10)
            init_timeout: Readiness timeout after connection in seconds (default: 5)
            on_disconnected: Called when the link is lost unexpectedly
        """
        self.address = address
        self.manufacturer_id = manufacturer_id
        self._name = name
        self.init_timeout = init_timeout
        self.on_disconnected = on_disconnected
        self._connection = BLEConnection(
            address, ble_device, timeout, on_disconnected=self._on_link_closed
        )

        self._session: GlassesSession | None = None
        self._information: DeviceInformation | None = None
        self._updater: GlassesUpdater | None = None

    @classmethod
    def from_discovered(cls, discovered: DiscoveredGlasses, **kwargs) -> ActiveLookGlasses:
        return cls(
            discovered.address,
            ble_device=discovered.ble_device,
            name=discovered.name,
            manufacturer_id=discovered.manufacturer_id,
            **kwargs,
        )

    @classmethod
    def from_serialized(cls, token: SerializedGlasses | bytes | str, **kwargs) -> ActiveLookGlasses:
        """Create from a token produced by :meth:`serialize`.

        Raises:
            SerializationError: If the token cannot be decoded
        """
        if not isinstance(token, SerializedGlasses):
            token = SerializedGlasses.unserialize(token)
        return cls(
            token.identifier,
            name=token.name,
            manufacturer_id=token.manufacturer_id,
            **kwargs,
        )

    async def __aenter__(self) -> ActiveLookGlasses:
        """Connect and initialize."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Disconnect from glasses."""
        await self.disconnect()

    @property
    def name(self) -> str:
        return self._name or self._connection.name or self.address

    @property
    def is_connected(self) -> bool:
        return self._session is not None and not self._session.closed and self._connection.is_connected

    @property
    def session(self) -> GlassesSession:
        """Command session of the connected glasses.

        Raises:
            DeviceNotConnected: If the glasses are not connected
        """
        if self._session is None or self._session.closed:
            raise DeviceNotConnected(f"{self.address} is not connected")
        return self._session

    @property
    def information(self) -> DeviceInformation | None:
        """Device information read during initialization."""
        return self._information

    async def connect(self) -> None:
        """Connect, then wait until the glasses are ready for commands.

        Raises:
            BLEConnectionError: If the link cannot be established
            InitializationError: If the glasses do not become ready
        """
        await self._connection.connect()
        session = GlassesSession(self._connection)
        initializer = GlassesInitializer(
            self._connection, session.notification_handlers, timeout=self.init_timeout
        )
        try:
            self._information = await initializer.initialize()
        except Exception:
            session.close()
            await self._connection.disconnect()
            raise
        self._session = session
        _LOGGER.info(
            "Connected to %s (firmware %s)",
            self.name,
            self._information.firmware_version,
        )

    async def disconnect(self) -> None:
        if self._session is not None:
            self._session.close()
        await self._connection.disconnect()

    def _on_link_closed(self, expected: bool) -> None:
        if self._session is not None:
            self._session.close()
        if not expected and self.on_disconnected is not None:
            self.on_disconnected()

    def serialize(self) -> SerializedGlasses:
        """Token for reconnecting later without a scan."""
        return SerializedGlasses(self.address, self.name, self.manufacturer_id)

    def upload_image(self, image_id: int, image: Image.Image) -> None:
        """Convert and store an image under ``image_id``."""
        data, width = encode_image(image)
        _LOGGER.debug("Saving image %d (%d bytes, width %d)", image_id, len(data), width)
        self.session.img_save(image_id, data, width)

    async def update(self, parameters: UpdateParameters) -> GlassesUpdate:
        """Update firmware and configuration when newer versions exist.

        The glasses reboot after a firmware update and are reconnected
        automatically before the configuration is checked.

        Raises:
            UpdateError: See :meth:`GlassesUpdater.update`
        """
        self._updater = GlassesUpdater(parameters, reconnect=self._reconnect)
        try:
            return await self._updater.update(self.session, self._information)
        finally:
            self._updater = None

    def abort_update(self) -> None:
        if self._updater is not None:
            self._updater.abort()

    async def _reconnect(self) -> GlassesSession:
        _LOGGER.info("Reconnecting to %s after reboot", self.name)
        await self.disconnect()
        await self.connect()
        return self.session
