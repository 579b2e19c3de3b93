"""Post-connection readiness check for ActiveLook glasses."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import ActiveLookError, InitializationError, InitializationTimeout
from .models.device_info import REQUIRED_CHARACTERISTICS, DeviceInformation, DeviceReadiness
from .protocol import uuids

if TYPE_CHECKING:
    from .transport import BLEConnection, ProtocolOwner

_LOGGER = logging.getLogger(__name__)


class InitializerState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    POLLING_READINESS = "polling_readiness"
    READY = "ready"
    FAILED = "failed"


class GlassesInitializer:
    """Brings a freshly connected link to a usable state.

    Checks that the command interface, battery and SUOTA services are
    present, reads the six device information strings and enables
    notifications on TX and flow control. Readiness is re-evaluated every
    time a step completes and on a fixed poll interval, until it holds or
    the timeout expires. The link is claimed for the whole procedure.
    """

    DEFAULT_TIMEOUT = 5.0
    DEFAULT_POLL_INTERVAL = 0.2

    def __init__(
            self,
            connection: BLEConnection,
            notification_handlers: Mapping[str, Callable[[bytes], None]],
            timeout: float = DEFAULT_TIMEOUT,
            poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """Initialize the initializer.

        Args:
            connection: Connected BLE link
            notification_handlers: Handlers for the TX and flow control
                characteristics, usually ``GlassesSession.notification_handlers``
            timeout: Give up after this many seconds (default: 5)
            poll_interval: Readiness poll period in seconds (default: 0.2)
        """
        missing = {uuids.TX_CHAR, uuids.FLOW_CONTROL_CHAR} - set(notification_handlers)
        if missing:
            raise ValueError(f"Missing notification handlers for {sorted(missing)}")

        self._connection = connection
        self._handlers = dict(notification_handlers)
        self.timeout = timeout
        self.poll_interval = poll_interval

        self.readiness = DeviceReadiness()
        self._state = InitializerState.IDLE
        self._changed = asyncio.Event()

    @property
    def state(self) -> InitializerState:
        return self._state

    async def initialize(self) -> DeviceInformation:
        """Run the readiness procedure.

        Returns:
            Device information read from the glasses

        Raises:
            InitializationTimeout: If the glasses are not ready in time
            InitializationError: If discovery failed on the transport
        """
        if self._state != InitializerState.IDLE:
            raise RuntimeError(f"Initializer already used (state: {self._state.value})")

        _LOGGER.debug("Initializing glasses %s", self._connection.address)
        self._state = InitializerState.DISCOVERING

        try:
            with self._connection.claim("initializer") as owner:
                discovery = asyncio.create_task(self._discover(owner))
                try:
                    await asyncio.wait_for(self._wait_ready(discovery), timeout=self.timeout)
                finally:
                    if not discovery.done():
                        discovery.cancel()
        except asyncio.TimeoutError as e:
            self._state = InitializerState.FAILED
            raise InitializationTimeout(
                f"Glasses not ready after {self.timeout}s, missing: "
                + ", ".join(self.readiness.missing)
            ) from e
        except ActiveLookError as e:
            self._state = InitializerState.FAILED
            if isinstance(e, InitializationError):
                raise
            raise InitializationError(f"Initialization failed: {e}") from e

        self._state = InitializerState.READY
        _LOGGER.info("Glasses %s ready", self._connection.address)
        return self.readiness.information

    async def _discover(self, owner: ProtocolOwner) -> None:
        self.readiness.spota_service = self._connection.has_service(uuids.SPOTA_SERVICE)
        self.readiness.characteristics = {
            char for char in REQUIRED_CHARACTERISTICS
            if self._connection.has_characteristic(char)
        }
        self._changed.set()

        for char in uuids.DEVICE_INFORMATION_CHARS:
            if not self._connection.has_characteristic(char):
                _LOGGER.debug("Device information characteristic %s not found", char)
                continue
            value = await self._connection.read(char, owner=owner)
            self.readiness.information.set_from_characteristic(char, value)
            self._changed.set()

        for char in (uuids.TX_CHAR, uuids.FLOW_CONTROL_CHAR):
            if char not in self.readiness.characteristics:
                continue
            await self._connection.start_notify(char, self._handlers[char], owner=owner)
            self._changed.set()

    def _evaluate(self) -> bool:
        if not self._connection.is_connected:
            return False
        self.readiness.notifying = {
            char for char in (uuids.TX_CHAR, uuids.FLOW_CONTROL_CHAR)
            if self._connection.is_notifying(char)
        }
        return self.readiness.ready

    async def _wait_ready(self, discovery: asyncio.Task) -> None:
        self._state = InitializerState.POLLING_READINESS
        while True:
            if discovery.done() and not discovery.cancelled():
                error = discovery.exception()
                if error is not None:
                    raise InitializationError(f"Discovery failed: {error}") from error

            if self._evaluate():
                return

            self._changed.clear()
            try:
                await asyncio.wait_for(self._changed.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
