"""Command/response engine for a connected pair of glasses."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from .exceptions import (
    ActiveLookError,
    DeviceNotConnected,
    ProtocolFormatError,
    QueryTimeout,
)
from .models.device_info import (
    ConfigurationDescription,
    ConfigurationElementsInfo,
    FreeSpace,
    GlassesSettings,
    GlassesVersion,
)
from .models.enums import (
    DemoPattern,
    FlowControlState,
    LedState,
    TextRotation,
    WriteChannelState,
)
from .protocol import uuids
from .protocol.chunking import ResponseAssembler
from .protocol.commands import (
    IMG_SAVE_CHUNK_SIZE,
    QUERY_ID_MODULO,
    SHUTDOWN_KEY,
    CommandID,
    build_command_frame,
    encode_bool,
    encode_string,
)
from .protocol.queue import DEFAULT_MTU, TransmissionQueue, parse_hex_script
from .protocol.responses import parse_battery_level, parse_response_frame, parse_uint32

if TYPE_CHECKING:
    from .transport import BLEConnection

_LOGGER = logging.getLogger(__name__)

ResponseCallback = Callable[[bytes], None]


def _i16(value: int) -> bytes:
    return int(value).to_bytes(2, byteorder="big", signed=True)


def _u16(value: int) -> bytes:
    return int(value).to_bytes(2, byteorder="big")


class GlassesSession:
    """Frames commands, matches responses and paces writes for one device.

    Outbound frames go through a :class:`TransmissionQueue` drained one
    write at a time to the RX characteristic, only while the glasses report
    flow control ON. Responses arrive on the TX characteristic, possibly
    split over several notifications, and are routed to the continuation
    registered under their query id.

    The session must be created from within the event loop that owns the
    BLE connection. ``send_command`` may be called from other threads.
    """

    DEFAULT_QUERY_TIMEOUT = 5.0

    def __init__(
            self,
            connection: BLEConnection,
            mtu: int = DEFAULT_MTU,
            query_timeout: float = DEFAULT_QUERY_TIMEOUT,
    ):
        """Initialize a session over an established connection.

        Args:
            connection: Connected BLE link
            mtu: Largest write sent to the RX characteristic (default: 253)
            query_timeout: Default timeout of :meth:`query` in seconds (default: 5)
        """
        self._connection = connection
        self._loop = asyncio.get_running_loop()
        self.query_timeout = query_timeout

        self._queue = TransmissionQueue(mtu)
        self._assembler = ResponseAssembler()
        self._query_id = 0
        self._pending: dict[int, ResponseCallback] = {}
        self._pending_lock = threading.Lock()
        self._waiters: dict[int, asyncio.Future[bytes]] = {}

        self._flow_control = FlowControlState.ON
        self._write_channel = WriteChannelState.AVAILABLE
        self._drain_task: asyncio.Task | None = None
        self._flush_waiters: list[asyncio.Future[None]] = []
        self._closed = False

        # Configuration loading progress
        self._config_future: asyncio.Future[None] | None = None
        self._config_size = 0
        self._config_progress = 0.0
        self._config_progress_callback: Callable[[float], None] | None = None

        self.battery_callback: Callable[[int], None] | None = None
        self.sensor_callback: Callable[[], None] | None = None
        self.flow_control_callback: Callable[[FlowControlState], None] | None = None

    @property
    def connection(self) -> BLEConnection:
        return self._connection

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def queue(self) -> TransmissionQueue:
        return self._queue

    @property
    def pending_query_ids(self) -> set[int]:
        return set(self._pending)

    @property
    def notification_handlers(self) -> dict[str, Callable[[bytes], None]]:
        """Handlers the initializer registers when enabling notifications."""
        return {
            uuids.TX_CHAR: self.on_notification,
            uuids.FLOW_CONTROL_CHAR: self.on_flow_control_notification,
        }

    # Backpressure state

    @property
    def flow_control(self) -> FlowControlState:
        return self._flow_control

    @flow_control.setter
    def flow_control(self, state: FlowControlState) -> None:
        previous = self._flow_control
        self._flow_control = state
        if state != previous:
            _LOGGER.debug("Flow control %s -> %s", previous.name, state.name)
        if state == FlowControlState.ON and previous != FlowControlState.ON:
            self._kick()

    @property
    def write_channel(self) -> WriteChannelState:
        return self._write_channel

    @write_channel.setter
    def write_channel(self, state: WriteChannelState) -> None:
        previous = self._write_channel
        self._write_channel = state
        if state == WriteChannelState.AVAILABLE and previous == WriteChannelState.BUSY:
            self._kick()

    # Outbound

    def _next_query_id(self) -> int:
        for _ in range(QUERY_ID_MODULO):
            self._query_id = (self._query_id + 1) % QUERY_ID_MODULO
            if self._query_id not in self._pending:
                return self._query_id
        raise ProtocolFormatError("No free query id: every id is awaiting a response")

    def send_command(
            self,
            command_id: int,
            payload: bytes = b"",
            callback: ResponseCallback | None = None,
    ) -> int:
        """Frame a command and append it to the transmission queue.

        Args:
            command_id: Command identifier (see CommandID)
            payload: Command payload
            callback: Continuation invoked with the response payload

        Returns:
            Query id carried by the frame

        Raises:
            DeviceNotConnected: If the session is closed
            ProtocolFormatError: If every query id is outstanding
        """
        if self._closed:
            raise DeviceNotConnected("Session is closed")

        with self._pending_lock:
            query_id = self._next_query_id()
            frame = build_command_frame(command_id, query_id, payload)
            if callback is not None:
                self._pending[query_id] = callback

        _LOGGER.debug("Queueing command 0x%02x (query id %d): %s", command_id, query_id, frame.hex())
        self._queue.enqueue(frame)
        self._kick_threadsafe()
        return query_id

    async def query(
            self,
            command_id: int,
            payload: bytes = b"",
            timeout: float | None = None,
    ) -> bytes:
        """Send a command and wait for its response payload.

        Raises:
            QueryTimeout: If no response arrives in time
            DeviceNotConnected: If the session closes while waiting
        """
        timeout = self.query_timeout if timeout is None else timeout
        future: asyncio.Future[bytes] = self._loop.create_future()

        def resolve(response: bytes) -> None:
            if not future.done():
                future.set_result(response)

        query_id = self.send_command(command_id, payload, resolve)
        self._waiters[query_id] = future
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as e:
            with self._pending_lock:
                if self._pending.get(query_id) is resolve:
                    del self._pending[query_id]
            raise QueryTimeout(command_id, query_id, timeout) from e
        finally:
            if self._waiters.get(query_id) is future:
                del self._waiters[query_id]

    def _kick_threadsafe(self) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._kick()
        else:
            self._loop.call_soon_threadsafe(self._kick)

    def _kick(self) -> None:
        """Start draining the queue unless a drain is already running."""
        if self._closed:
            return
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = self._loop.create_task(self._drain())

    def _can_send(self) -> bool:
        return (
            not self._closed
            and self._flow_control == FlowControlState.ON
            and self._write_channel == WriteChannelState.AVAILABLE
        )

    async def _drain(self) -> None:
        while self._can_send():
            value = self._queue.dequeue()
            if value is None:
                self._finish_configuration()
                self._resolve_flush(None)
                return

            self._report_configuration_progress()

            self._write_channel = WriteChannelState.BUSY
            try:
                await self._connection.write(uuids.RX_CHAR, value, response=True)
            except ActiveLookError as e:
                if self._closed:
                    return
                _LOGGER.warning("Write to RX failed, %d queued items kept: %s", len(self._queue), e)
                self._write_channel = WriteChannelState.AVAILABLE
                self._fail_configuration(e)
                self._resolve_flush(e)
                return
            except Exception as e:
                if self._closed:
                    return
                _LOGGER.exception("Unexpected error writing to RX")
                self._write_channel = WriteChannelState.AVAILABLE
                self._fail_configuration(e)
                self._resolve_flush(e)
                return

            if self._closed:
                # Late acknowledgement of a write issued before close
                return
            self._write_channel = WriteChannelState.AVAILABLE

    async def flush(self) -> None:
        """Wait until every queued frame has been written and acknowledged.

        Raises:
            ActiveLookError: If a write fails or the session closes
        """
        if self._closed:
            raise DeviceNotConnected("Session is closed")
        idle = self._drain_task is None or self._drain_task.done()
        if idle and self._queue.is_empty:
            return
        future: asyncio.Future[None] = self._loop.create_future()
        self._flush_waiters.append(future)
        self._kick()
        await future

    def _resolve_flush(self, error: Exception | None) -> None:
        waiters, self._flush_waiters = self._flush_waiters, []
        for future in waiters:
            if future.done():
                continue
            if error is None:
                future.set_result(None)
            else:
                future.set_exception(error)

    # Configuration loading

    def enqueue_lines(self, script: str) -> int:
        """Queue a raw hex command script without progress tracking.

        Returns:
            Number of frames queued
        """
        count = self._queue.enqueue_lines(script)
        self._kick_threadsafe()
        return count

    async def load_configuration(
            self,
            script: str,
            on_progress: Callable[[float], None] | None = None,
    ) -> None:
        """Apply a configuration script and wait until every frame is written.

        Args:
            script: Newline-delimited hex frames
            on_progress: Called with a monotonically increasing 0-100 value

        Raises:
            ValueError: If the script contains invalid hex (nothing is sent)
            ActiveLookError: If a write fails or the session closes
        """
        if self._config_future is not None and not self._config_future.done():
            raise RuntimeError("A configuration is already being loaded")

        frames = parse_hex_script(script)
        if not frames:
            return

        self._config_future = self._loop.create_future()
        self._config_size = len(frames)
        self._config_progress = 0.0
        self._config_progress_callback = on_progress
        _LOGGER.info("Loading configuration: %d frames", len(frames))

        self._queue.enqueue_many(frames)
        self._kick()
        await self._config_future

    def _report_configuration_progress(self) -> None:
        if self._config_future is None or self._config_future.done():
            return
        left = len(self._queue)
        progress = float(100 - (left * 99) // self._config_size)
        if progress > self._config_progress:
            self._config_progress = progress
            if self._config_progress_callback is not None:
                self._config_progress_callback(progress)

    def _finish_configuration(self) -> None:
        if self._config_future is None or self._config_future.done():
            return
        _LOGGER.info("Configuration loaded")
        self._config_future.set_result(None)

    def _fail_configuration(self, error: Exception) -> None:
        if self._config_future is None or self._config_future.done():
            return
        self._queue.clear()
        self._config_future.set_exception(error)

    # Inbound

    def on_notification(self, data: bytes) -> None:
        """Handle one TX notification, reassembling multi-part responses."""
        try:
            frame = self._assembler.feed(data)
        except ProtocolFormatError as e:
            _LOGGER.warning("Dropping malformed response: %s", e)
            return
        if frame is not None:
            self.dispatch_complete(frame)

    def dispatch_complete(self, frame: bytes) -> None:
        """Route a complete response frame to its continuation."""
        try:
            response = parse_response_frame(frame)
        except ProtocolFormatError as e:
            _LOGGER.warning("Dropping malformed response: %s", e)
            return

        with self._pending_lock:
            callback = self._pending.pop(response.query_id, None)
        if callback is None:
            _LOGGER.debug(
                "No pending query %d for response to 0x%02x",
                response.query_id,
                response.command_id,
            )
            return

        try:
            callback(response.payload)
        except Exception:
            _LOGGER.exception("Continuation for query %d failed", response.query_id)

    def on_flow_control_notification(self, data: bytes) -> None:
        if not data:
            return
        try:
            state = FlowControlState(data[0])
        except ValueError:
            _LOGGER.debug("Unknown flow control value %d", data[0])
            return

        if state in (FlowControlState.ON, FlowControlState.OFF):
            self.flow_control = state
        elif self.flow_control_callback is not None:
            self.flow_control_callback(state)
        else:
            _LOGGER.info("Flow control reported %s", state.name)

    def on_battery_notification(self, data: bytes) -> None:
        if data and self.battery_callback is not None:
            self.battery_callback(data[0])

    def on_sensor_notification(self, data: bytes) -> None:
        if self.sensor_callback is not None:
            self.sensor_callback()

    async def subscribe_battery(self, callback: Callable[[int], None]) -> None:
        """Receive battery level notifications (about every thirty seconds)."""
        self.battery_callback = callback
        await self._connection.start_notify(uuids.BATTERY_LEVEL_CHAR, self.on_battery_notification)

    async def unsubscribe_battery(self) -> None:
        self.battery_callback = None
        await self._connection.stop_notify(uuids.BATTERY_LEVEL_CHAR)

    async def subscribe_sensor(self, callback: Callable[[], None]) -> None:
        """Receive a callback every time a gesture is detected."""
        self.sensor_callback = callback
        await self._connection.start_notify(uuids.SENSOR_INTERFACE_CHAR, self.on_sensor_notification)

    async def unsubscribe_sensor(self) -> None:
        self.sensor_callback = None
        await self._connection.stop_notify(uuids.SENSOR_INTERFACE_CHAR)

    # Lifecycle

    def close(self) -> None:
        """Drop every pending continuation and stop draining.

        Awaiting :meth:`query` callers receive DeviceNotConnected.
        """
        if self._closed:
            return
        self._closed = True
        with self._pending_lock:
            dropped = len(self._pending)
            self._pending.clear()
        self._queue.clear()
        self._assembler.reset()

        error = DeviceNotConnected("Session closed")
        for future in self._waiters.values():
            if not future.done():
                future.set_exception(error)
        self._waiters.clear()
        if self._config_future is not None and not self._config_future.done():
            self._config_future.set_exception(error)
        self._resolve_flush(error)

        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
        _LOGGER.debug("Session closed, %d pending continuations dropped", dropped)

    # General commands

    def power(self, on: bool) -> None:
        self.send_command(CommandID.POWER, encode_bool(on))

    def clear(self) -> None:
        self.send_command(CommandID.CLEAR)

    def grey(self, level: int) -> None:
        self.send_command(CommandID.GREY, bytes([level]))

    def demo(self, pattern: DemoPattern | None = None) -> None:
        payload = b"" if pattern is None else bytes([pattern])
        self.send_command(CommandID.DEMO, payload)

    async def battery(self) -> int:
        """Battery level in percent."""
        return parse_battery_level(await self.query(CommandID.BATTERY))

    async def vers(self) -> GlassesVersion:
        return GlassesVersion.from_payload(await self.query(CommandID.VERS))

    def led(self, state: LedState) -> None:
        self.send_command(CommandID.LED, bytes([state]))

    def shift(self, x: int, y: int) -> None:
        self.send_command(CommandID.SHIFT, _i16(x) + _i16(y))

    async def settings(self) -> GlassesSettings:
        return GlassesSettings.from_payload(await self.query(CommandID.SETTINGS))

    # Display luminance and optical sensor

    def luma(self, level: int) -> None:
        self.send_command(CommandID.LUMA, bytes([level]))

    def sensor(self, enabled: bool) -> None:
        self.send_command(CommandID.SENSOR, encode_bool(enabled))

    def gesture(self, enabled: bool) -> None:
        self.send_command(CommandID.GESTURE, encode_bool(enabled))

    def als(self, enabled: bool) -> None:
        self.send_command(CommandID.ALS, encode_bool(enabled))

    # Graphics

    def color(self, level: int) -> None:
        self.send_command(CommandID.COLOR, bytes([level]))

    def point(self, x: int, y: int) -> None:
        self.send_command(CommandID.POINT, _i16(x) + _i16(y))

    def line(self, x0: int, y0: int, x1: int, y1: int) -> None:
        self.send_command(CommandID.LINE, _i16(x0) + _i16(y0) + _i16(x1) + _i16(y1))

    def rect(self, x0: int, y0: int, x1: int, y1: int) -> None:
        self.send_command(CommandID.RECT, _i16(x0) + _i16(y0) + _i16(x1) + _i16(y1))

    def rectf(self, x0: int, y0: int, x1: int, y1: int) -> None:
        self.send_command(CommandID.RECTF, _i16(x0) + _i16(y0) + _i16(x1) + _i16(y1))

    def circ(self, x: int, y: int, radius: int) -> None:
        self.send_command(CommandID.CIRC, _i16(x) + _i16(y) + bytes([radius]))

    def circf(self, x: int, y: int, radius: int) -> None:
        self.send_command(CommandID.CIRCF, _i16(x) + _i16(y) + bytes([radius]))

    def txt(
            self,
            x: int,
            y: int,
            rotation: TextRotation,
            font: int,
            color: int,
            text: str,
    ) -> None:
        payload = _i16(x) + _i16(y) + bytes([rotation, font, color]) + encode_string(text)
        self.send_command(CommandID.TXT, payload)

    # Images

    def img_save(self, image_id: int, data: bytes, width: int) -> None:
        """Store an encoded 4bpp image under ``image_id``.

        The first frame carries the id, total size and width; the image
        bytes follow in chunks small enough for a single write.
        """
        header = bytes([image_id]) + len(data).to_bytes(4, byteorder="big") + _u16(width)
        self.send_command(CommandID.IMG_SAVE, header)
        for offset in range(0, len(data), IMG_SAVE_CHUNK_SIZE):
            self.send_command(CommandID.IMG_SAVE, data[offset:offset + IMG_SAVE_CHUNK_SIZE])

    def img_display(self, image_id: int, x: int, y: int) -> None:
        self.send_command(CommandID.IMG_DISPLAY, bytes([image_id]) + _i16(x) + _i16(y))

    def img_delete(self, image_id: int) -> None:
        self.send_command(CommandID.IMG_DELETE, bytes([image_id]))

    def img_delete_all(self) -> None:
        self.send_command(CommandID.IMG_DELETE, b"\xff")

    # Layouts

    def layout_display(self, layout_id: int, text: str) -> None:
        self.send_command(CommandID.LAYOUT_DISPLAY, bytes([layout_id]) + encode_string(text))

    def layout_clear(self, layout_id: int) -> None:
        self.send_command(CommandID.LAYOUT_CLEAR, bytes([layout_id]))

    def layout_delete(self, layout_id: int) -> None:
        self.send_command(CommandID.LAYOUT_DELETE, bytes([layout_id]))

    def layout_delete_all(self) -> None:
        self.send_command(CommandID.LAYOUT_DELETE, b"\xff")

    # Statistics

    async def pixel_count(self) -> int:
        return parse_uint32(await self.query(CommandID.PIXEL_COUNT))

    async def get_charging_counter(self) -> int:
        return parse_uint32(await self.query(CommandID.GET_CHARGING_COUNTER))

    async def get_charging_time(self) -> int:
        return parse_uint32(await self.query(CommandID.GET_CHARGING_TIME))

    def reset_charging_param(self) -> None:
        self.send_command(CommandID.RESET_CHARGING_PARAM)

    # Configurations

    async def cfg_read(self, name: str) -> ConfigurationElementsInfo:
        return ConfigurationElementsInfo.from_payload(
            await self.query(CommandID.CFG_READ, encode_string(name))
        )

    def cfg_set(self, name: str) -> None:
        self.send_command(CommandID.CFG_SET, encode_string(name))

    async def cfg_list(self) -> list[ConfigurationDescription]:
        return ConfigurationDescription.list_from_payload(await self.query(CommandID.CFG_LIST))

    def cfg_delete(self, name: str) -> None:
        self.send_command(CommandID.CFG_DELETE, encode_string(name))

    async def cfg_free_space(self) -> FreeSpace:
        return FreeSpace.from_payload(await self.query(CommandID.CFG_FREE_SPACE))

    async def cfg_get_nb(self) -> int:
        payload = await self.query(CommandID.CFG_GET_NB)
        if not payload:
            raise ProtocolFormatError("Empty cfg_get_nb response")
        return payload[0]

    # Device

    def shutdown(self) -> None:
        """Power the glasses off. Refused by the glasses while USB powered."""
        self._connection.expect_disconnect()
        self.send_command(CommandID.SHUTDOWN, SHUTDOWN_KEY)

    def reset(self) -> None:
        """Reboot the glasses."""
        self._connection.expect_disconnect()
        self.send_command(CommandID.RESET)

    # External flash

    def qspi_erase(self, partition: int, address: int, length: int) -> None:
        """Erase ``length`` bytes of a flash partition, starting at ``address``."""
        payload = bytes([partition]) + address.to_bytes(4, byteorder="big") + length.to_bytes(4, byteorder="big")
        self.send_command(CommandID.QSPI_ERASE, payload)

    def qspi_write(self, partition: int, address: int, data: bytes) -> None:
        """Write ``data`` to a flash partition at ``address``.

        The frame may exceed the MTU; the transmission queue splits it.
        """
        header = bytes([partition]) + address.to_bytes(4, byteorder="big")
        self.send_command(CommandID.QSPI_WRITE, header + data)
