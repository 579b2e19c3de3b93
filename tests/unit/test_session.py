"""Test the command/response engine of GlassesSession."""

from __future__ import annotations

import asyncio
import logging
import threading
import time

import pytest

from activelook.exceptions import (
    BLEConnectionError,
    DeviceNotConnected,
    ProtocolFormatError,
    QueryTimeout,
)
from activelook.models.enums import FlowControlState, TextRotation
from activelook.protocol import uuids
from activelook.protocol.commands import SHUTDOWN_KEY, CommandID, build_command_frame
from activelook.session import GlassesSession


class _FakeConnection:
    address = "AA:BB:CC:DD:EE:FF"

    def __init__(self):
        self.written: list[bytes] = []
        self.is_connected = True
        self.expected = False
        self.handlers: dict = {}
        self.gate: asyncio.Event | None = None
        self.on_write = None
        self.fail_writes = False

    async def write(self, char_uuid, data, response=True, owner=None):
        assert char_uuid == uuids.RX_CHAR
        assert response is True
        self.written.append(bytes(data))
        if self.fail_writes:
            raise BLEConnectionError("write failed")
        if self.on_write is not None:
            self.on_write(bytes(data))
        if self.gate is not None:
            await self.gate.wait()

    def expect_disconnect(self):
        self.expected = True

    async def start_notify(self, char_uuid, handler, owner=None):
        self.handlers[char_uuid] = handler

    async def stop_notify(self, char_uuid, owner=None):
        self.handlers.pop(char_uuid, None)


def _response(command_id: int, query_id: int, payload: bytes = b"") -> bytes:
    return build_command_frame(command_id, query_id, payload)


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_send_command_writes_frame_to_rx() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    query_id = session.send_command(CommandID.CLEAR)
    await _settle()

    assert query_id == 1
    assert fake.written == [bytes([0xFF, 0x01, 0x01, 0x06, 0x01, 0xAA])]


@pytest.mark.asyncio
async def test_query_resolves_with_response_payload() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    task = asyncio.create_task(session.battery())
    await _settle()
    query_id = fake.written[0][4]
    session.on_notification(_response(CommandID.BATTERY, query_id, b"\x4b"))

    assert await task == 75
    assert session.pending_query_ids == set()


@pytest.mark.asyncio
async def test_response_during_write_finds_its_continuation() -> None:
    """The continuation is registered before the frame can reach the wire."""
    fake = _FakeConnection()
    session = GlassesSession(fake)
    fake.on_write = lambda frame: session.on_notification(
        _response(frame[1], frame[4], b"\x00\x00\x00\x2a")
    )

    assert await session.pixel_count() == 42


@pytest.mark.asyncio
async def test_split_response_is_reassembled() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    task = asyncio.create_task(session.vers())
    await _settle()
    frame = _response(CommandID.VERS, fake.written[0][4], bytes([4, 12, 0, ord("b"), 22, 14, 0, 0, 1]))
    session.on_notification(frame[:7])
    session.on_notification(frame[7:])

    version = await task
    assert version.firmware_version == "4.12.0b"


@pytest.mark.asyncio
async def test_query_ids_wrap_after_254() -> None:
    session = GlassesSession(_FakeConnection())
    session._query_id = 253

    assert session.send_command(CommandID.CLEAR) == 254
    assert session.send_command(CommandID.CLEAR) == 0
    assert session.send_command(CommandID.CLEAR) == 1


@pytest.mark.asyncio
async def test_outstanding_query_id_is_skipped() -> None:
    session = GlassesSession(_FakeConnection())
    session._query_id = 254
    first = session.send_command(CommandID.BATTERY, callback=lambda payload: None)
    session._query_id = 254

    assert first == 0
    assert session.send_command(CommandID.CLEAR) == 1


@pytest.mark.asyncio
async def test_all_query_ids_outstanding() -> None:
    session = GlassesSession(_FakeConnection())
    for _ in range(255):
        session.send_command(CommandID.BATTERY, callback=lambda payload: None)

    with pytest.raises(ProtocolFormatError, match="No free query id"):
        session.send_command(CommandID.BATTERY)


@pytest.mark.asyncio
async def test_malformed_response_is_dropped(caplog) -> None:
    session = GlassesSession(_FakeConnection())
    received: list[bytes] = []
    query_id = session.send_command(CommandID.BATTERY, callback=received.append)

    with caplog.at_level(logging.WARNING):
        session.dispatch_complete(bytes([0xFF, 0x05, 0x01, 0x07, query_id, 0x10, 0x00]))

    assert received == []
    assert "Dropping malformed response" in caplog.text
    assert query_id in session.pending_query_ids


@pytest.mark.asyncio
async def test_unmatched_response_is_ignored() -> None:
    session = GlassesSession(_FakeConnection())
    received: list[bytes] = []
    session.send_command(CommandID.BATTERY, callback=received.append)

    session.on_notification(_response(CommandID.BATTERY, 99, b"\x10"))

    assert received == []


@pytest.mark.asyncio
async def test_continuation_runs_once() -> None:
    session = GlassesSession(_FakeConnection())
    received: list[bytes] = []
    query_id = session.send_command(CommandID.BATTERY, callback=received.append)

    session.on_notification(_response(CommandID.BATTERY, query_id, b"\x10"))
    session.on_notification(_response(CommandID.BATTERY, query_id, b"\x11"))

    assert received == [b"\x10"]


@pytest.mark.asyncio
async def test_flow_control_off_pauses_writes() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    session.on_flow_control_notification(bytes([FlowControlState.OFF]))
    session.clear()
    session.clear()
    await _settle()
    assert fake.written == []

    session.on_flow_control_notification(bytes([FlowControlState.ON]))
    await _settle()
    assert len(fake.written) == 2


@pytest.mark.asyncio
async def test_flow_control_errors_are_reported() -> None:
    session = GlassesSession(_FakeConnection())
    reported: list[FlowControlState] = []
    session.flow_control_callback = reported.append

    session.on_flow_control_notification(bytes([FlowControlState.OVERFLOW]))
    session.on_flow_control_notification(bytes([FlowControlState.MISSING_CONFIGURATION]))

    assert reported == [FlowControlState.OVERFLOW, FlowControlState.MISSING_CONFIGURATION]
    assert session.flow_control == FlowControlState.ON


@pytest.mark.asyncio
async def test_single_write_in_flight() -> None:
    fake = _FakeConnection()
    fake.gate = asyncio.Event()
    session = GlassesSession(fake)

    session.clear()
    session.luma(5)
    await _settle()
    assert len(fake.written) == 1

    fake.gate.set()
    await _settle()
    assert len(fake.written) == 2


@pytest.mark.asyncio
async def test_long_frame_split_at_mtu() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake, mtu=10)

    session.send_command(CommandID.TXT, bytes(20))
    await _settle()

    assert [len(chunk) for chunk in fake.written] == [10, 10, 6]
    assert b"".join(fake.written) == build_command_frame(CommandID.TXT, 1, bytes(20))


@pytest.mark.asyncio
async def test_load_configuration_progress() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)
    progress: list[float] = []
    script = "\n".join(build_command_frame(CommandID.CLEAR, i).hex() for i in range(1, 5))

    await session.load_configuration(script, on_progress=progress.append)

    assert len(fake.written) == 4
    assert progress == [26.0, 51.0, 76.0, 100.0]


@pytest.mark.asyncio
async def test_load_configuration_rejects_invalid_hex() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    with pytest.raises(ValueError):
        await session.load_configuration("FF01\nnot hex\n")
    await _settle()

    assert fake.written == []


@pytest.mark.asyncio
async def test_load_configuration_write_failure() -> None:
    fake = _FakeConnection()
    fake.fail_writes = True
    session = GlassesSession(fake)

    with pytest.raises(BLEConnectionError):
        await session.load_configuration("FF0101060AAA\nFF0101060BAA\n")
    assert session.queue.is_empty


@pytest.mark.asyncio
async def test_query_timeout_clears_pending() -> None:
    session = GlassesSession(_FakeConnection())

    with pytest.raises(QueryTimeout) as excinfo:
        await session.query(CommandID.BATTERY, timeout=0.01)

    assert excinfo.value.command_id == CommandID.BATTERY
    assert session.pending_query_ids == set()


@pytest.mark.asyncio
async def test_close_fails_waiting_queries() -> None:
    fake = _FakeConnection()
    fake.gate = asyncio.Event()
    session = GlassesSession(fake)

    task = asyncio.create_task(session.battery())
    await _settle()
    session.close()
    fake.gate.set()

    with pytest.raises(DeviceNotConnected):
        await task
    assert session.pending_query_ids == set()
    with pytest.raises(DeviceNotConnected):
        session.clear()


@pytest.mark.asyncio
async def test_shutdown_marks_disconnect_expected() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    session.shutdown()
    await _settle()

    assert fake.expected
    assert fake.written[0][5:-1] == SHUTDOWN_KEY


@pytest.mark.asyncio
async def test_graphics_coordinates_are_signed() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    session.txt(-1, 10, TextRotation.TOP_LR, 2, 15, "Hi")
    await _settle()

    assert fake.written[0][5:-1] == b"\xff\xff\x00\x0a\x04\x02\x0fHi\x00"


@pytest.mark.asyncio
async def test_img_save_chunks() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    session.img_save(3, bytes(250), width=20)
    await _settle()

    payloads = [frame[5:-1] for frame in fake.written]
    assert payloads[0] == b"\x03" + (250).to_bytes(4, "big") + (20).to_bytes(2, "big")
    assert [len(p) for p in payloads[1:]] == [121, 121, 8]


@pytest.mark.asyncio
async def test_battery_notifications() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)
    levels: list[int] = []

    await session.subscribe_battery(levels.append)
    fake.handlers[uuids.BATTERY_LEVEL_CHAR](b"\x09")
    await session.unsubscribe_battery()

    assert levels == [9]
    assert uuids.BATTERY_LEVEL_CHAR not in fake.handlers


class _SlowLookupDict(dict):
    """Yield the GIL on every membership test to widen race windows."""

    def __contains__(self, key):
        time.sleep(0)
        return super().__contains__(key)


@pytest.mark.asyncio
async def test_send_command_from_many_threads() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)
    session._pending = _SlowLookupDict()
    ids: list[int] = []
    ids_lock = threading.Lock()

    def worker():
        for _ in range(20):
            query_id = session.send_command(CommandID.BATTERY, callback=lambda payload: None)
            with ids_lock:
                ids.append(query_id)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    await _settle()

    assert len(ids) == 160
    assert len(set(ids)) == 160
    assert len(session.pending_query_ids) == 160


@pytest.mark.asyncio
async def test_unexpected_write_error_releases_write_channel(caplog) -> None:
    fake = _FakeConnection()
    failures: list[bytes] = []

    def fail_once(frame):
        if not failures:
            failures.append(frame)
            raise RuntimeError("adapter exploded")

    fake.on_write = fail_once
    session = GlassesSession(fake)

    session.send_command(CommandID.CLEAR)
    with caplog.at_level(logging.ERROR, logger="activelook.session"):
        with pytest.raises(RuntimeError, match="adapter exploded"):
            await session.flush()
    assert "Unexpected error writing to RX" in caplog.text

    session.send_command(CommandID.CLEAR)
    await session.flush()

    assert len(fake.written) == 2


@pytest.mark.asyncio
async def test_unexpected_write_error_fails_configuration() -> None:
    fake = _FakeConnection()

    def fail(frame):
        raise RuntimeError("adapter exploded")

    fake.on_write = fail
    session = GlassesSession(fake)

    with pytest.raises(RuntimeError):
        await session.load_configuration("FF0101060AAA\nFF0101060BAA\n")


@pytest.mark.asyncio
async def test_flush_when_idle_returns() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    await session.flush()

    assert fake.written == []


@pytest.mark.asyncio
async def test_flush_waits_for_acknowledgement() -> None:
    fake = _FakeConnection()
    fake.gate = asyncio.Event()
    session = GlassesSession(fake)

    session.send_command(CommandID.CLEAR)
    session.send_command(CommandID.CLEAR)
    task = asyncio.create_task(session.flush())
    await _settle()
    assert not task.done()

    fake.gate.set()
    await task

    assert len(fake.written) == 2
    assert session.queue.is_empty


@pytest.mark.asyncio
async def test_close_fails_flush() -> None:
    fake = _FakeConnection()
    fake.gate = asyncio.Event()
    session = GlassesSession(fake)

    session.send_command(CommandID.CLEAR)
    task = asyncio.create_task(session.flush())
    await _settle()
    session.close()

    with pytest.raises(DeviceNotConnected):
        await task
    with pytest.raises(DeviceNotConnected):
        await session.flush()


@pytest.mark.asyncio
async def test_qspi_erase_payload() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    session.qspi_erase(7, 0x1000, 4096)
    await session.flush()

    assert fake.written[0][1] == CommandID.QSPI_ERASE
    assert fake.written[0][5:-1] == b"\x07\x00\x00\x10\x00\x00\x00\x10\x00"


@pytest.mark.asyncio
async def test_qspi_write_frame_is_split_at_mtu() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)
    data = bytes(range(256)) + bytes(251)

    session.qspi_write(7, 507, data)
    await session.flush()
    query_id = fake.written[0][5]

    expected = build_command_frame(CommandID.QSPI_WRITE, query_id, b"\x07\x00\x00\x01\xfb" + data)
    assert b"".join(fake.written) == expected
    assert all(len(fragment) <= session.queue.mtu for fragment in fake.written)


@pytest.mark.asyncio
async def test_reset_marks_disconnect_expected() -> None:
    fake = _FakeConnection()
    session = GlassesSession(fake)

    session.reset()
    await session.flush()

    assert fake.expected
    assert fake.written[0][1] == CommandID.RESET
