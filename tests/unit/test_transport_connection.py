"""Test BLEConnection ownership, routing and disconnect tracking."""

from __future__ import annotations

import pytest
from bleak.exc import BleakError

from activelook.exceptions import BLEConnectionError, DeviceNotConnected
from activelook.protocol import uuids
from activelook.transport import BLEConnection


class _FakeServices:
    def __init__(self, characteristics):
        self.characteristics = set(characteristics)

    def get_service(self, service_uuid):
        return object() if service_uuid == uuids.SPOTA_SERVICE else None

    def get_characteristic(self, char_uuid):
        return object() if char_uuid in self.characteristics else None


class _FakeBleakClient:
    def __init__(self):
        self.is_connected = True
        self.services = _FakeServices({uuids.RX_CHAR, uuids.TX_CHAR})
        self.writes: list[tuple[str, bytes, bool]] = []
        self.callbacks: dict = {}
        self.fail = False

    async def write_gatt_char(self, char_uuid, data, response=True):
        if self.fail:
            raise BleakError("gatt error")
        self.writes.append((char_uuid, bytes(data), response))

    async def read_gatt_char(self, char_uuid):
        return bytearray(b"v4.6.2")

    async def start_notify(self, char_uuid, callback):
        self.callbacks[char_uuid] = callback

    async def stop_notify(self, char_uuid):
        self.callbacks.pop(char_uuid, None)

    async def disconnect(self):
        self.is_connected = False


def _connected(on_disconnected=None) -> tuple[BLEConnection, _FakeBleakClient]:
    connection = BLEConnection("AA:BB:CC:DD:EE:FF", on_disconnected=on_disconnected)
    client = _FakeBleakClient()
    connection._client = client
    return connection, client


class TestOwnership:
    """Test exclusive protocol ownership."""

    @pytest.mark.asyncio
    async def test_write_rejected_while_owned(self):
        connection, client = _connected()

        with connection.claim("firmware_updater") as owner:
            with pytest.raises(BLEConnectionError, match="firmware_updater"):
                await connection.write(uuids.RX_CHAR, b"\x01")
            await connection.write(uuids.RX_CHAR, b"\x02", owner=owner)

        await connection.write(uuids.RX_CHAR, b"\x03")
        assert [data for _, data, _ in client.writes] == [b"\x02", b"\x03"]

    def test_claim_is_exclusive(self):
        connection, _ = _connected()

        with connection.claim("initializer"):
            with pytest.raises(BLEConnectionError):
                with connection.claim("firmware_updater"):
                    pass
        assert connection.owner is None

    @pytest.mark.asyncio
    async def test_stale_owner_rejected(self):
        connection, _ = _connected()
        with connection.claim("initializer") as stale:
            pass

        with connection.claim("firmware_updater"):
            with pytest.raises(BLEConnectionError):
                await connection.read(uuids.FIRMWARE_VERSION_CHAR, owner=stale)


class TestGattOperations:
    """Test reads, writes and notifications."""

    @pytest.mark.asyncio
    async def test_read_returns_bytes(self):
        connection, _ = _connected()

        assert await connection.read(uuids.FIRMWARE_VERSION_CHAR) == b"v4.6.2"

    @pytest.mark.asyncio
    async def test_not_connected(self):
        connection = BLEConnection("AA:BB:CC:DD:EE:FF")

        with pytest.raises(DeviceNotConnected):
            await connection.read(uuids.FIRMWARE_VERSION_CHAR)
        assert not connection.has_service(uuids.SPOTA_SERVICE)

    @pytest.mark.asyncio
    async def test_bleak_errors_are_wrapped(self):
        connection, client = _connected()
        client.fail = True

        with pytest.raises(BLEConnectionError, match="gatt error"):
            await connection.write(uuids.RX_CHAR, b"\x01", response=False)

    @pytest.mark.asyncio
    async def test_notifications_are_routed(self):
        connection, client = _connected()
        received: list[bytes] = []

        await connection.start_notify(uuids.TX_CHAR, received.append)
        client.callbacks[uuids.TX_CHAR](None, bytearray(b"\xff\x05"))

        assert received == [b"\xff\x05"]
        assert connection.is_notifying(uuids.TX_CHAR.upper())

        await connection.stop_notify(uuids.TX_CHAR)
        assert not connection.is_notifying(uuids.TX_CHAR)

    def test_service_discovery(self):
        connection, _ = _connected()

        assert connection.has_service(uuids.SPOTA_SERVICE)
        assert connection.has_characteristic(uuids.RX_CHAR)
        assert not connection.has_characteristic(uuids.SUOTA_MTU_CHAR)


class TestDisconnect:
    """Test expected and unexpected link loss reporting."""

    def test_unexpected_loss(self):
        reports: list[bool] = []
        connection, client = _connected(on_disconnected=reports.append)

        connection._on_bleak_disconnect(client)

        assert reports == [False]

    def test_expected_loss(self):
        reports: list[bool] = []
        connection, client = _connected(on_disconnected=reports.append)

        connection.expect_disconnect()
        connection._on_bleak_disconnect(client)

        assert reports == [True]

    @pytest.mark.asyncio
    async def test_explicit_disconnect(self):
        connection, client = _connected()

        await connection.disconnect()

        assert connection.expected_disconnect
        assert not client.is_connected
        assert not connection.is_connected
