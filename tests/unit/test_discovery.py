"""Test scanning for glasses."""

from types import SimpleNamespace

import pytest

from activelook import discovery
from activelook.discovery import DiscoveredGlasses, discover_glasses, manufacturer_hex


def _advertisement(manufacturer_data, local_name=None, rssi=-60):
    return SimpleNamespace(manufacturer_data=manufacturer_data, local_name=local_name, rssi=rssi)


def test_manufacturer_hex_restores_company_id() -> None:
    adv = _advertisement({0xDAFA: b"\x01\x02\x03"})

    assert manufacturer_hex(adv) == "fada010203"


def test_manufacturer_hex_ignores_other_vendors() -> None:
    assert manufacturer_hex(_advertisement({0x004C: b"\x02\x15"})) is None


@pytest.mark.asyncio
async def test_discover_keeps_activelook_glasses(monkeypatch) -> None:
    found = {
        "A": (SimpleNamespace(address="A", name=None), _advertisement({0xDAFA: b"\x01"}, "ENGO 2", -70)),
        "B": (SimpleNamespace(address="B", name="Phone"), _advertisement({0x004C: b"\x02"})),
        "C": (SimpleNamespace(address="C", name="ALK"), _advertisement({0xDAFA: b"\x02"}, None, -40)),
    }

    async def fake_discover(timeout, return_adv):
        assert return_adv is True
        return found

    monkeypatch.setattr(discovery.BleakScanner, "discover", fake_discover)

    glasses = await discover_glasses(timeout=0.1)

    assert [g.address for g in glasses] == ["C", "A"]
    assert glasses[0].name == "ALK"
    assert glasses[1].name == "ENGO 2"
    assert glasses[1].manufacturer_id == "fada01"


def test_discovered_glasses_token() -> None:
    token = DiscoveredGlasses("A", "ENGO 2", "fada01", rssi=-50).serialize()

    assert token.to_json() == {"id": "A", "name": "ENGO 2", "manId": "fada01"}
