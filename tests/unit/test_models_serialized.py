import json

import pytest

from activelook.exceptions import SerializationError
from activelook.models.enums import PublicUpdateState, UpdateState
from activelook.models.serialized import SerializedGlasses
from activelook.models.update import GlassesUpdate


class TestSerializedGlasses:
    def test_json_keys(self):
        token = SerializedGlasses("AA:BB:CC:DD:EE:FF", "ENGO 2 090142", "fada0a")
        assert json.loads(token.serialize()) == {
            "id": "AA:BB:CC:DD:EE:FF",
            "name": "ENGO 2 090142",
            "manId": "fada0a",
        }

    def test_unserialize(self):
        token = SerializedGlasses.unserialize('{"id": "x", "name": "y", "manId": "z"}')
        assert token == SerializedGlasses("x", "y", "z")

    @pytest.mark.parametrize(
        "data",
        [
            b"not json",
            b"[1, 2]",
            b'{"id": "x", "name": "y"}',
            b'{"id": 1, "name": "y", "manId": "z"}',
        ],
    )
    def test_unserialize_rejects_invalid_tokens(self, data):
        with pytest.raises(SerializationError):
            SerializedGlasses.unserialize(data)


class TestGlassesUpdate:
    def test_public_state_mapping(self):
        update = GlassesUpdate("addr")
        assert update.public_state is None
        assert update.evolve(state=UpdateState.DOWNLOADING_FW).public_state == PublicUpdateState.DOWNLOADING_FIRMWARE
        assert update.evolve(state=UpdateState.LOW_BATTERY).public_state == PublicUpdateState.ERROR_UPDATE_FAIL_LOW_BATTERY

    def test_override(self):
        update = GlassesUpdate(
            "addr",
            state=UpdateState.UPDATE_FAILED,
            public_state_override=PublicUpdateState.ERROR_UPDATE_FORBIDDEN,
        )
        assert update.public_state == PublicUpdateState.ERROR_UPDATE_FORBIDDEN

    def test_evolve_keeps_original(self):
        update = GlassesUpdate("addr")
        changed = update.evolve(progress=50.0)
        assert update.progress == 0.0
        assert changed.progress == 50.0
        assert str(changed) == "state: not_initialized - progress: 50.0"
