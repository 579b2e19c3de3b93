import pytest

from activelook.protocol.commands import (
    IMG_SAVE_CHUNK_SIZE,
    CommandID,
    build_command_frame,
    encode_bool,
    encode_string,
    frame_length,
)


class TestCommandFrames:
    """Test command frame construction."""

    def test_battery_query_frame(self):
        """A payload-less command is six bytes plus footer."""
        frame = build_command_frame(CommandID.BATTERY, 5)
        assert frame == bytes([0xFF, 0x05, 0x01, 0x06, 0x05, 0xAA])

    def test_frame_with_payload(self):
        frame = build_command_frame(CommandID.LUMA, 1, b"\x0f")
        assert frame == bytes([0xFF, 0x10, 0x01, 0x07, 0x01, 0x0F, 0xAA])
        assert len(frame) == frame_length(1)

    def test_length_byte_counts_whole_frame(self):
        payload = bytes(range(20))
        frame = build_command_frame(CommandID.TXT, 3, payload)
        assert frame[3] == len(frame) == 26

    def test_largest_short_frame(self):
        """249 payload bytes give exactly 255 bytes: still a 1-byte length."""
        frame = build_command_frame(CommandID.IMG_SAVE, 1, b"\x00" * 249)
        assert len(frame) == 255
        assert frame[2] == 0x01
        assert frame[3] == 255

    def test_long_frame_uses_two_byte_length(self):
        """Frames over 255 bytes set bit 4 and carry a big-endian length."""
        payload = b"\x11" * 250
        frame = build_command_frame(CommandID.IMG_SAVE, 7, payload)
        assert len(frame) == 5 + 1 + 250 + 1
        assert frame[2] == 0x11
        assert int.from_bytes(frame[3:5], "big") == len(frame)
        assert frame[5] == 7
        assert frame[6:-1] == payload
        assert frame[-1] == 0xAA

    def test_frame_length_adds_extra_byte_over_255(self):
        assert frame_length(249) == 255
        assert frame_length(250) == 257

    def test_rejects_out_of_range_query_id(self):
        with pytest.raises(ValueError, match="Query id"):
            build_command_frame(CommandID.CLEAR, 255)

    def test_rejects_out_of_range_command(self):
        with pytest.raises(ValueError, match="Command id"):
            build_command_frame(0x100, 0)


class TestArgumentEncoding:
    """Test command argument helpers."""

    def test_encode_bool(self):
        assert encode_bool(True) == b"\x01"
        assert encode_bool(False) == b"\x00"

    def test_encode_string_is_null_terminated(self):
        assert encode_string("ALooK") == b"ALooK\x00"

    def test_img_save_chunk_fits_short_frame(self):
        assert frame_length(IMG_SAVE_CHUNK_SIZE) < 255
