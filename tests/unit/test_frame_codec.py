"""Unit tests for the frame codec."""

from __future__ import annotations

import pytest

from hvac_bridge.protocol.exceptions import (
    InvalidValueError,
    MalformedFrameError,
    UnexpectedFrameError,
    UnknownEnumValueError,
)
from hvac_bridge.protocol.frame_codec import (
    DISCOVERY_PROBE,
    STATUS_REQUEST,
    build_frame,
    checksum,
    decode_discovery_reply,
    decode_status,
    encode_value,
    frame_type,
    patch_field,
    verify_checksum,
)
from hvac_bridge.registry import PropertyRegistry


class TestFrameEnvelope:
    """Sync header, length byte and checksum."""

    def test_checksum_is_sum_modulo_256(self):
        assert checksum(b"") == 0
        assert checksum(b"\x01\x02\x03") == 6
        assert checksum(b"\xff\xff") == 0xFE

    def test_discovery_probe_bytes(self):
        assert DISCOVERY_PROBE == bytes.fromhex("aaaa0602ffffff0059")

    def test_status_request_bytes(self):
        assert STATUS_REQUEST == bytes.fromhex("aaaa12a00a0a") + bytes(14) + b"\x1a"
        assert len(STATUS_REQUEST) == 21

    def test_build_frame_length_counts_bytes_after_itself(self):
        frame = build_frame(0xA0, bytes(16))
        assert frame[2] == len(frame) - 3
        assert verify_checksum(frame)

    def test_build_frame_rejects_oversized_payload(self):
        with pytest.raises(ValueError, match="does not fit"):
            _ = build_frame(0xA0, bytes(254))

    def test_checksum_of_untouched_frame_reproduces_trailer(self, status_frame: bytes):
        for frame in (status_frame, DISCOVERY_PROBE, STATUS_REQUEST):
            assert checksum(frame[:-1]) == frame[-1]

    def test_verify_checksum(self, status_frame: bytes):
        assert verify_checksum(status_frame)
        corrupted = status_frame[:-1] + bytes([(status_frame[-1] + 1) & 0xFF])
        assert not verify_checksum(corrupted)
        assert not verify_checksum(b"\xaa\xaa\x01")

    def test_frame_type(self, status_frame: bytes):
        assert frame_type(status_frame) == 0xA0
        assert frame_type(DISCOVERY_PROBE) == 0x02

    def test_frame_type_rejects_bad_header(self):
        with pytest.raises(MalformedFrameError) as exc_info:
            _ = frame_type(b"\x55\xaa\x02\xa0\x00")
        assert exc_info.value.reason == "bad_header"

    def test_frame_type_rejects_short_frame(self):
        with pytest.raises(MalformedFrameError) as exc_info:
            _ = frame_type(b"\xaa\xaa")
        assert exc_info.value.reason == "too_short"
        assert exc_info.value.data_preview == b"\xaa\xaa"


class TestDiscoveryReply:
    def test_decode_id_and_name(self, discovery_reply_factory):
        reply = decode_discovery_reply(discovery_reply_factory())
        assert reply.id == "01020304"
        assert reply.name == "LIVING"

    def test_name_padding_is_stripped(self, discovery_reply_factory):
        reply = decode_discovery_reply(discovery_reply_factory(name=b"AB  "))
        assert reply.name == "AB"

    def test_blank_name_falls_back_to_id(self, discovery_reply_factory):
        reply = decode_discovery_reply(discovery_reply_factory(device_id=b"\xde\xad\xbe\xef", name=b""))
        assert reply.id == "deadbeef"
        assert reply.name == "AC-deadbeef"

    def test_wrong_type_is_unexpected(self):
        frame = build_frame(0x04, bytes(10))
        assert frame[2] == 0x0C
        with pytest.raises(UnexpectedFrameError) as exc_info:
            _ = decode_discovery_reply(frame)
        assert exc_info.value.reason == "not_discovery_reply"

    def test_status_frame_is_unexpected(self, status_frame: bytes):
        with pytest.raises(UnexpectedFrameError):
            _ = decode_discovery_reply(status_frame)

    def test_truncated_reply_is_malformed(self, discovery_reply_factory):
        with pytest.raises(MalformedFrameError) as exc_info:
            _ = decode_discovery_reply(discovery_reply_factory()[:10])
        assert exc_info.value.reason == "truncated_discovery_reply"


class TestDecodeStatus:
    def test_decode_sample_frame(self, status_frame: bytes, registry: PropertyRegistry):
        properties = decode_status(status_frame, registry)
        assert properties == {
            "power": "off",
            "mode": "cool",
            "fan_speed": "l2",
            "temperature": 24,
            "swing_vertical": "full",
            "swing_horizontal": "default",
            "lights": "on",
            "health": "off",
            "sleep": "off",
            "blow": "off",
            "turbo": "off",
            "energy_save": "off",
            "temperature_unit": "celsius",
            "quiet": "off",
            "air": "off",
            "indoor_temperature": 23,
        }

    def test_unknown_enum_code_decodes_to_raw_integer(self, status_frame_factory, registry: PropertyRegistry):
        # swing_horizontal code 1 has no label
        payload = bytes([0x12, 0x18, 0x11, 0x01, 0x00, 0x17]) + bytes(10)
        properties = decode_status(status_frame_factory(payload), registry)
        assert properties["swing_horizontal"] == 1
        assert properties["swing_vertical"] == "full"

    def test_frame_too_short_for_registry(self, status_frame_factory, registry: PropertyRegistry):
        with pytest.raises(MalformedFrameError) as exc_info:
            _ = decode_status(status_frame_factory(bytes(3)), registry)
        assert exc_info.value.reason == "field_out_of_range"

    @pytest.mark.parametrize("cut", [slice(None, 11), slice(None, 15)])
    def test_length_byte_disagrees_with_frame(self, status_frame: bytes, registry: PropertyRegistry, cut: slice):
        """A cut frame that still covers every field keeps declaring 0x12."""
        short = status_frame[cut] + b"\x00"
        assert short[2] == 0x12
        with pytest.raises(MalformedFrameError) as exc_info:
            _ = decode_status(short, registry)
        assert exc_info.value.reason == "length_mismatch"

    def test_padded_frame_is_rejected(self, status_frame: bytes, registry: PropertyRegistry):
        with pytest.raises(MalformedFrameError) as exc_info:
            _ = decode_status(status_frame + b"\x00\x00", registry)
        assert exc_info.value.reason == "length_mismatch"

    def test_decode_ignores_checksum(self, status_frame: bytes, registry: PropertyRegistry):
        corrupted = status_frame[:-1] + b"\x00"
        assert decode_status(corrupted, registry)["temperature"] == 24


class TestEncodeValue:
    def test_enum_label(self, registry: PropertyRegistry):
        assert encode_value(registry["mode"], "heat") == 4
        assert encode_value(registry["mode"], "COOL") == 1

    def test_unknown_enum_label(self, registry: PropertyRegistry):
        with pytest.raises(UnknownEnumValueError) as exc_info:
            _ = encode_value(registry["mode"], "turbo")
        assert exc_info.value.property_name == "mode"
        assert exc_info.value.allowed == ["auto", "cool", "dry", "wind", "heat"]

    def test_enum_rejects_non_string(self, registry: PropertyRegistry):
        with pytest.raises(UnknownEnumValueError):
            _ = encode_value(registry["fan_speed"], 3)

    @pytest.mark.parametrize("value", ["on", "ON", " yes ", "1", "true", True, 1])
    def test_boolean_truthy(self, registry: PropertyRegistry, value: object):
        assert encode_value(registry["power"], value) == 1

    @pytest.mark.parametrize("value", ["off", "Off", "no", "0", "false", False, 0])
    def test_boolean_falsy(self, registry: PropertyRegistry, value: object):
        assert encode_value(registry["power"], value) == 0

    def test_boolean_rejects_other_words(self, registry: PropertyRegistry):
        with pytest.raises(UnknownEnumValueError):
            _ = encode_value(registry["lights"], "maybe")

    @pytest.mark.parametrize(("value", "expected"), [(16, 16), ("24", 24), (30.0, 30), (" 22 ", 22)])
    def test_raw_value(self, registry: PropertyRegistry, value: object, expected: int):
        assert encode_value(registry["temperature"], value) == expected

    @pytest.mark.parametrize("value", [15, 31, "hot", 24.5, True, None])
    def test_raw_value_rejected(self, registry: PropertyRegistry, value: object):
        with pytest.raises(InvalidValueError) as exc_info:
            _ = encode_value(registry["temperature"], value)
        assert exc_info.value.property_name == "temperature"


class TestPatchField:
    def _changed_offsets(self, before: bytes, after: bytes) -> set[int]:
        assert len(before) == len(after)
        return {i for i, (a, b) in enumerate(zip(before, after, strict=True)) if a != b}

    def test_power_on_patches_one_bit(self, status_frame: bytes, registry: PropertyRegistry):
        patched = patch_field(status_frame, registry["power"], "on")
        assert patched[4] == status_frame[4] | 0x80
        assert self._changed_offsets(status_frame, patched) == {4, len(status_frame) - 1}
        assert verify_checksum(patched)
        assert decode_status(patched, registry)["power"] == "on"

    def test_every_value_round_trips_through_the_frame(self, status_frame: bytes, registry: PropertyRegistry):
        baseline = decode_status(status_frame, registry)
        for descriptor in registry:
            candidates: list[object] = (
                list(descriptor.values) if descriptor.values is not None else [descriptor.min_value, descriptor.max_value]
            )
            for value in candidates:
                patched = patch_field(status_frame, descriptor, value)
                assert self._changed_offsets(status_frame, patched) <= {descriptor.offset, len(status_frame) - 1}
                assert verify_checksum(patched)
                decoded = decode_status(patched, registry)
                assert decoded[descriptor.name] == value
                others = {k: v for k, v in decoded.items() if k != descriptor.name}
                assert others == {k: v for k, v in baseline.items() if k != descriptor.name}

    def test_neighbouring_bits_preserved(self, status_frame_factory, registry: PropertyRegistry):
        frame = status_frame_factory(bytes([0xFF, 0x18, 0xFF, 0xFF, 0xFF, 0x17]) + bytes(10))
        patched = patch_field(frame, registry["fan_speed"], "l0")
        assert patched[4] == 0xF8
        patched = patch_field(frame, registry["health"], "off")
        assert patched[7] == 0xFD

    def test_invalid_value_leaves_frame_untouched(self, status_frame: bytes, registry: PropertyRegistry):
        with pytest.raises(InvalidValueError):
            _ = patch_field(status_frame, registry["temperature"], 40)

    def test_patch_rejects_short_frame(self, status_frame_factory, registry: PropertyRegistry):
        with pytest.raises(MalformedFrameError):
            _ = patch_field(status_frame_factory(bytes(2)), registry["quiet"], "mode1")

    def test_patch_rejects_length_mismatch(self, status_frame: bytes, registry: PropertyRegistry):
        with pytest.raises(MalformedFrameError) as exc_info:
            _ = patch_field(status_frame[:11] + b"\x00", registry["power"], "on")
        assert exc_info.value.reason == "length_mismatch"
