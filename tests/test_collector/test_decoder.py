"""Tests for payload decoding."""

import pytest

from ngsi_ingest.collector.decoder import PayloadKind, decode_payload


class TestDecodePayload:
    """Tests for decode_payload."""

    def test_json_array_is_kept(self) -> None:
        """JSON arrays are returned unchanged."""
        decoded = decode_payload(b'[{"a": 1}, {"b": 2}]')

        assert decoded.kind is PayloadKind.BATCH
        assert decoded.records == [{"a": 1}, {"b": 2}]

    def test_json_object_is_wrapped(self) -> None:
        """A JSON object becomes a one-element list."""
        decoded = decode_payload(b'{"temp": 21, "hum": 40}')

        assert decoded.kind is PayloadKind.SINGLE
        assert decoded.records == [{"temp": 21, "hum": 40}]

    def test_json_scalar_is_wrapped(self) -> None:
        """Scalar JSON values are wrapped too."""
        decoded = decode_payload(b"21.5")

        assert decoded.records == [21.5]
        assert decoded.first == 21.5

    def test_text_falls_back_to_hex(self) -> None:
        """Non-JSON text becomes its hex encoding."""
        decoded = decode_payload(b"hello")

        assert decoded.kind is PayloadKind.RAW
        assert decoded.records == ["68656c6c6f"]

    @pytest.mark.parametrize("body", [b"NaN", b"-Infinity", b"[1, Infinity]"])
    def test_non_standard_constants_fall_back_to_hex(self, body) -> None:
        """NaN and Infinity are not JSON and are kept as raw bytes."""
        decoded = decode_payload(body)

        assert decoded.kind is PayloadKind.RAW
        assert decoded.records == [body.hex()]

    def test_binary_falls_back_to_hex(self) -> None:
        """Bytes that are not UTF-8 never raise."""
        decoded = decode_payload(b"\xff\x00\x10")

        assert decoded.kind is PayloadKind.RAW
        assert decoded.records == ["ff0010"]

    def test_structured_batch(self) -> None:
        """A batch of objects is structured."""
        assert decode_payload(b'[{"a": 1}, {"b": 2}]').is_structured

    def test_mixed_batch_is_not_structured(self) -> None:
        """A batch with scalars is not structured."""
        assert not decode_payload(b'[{"a": 1}, 2]').is_structured

    def test_empty_array_is_not_structured(self) -> None:
        """An empty array carries no records."""
        decoded = decode_payload(b"[]")

        assert decoded.records == []
        assert not decoded.is_structured
        assert decoded.first is None

    def test_raw_is_not_structured(self) -> None:
        """Hex fallbacks are opaque values."""
        assert not decode_payload(b"not json").is_structured
