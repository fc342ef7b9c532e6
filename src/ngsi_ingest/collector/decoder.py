"""Transport payload decoding.

Message bodies are decoded without any device knowledge. The result is always
a list of records so later stages never need to care whether the device sent
one object or an array of them.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)


class PayloadKind(str, Enum):
    """How a message body was decoded."""

    SINGLE = "single"
    BATCH = "batch"
    RAW = "raw"


class DecodedPayload(NamedTuple):
    """Decoded message body."""

    kind: PayloadKind
    records: list[Any]

    @property
    def is_structured(self) -> bool:
        """True when the payload is non-empty and every element is a mapping."""
        return bool(self.records) and all(
            isinstance(record, Mapping) for record in self.records
        )

    @property
    def first(self) -> Any:
        """First decoded element (the value of a single measure)."""
        return self.records[0] if self.records else None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def decode_payload(body: bytes) -> DecodedPayload:
    """Decode a message body.

    JSON arrays are kept as they are, any other JSON value is wrapped in a
    one-element list. Bodies that are not UTF-8 JSON fall back to a
    one-element list holding the hex encoding of the raw bytes. The
    non-standard constants NaN, Infinity and -Infinity are not JSON.

    Args:
        body: Raw message body

    Returns:
        Decoded payload (never raises)
    """
    try:
        text = body.decode("utf-8")
        parsed = json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        # UnicodeDecodeError and JSONDecodeError are both ValueErrors
        decoded = DecodedPayload(PayloadKind.RAW, [body.hex()])
        logger.debug("Payload is not JSON, using hex value: %s", decoded.records[0])
        return decoded

    if isinstance(parsed, list):
        decoded = DecodedPayload(PayloadKind.BATCH, parsed)
    else:
        decoded = DecodedPayload(PayloadKind.SINGLE, [parsed])

    logger.debug("Decoded %s payload: %s", decoded.kind.value, decoded.records)
    return decoded
