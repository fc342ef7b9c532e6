"""Topic parsing and flow selection.

Device topics look like ``/<api_key>/<resource>/<device_id>/<action>[/<attribute>]``.
After normalizing to a leading ``/`` the segment list is
``["", api_key, resource, device_id, action, attribute]``, so the device id is
always segment 3 and a single-measure attribute is segment 5.
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional

from ngsi_ingest.collector.decoder import DecodedPayload
from ngsi_ingest.common.constants import (
    COMMANDS_TOKEN,
    CONFIGURATION_TOKEN,
    CONFIGURATION_VALUES_TOKEN,
)

DEVICE_ID_INDEX = 3
ACTION_INDEX = 4
ATTRIBUTE_INDEX = 5


class Flow(str, Enum):
    """Processing flow selected for a message."""

    CONFIGURATION = "configuration"
    SINGLE_MEASURE = "single_measure"
    MULTI_MEASURE = "multi_measure"


class TopicParts(NamedTuple):
    """Structural parts of a device topic."""

    api_key: str
    resource: str
    device_id: str
    action: Optional[str]
    attribute: Optional[str]
    segments: tuple[str, ...]

    def is_configuration_request(self) -> bool:
        """Check for the configuration/commands sentinel segments."""
        return _has_pair(self.segments, CONFIGURATION_TOKEN, COMMANDS_TOKEN)

    def is_configuration_response(self) -> bool:
        """Check for the configuration/values segments of a collector response."""
        return _has_pair(
            self.segments, CONFIGURATION_TOKEN, CONFIGURATION_VALUES_TOKEN
        )


def _has_pair(segments: tuple[str, ...], first: str, second: str) -> bool:
    """Check for first/second at segments 3/4 or 4/5."""
    return any(
        len(segments) > index + 1
        and segments[index] == first
        and segments[index + 1] == second
        for index in (DEVICE_ID_INDEX, ACTION_INDEX)
    )


def _segment(segments: tuple[str, ...], index: int) -> Optional[str]:
    if len(segments) > index and segments[index]:
        return segments[index]
    return None


def parse_topic(topic: str) -> Optional[TopicParts]:
    """Parse a device topic.

    Args:
        topic: Transport topic, with or without leading slash

    Returns:
        Topic parts, or None if the topic has no device id segment
    """
    if not topic.startswith("/"):
        topic = "/" + topic
    segments = tuple(topic.split("/"))

    device_id = _segment(segments, DEVICE_ID_INDEX)
    if device_id is None:
        return None

    return TopicParts(
        api_key=segments[1],
        resource=segments[2],
        device_id=device_id,
        action=_segment(segments, ACTION_INDEX),
        attribute=_segment(segments, ATTRIBUTE_INDEX),
        segments=segments,
    )


def select_flow(parts: TopicParts, payload: DecodedPayload) -> Optional[Flow]:
    """Decide how a message is processed.

    Args:
        parts: Parsed topic
        payload: Decoded message body

    Returns:
        Selected flow, or None when the topic/payload combination matches
        no known shape
    """
    if parts.is_configuration_request() and payload.records:
        return Flow.CONFIGURATION
    if parts.attribute:
        return Flow.SINGLE_MEASURE
    if payload.is_structured:
        return Flow.MULTI_MEASURE
    return None
