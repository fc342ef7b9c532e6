"""Attribute type inference."""

from typing import Optional

from ngsi_ingest.common.constants import (
    DEFAULT_ATTRIBUTE_TYPE,
    TIMESTAMP_ATTRIBUTE,
    TIMESTAMP_TYPE_NGSI2,
)
from ngsi_ingest.common.models import DeviceDescriptor


def infer_type(
    attribute_name: str,
    device: DeviceDescriptor,
    hint: Optional[str] = None,
) -> str:
    """Decide the NGSI type of an attribute.

    Resolution order (first match wins):

    1. The type declared for the attribute in ``device.active``.
    2. The timestamp type for the reserved timestamp attribute.
    3. The hint supplied with the value (e.g. an NGSI envelope's ``type``).
    4. The default attribute type.

    Args:
        attribute_name: Attribute name as received
        device: Device the measure belongs to
        hint: Type carried alongside the value, if any

    Returns:
        Attribute type
    """
    for attribute in device.active:
        if attribute.name == attribute_name:
            return attribute.type

    if attribute_name.lower() == TIMESTAMP_ATTRIBUTE.lower():
        return TIMESTAMP_TYPE_NGSI2

    if hint:
        return hint

    return DEFAULT_ATTRIBUTE_TYPE
