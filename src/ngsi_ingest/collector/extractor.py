"""Attribute extraction from decoded measure records.

Three payload dialects are supported:

* ``plain``: a flat object whose keys are attribute names and whose values
  are the attribute values.
* ``ngsiv2``: an NGSI-v2 entity (``{"id", "type", "<attr>": {"type", "value",
  "metadata"}}``) or a batch envelope (``{"actionType", "entities": [...]}``).
* ``ngsild``: an NGSI-LD entity or batch envelope, where attributes are
  ``Property``/``GeoProperty`` (``value``) or ``Relationship`` (``object``)
  and every other sub-attribute becomes metadata.

A single entity produces a flat attribute list. A batch of several entities
produces one attribute list per entity, which the dispatcher sends as
separate measures.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from ngsi_ingest.collector.type_inference import infer_type
from ngsi_ingest.common.constants import LD_CONTEXT_ATTRIBUTE
from ngsi_ingest.common.logging import LogContext, context_logger
from ngsi_ingest.common.models import AttributeRecord, DeviceDescriptor, Dialect

logger = logging.getLogger(__name__)

AttributeList = list[AttributeRecord]
ExtractionResult = Union[AttributeList, list[AttributeList]]

IDENTITY_KEYS = ("id", "type")
LD_VALUE_TYPES = ("property", "geoproperty")
LD_RELATIONSHIP_TYPE = "relationship"
LD_RESERVED_KEYS = ("type", "value", "object")


def extract_attributes(
    device: DeviceDescriptor,
    record: Mapping[str, Any],
    dialect: Optional[Dialect] = None,
    context: Optional[LogContext] = None,
) -> ExtractionResult:
    """Build attribute records from one decoded measure record.

    Args:
        device: Device the measure belongs to
        record: Decoded record
        dialect: Payload dialect (defaults to the device's payload type)
        context: Message log context

    Returns:
        A flat attribute list, or one attribute list per entity when the
        record carries more than one entity
    """
    dialect = Dialect.from_value(
        dialect if dialect is not None else device.payload_type
    )
    log = context_logger(logger, context or LogContext())
    log.debug("Extracting attributes from %s using dialect %s", record, dialect.value)

    if dialect is Dialect.PLAIN:
        return _extract_plain(device, record)

    entities = _entities(record)
    per_entity: list[AttributeList] = []
    for entity in entities:
        if not isinstance(entity, Mapping):
            log.warning("Skipping entity that is not an object: %r", entity)
            continue
        per_entity.append(_extract_entity(device, entity, dialect))

    if len(entities) > 1:
        return per_entity
    return per_entity[0] if per_entity else []


def _extract_plain(
    device: DeviceDescriptor, record: Mapping[str, Any]
) -> AttributeList:
    return [
        AttributeRecord(name=key, type=infer_type(key, device), value=value)
        for key, value in record.items()
    ]


def _entities(record: Mapping[str, Any]) -> list[Any]:
    """Normalize a record to the list of entities it carries."""
    if "actionType" in record and "entities" in record:
        entities = record["entities"]
        return list(entities) if isinstance(entities, list) else [entities]
    return [record]


def _extract_entity(
    device: DeviceDescriptor,
    entity: Mapping[str, Any],
    dialect: Dialect,
) -> AttributeList:
    values: AttributeList = []
    for key, attr in entity.items():
        if key in IDENTITY_KEYS:
            # Entity identity travels as a measure; the broker client renames it
            values.append(
                AttributeRecord(name=key, type=infer_type(key, device), value=attr)
            )
        elif dialect is Dialect.NGSIV2:
            values.append(_ngsiv2_attribute(device, key, attr))
        else:
            values.append(_ngsild_attribute(device, key, attr))
    return values


def _type_hint(attr: Mapping[str, Any]) -> Optional[str]:
    hint = attr.get("type")
    return hint if isinstance(hint, str) and hint else None


def _ngsiv2_attribute(device: DeviceDescriptor, key: str, attr: Any) -> AttributeRecord:
    if not isinstance(attr, Mapping):
        return AttributeRecord(name=key, type=infer_type(key, device), value=attr)

    return AttributeRecord(
        name=key,
        type=infer_type(key, device, _type_hint(attr)),
        value=attr.get("value"),
        metadata=attr.get("metadata"),
    )


def _ngsild_attribute(device: DeviceDescriptor, key: str, attr: Any) -> AttributeRecord:
    if key.lower() == LD_CONTEXT_ATTRIBUTE:
        return AttributeRecord(name=key, type=LD_CONTEXT_ATTRIBUTE, value=attr)

    if not isinstance(attr, Mapping):
        return AttributeRecord(name=key, type=infer_type(key, device), value=attr)

    hint = _type_hint(attr)
    value: Any = None
    if hint is not None:
        if hint.lower() in LD_VALUE_TYPES:
            value = attr.get("value")
        elif hint.lower() == LD_RELATIONSHIP_TYPE:
            value = attr.get("object")

    metadata = {
        field: {"value": field_value}
        for field, field_value in attr.items()
        if field.lower() not in LD_RESERVED_KEYS
    }

    return AttributeRecord(
        name=key,
        type=infer_type(key, device, hint),
        value=value,
        metadata=metadata or None,
    )
