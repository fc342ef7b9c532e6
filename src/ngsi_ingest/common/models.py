"""Domain models for devices, service groups and attribute records."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ngsi_ingest.common.constants import (
    PAYLOAD_NGSILD,
    PAYLOAD_NGSIV2,
    PAYLOAD_PLAIN,
)


class Dialect(str, Enum):
    """Payload dialect a device declares for its measures."""

    PLAIN = PAYLOAD_PLAIN
    NGSIV2 = PAYLOAD_NGSIV2
    NGSILD = PAYLOAD_NGSILD

    @classmethod
    def from_value(cls, value: Any) -> "Dialect":
        """Resolve a configured payload type (case-insensitive).

        Missing or unknown values resolve to PLAIN.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for dialect in cls:
                if dialect.value == normalized:
                    return dialect
        return cls.PLAIN


class ActiveAttribute(BaseModel):
    """Attribute declared on a device or service group."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    object_id: Optional[str] = None


class ServiceGroup(BaseModel):
    """Service group (provisioned API key) devices belong to."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    resource: str = ""
    entity_type: Optional[str] = None
    transport: Optional[str] = None
    service: Optional[str] = None
    subservice: Optional[str] = None


class DeviceDescriptor(BaseModel):
    """Provisioned device as known by the registry.

    The payload dialect is resolved once when the descriptor is built, so
    every message from the device is extracted the same way.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    type: str = "Thing"
    name: Optional[str] = None
    service: Optional[str] = None
    subservice: Optional[str] = None
    api_key: Optional[str] = None
    transport: Optional[str] = None
    payload_type: Dialect = Dialect.PLAIN
    active: tuple[ActiveAttribute, ...] = Field(default_factory=tuple)

    @field_validator("payload_type", mode="before")
    @classmethod
    def _resolve_dialect(cls, value: Any) -> Dialect:
        return Dialect.from_value(value)

    @property
    def entity_name(self) -> str:
        """Entity id used in the context broker."""
        return self.name or f"{self.type}:{self.id}"


@dataclass(frozen=True)
class AttributeRecord:
    """Typed measure ready to be sent to the context broker."""

    name: str
    type: str
    value: Any = None
    metadata: Optional[dict[str, Any]] = None

    def as_dict(self) -> dict[str, Any]:
        """Serialize, leaving out metadata when there is none."""
        data: dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "value": self.value,
        }
        if self.metadata is not None:
            data["metadata"] = self.metadata
        return data
