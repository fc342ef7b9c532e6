"""Device and service group registry.

The collector resolves every incoming message to a provisioned device. This
module keeps the registry in memory and can seed it from a YAML file:

    groups:
      - api_key: 1234
        resource: /iot/json
        entity_type: Thing
        transport: MQTT
        service: smartcity
        subservice: /parking
    devices:
      - id: sensor-01
        type: Thing
        name: urn:ngsi:Thing:sensor-01
        api_key: 1234
        payload_type: ngsiv2
        active:
          - name: temperature
            type: Number
"""

import logging
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ngsi_ingest.common.models import DeviceDescriptor, ServiceGroup

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Base error for registry lookups and loading."""


class DeviceNotFoundError(RegistryError):
    """No device is provisioned with the requested id."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device not found: {device_id}")
        self.device_id = device_id


class GroupNotFoundError(RegistryError):
    """No service group matches the requested resource and API key."""

    def __init__(self, resource: str, api_key: str) -> None:
        super().__init__(
            f"Service group not found: resource={resource!r} apikey={api_key!r}"
        )
        self.resource = resource
        self.api_key = api_key


class InMemoryDeviceRegistry:
    """Thread-safe in-memory device registry."""

    def __init__(self) -> None:
        self._devices: dict[str, DeviceDescriptor] = {}
        self._groups: dict[tuple[str, str], ServiceGroup] = {}
        self._lock = threading.Lock()

    def add_device(self, device: DeviceDescriptor) -> None:
        """Register (or replace) a device."""
        with self._lock:
            self._devices[device.id] = device
        logger.debug("Registered device %s (type=%s)", device.id, device.type)

    def add_group(self, group: ServiceGroup) -> None:
        """Register (or replace) a service group."""
        with self._lock:
            self._groups[(group.resource, group.api_key)] = group
        logger.debug("Registered service group %s%s", group.api_key, group.resource)

    def get_device(self, device_id: str) -> DeviceDescriptor:
        """Resolve a device by id.

        Raises:
            DeviceNotFoundError: If the device is not provisioned
        """
        with self._lock:
            device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    def get_group(self, resource: str, api_key: str) -> ServiceGroup:
        """Resolve a service group by resource and API key.

        A group registered for the exact resource wins; otherwise the first
        group with a matching API key is returned.

        Raises:
            GroupNotFoundError: If no group matches
        """
        with self._lock:
            group = self._groups.get((resource, api_key))
            if group is None:
                group = next(
                    (g for g in self._groups.values() if g.api_key == api_key),
                    None,
                )
        if group is None:
            raise GroupNotFoundError(resource, api_key)
        return group

    @property
    def device_count(self) -> int:
        with self._lock:
            return len(self._devices)

    @property
    def group_count(self) -> int:
        with self._lock:
            return len(self._groups)


def load_registry_file(
    path: str, registry: InMemoryDeviceRegistry | None = None
) -> InMemoryDeviceRegistry:
    """Load service groups and devices from a YAML file.

    Args:
        path: YAML file path
        registry: Registry to populate (a new one is created if omitted)

    Returns:
        Populated registry

    Raises:
        RegistryError: If the file is malformed
    """
    registry = registry or InMemoryDeviceRegistry()
    file_path = Path(path)
    if not file_path.exists():
        logger.warning("Device registry file not found: %s", path)
        return registry

    with file_path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as e:
            raise RegistryError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise RegistryError(f"Expected a mapping at the top of {path}")

    groups = _as_list(data.get("groups"), "groups", path)
    devices = _as_list(data.get("devices"), "devices", path)

    try:
        for entry in groups:
            registry.add_group(ServiceGroup.model_validate(_stringify_keys(entry)))
        for entry in devices:
            registry.add_device(DeviceDescriptor.model_validate(_stringify_keys(entry)))
    except ValidationError as e:
        raise RegistryError(f"Invalid registry entry in {path}: {e}") from e

    logger.info(
        "Loaded %d service groups and %d devices from %s",
        len(groups),
        len(devices),
        path,
    )
    return registry


def _as_list(value: Any, key: str, path: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise RegistryError(f"'{key}' in {path} must be a list")
    return value


def _stringify_keys(entry: Any) -> Any:
    """YAML reads bare numeric API keys as ints; the registry keys are strings."""
    if not isinstance(entry, dict):
        return entry
    normalized = dict(entry)
    for key in ("api_key", "id"):
        if key in normalized and normalized[key] is not None:
            normalized[key] = str(normalized[key])
    return normalized
