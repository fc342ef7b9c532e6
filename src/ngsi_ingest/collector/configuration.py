"""Configuration requests coming from devices.

A device publishes on ``.../configuration/commands`` a request such as
``{"type": "configuration", "fields": ["sleepTime", "warningLevel"]}``. The
requested attribute values are read from the context broker and published
back through the device's transport.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

from ngsi_ingest.collector.interfaces import ContextBroker, DeviceRegistry, Transports
from ngsi_ingest.collector.transport import TransportError
from ngsi_ingest.common.broker import ContextBrokerError
from ngsi_ingest.common.constants import CONFIGURATION_REQUEST_TYPE, TRANSPORT_MQTT
from ngsi_ingest.common.logging import LogContext, context_logger
from ngsi_ingest.common.models import DeviceDescriptor, ServiceGroup
from ngsi_ingest.common.registry import GroupNotFoundError

logger = logging.getLogger(__name__)

SEND_CONFIGURATION_FUNCTION = "send_configuration_to_device"


class ConfigurationError(Exception):
    """Raised when a configuration request cannot be served."""


class ConfigurationManager:
    """Serve configuration requests for devices."""

    def __init__(
        self,
        registry: DeviceRegistry,
        broker: ContextBroker,
        transports: Transports,
        default_resource: str = "",
        default_transport: str = TRANSPORT_MQTT,
    ) -> None:
        self.registry = registry
        self.broker = broker
        self.transports = transports
        self.default_resource = default_resource
        self.default_transport = default_transport

    def resolve_configuration(self, api_key: str) -> Optional[ServiceGroup]:
        """Find the service group for an API key, or None if there is none."""
        try:
            return self.registry.get_group(self.default_resource, api_key)
        except GroupNotFoundError:
            return None

    def select_transport(
        self, device: DeviceDescriptor, group: Optional[ServiceGroup]
    ) -> str:
        """Transport used to answer a device."""
        if device.transport:
            return device.transport
        if group is not None and group.transport:
            return group.transport
        return self.default_transport

    def manage_configuration(
        self,
        device_id: str,
        device: DeviceDescriptor,
        request: Any,
        api_key: str,
        context: LogContext,
    ) -> dict[str, Any]:
        """Answer one configuration request.

        Args:
            device_id: Device id from the topic
            device: Resolved device
            request: Decoded request element
            api_key: API key the device publishes under
            context: Transaction log context

        Returns:
            Values sent to the device

        Raises:
            ConfigurationError: If the request is invalid or cannot be served
        """
        log = context_logger(logger, context)

        if not isinstance(request, Mapping):
            raise ConfigurationError(f"Invalid configuration request: {request!r}")

        request_type = request.get("type")
        if request_type != CONFIGURATION_REQUEST_TYPE:
            raise ConfigurationError(
                f"Unsupported configuration request type: {request_type!r}"
            )

        fields = request.get("fields")
        if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
            raise ConfigurationError(
                "Configuration request 'fields' must be a list of names"
            )

        try:
            results = self.broker.query(device, fields, context)
        except ContextBrokerError as e:
            raise ConfigurationError(f"Could not read configuration values: {e}") from e

        group = self.resolve_configuration(api_key)
        transport = self.select_transport(device, group)
        log.debug(
            "Sending configuration %s to device %s through %s",
            results,
            device_id,
            transport,
        )

        try:
            self.transports.apply_function_from_binding(
                [api_key, group, device_id, results],
                SEND_CONFIGURATION_FUNCTION,
                transport,
            )
        except TransportError as e:
            raise ConfigurationError(f"Could not send configuration: {e}") from e

        return results
