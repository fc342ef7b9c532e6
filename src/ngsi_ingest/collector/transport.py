"""Southbound transport bindings used to answer devices."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from ngsi_ingest.common.models import ServiceGroup
from ngsi_ingest.common.mqtt import MQTTClient

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a message cannot be sent through a transport binding."""


def create_configuration_notification(results: dict[str, Any]) -> dict[str, Any]:
    """Build the configuration payload sent back to a device.

    The requested attribute values are sent as-is, stamped with the time the
    response was produced under ``dt``.
    """
    notification = dict(results)
    notification["dt"] = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return notification


class MQTTBinding:
    """MQTT transport binding."""

    def __init__(self, mqtt_client: MQTTClient) -> None:
        self.mqtt = mqtt_client

    def send_configuration_to_device(
        self,
        api_key: str,
        group: Optional[ServiceGroup],
        device_id: str,
        results: dict[str, Any],
    ) -> None:
        """Publish configuration values to the device's configuration topic."""
        topic = self.mqtt.topic_builder.configuration_values_topic(api_key, device_id)
        payload = json.dumps(create_configuration_notification(results))
        try:
            self.mqtt.publish(topic, payload)
        except (RuntimeError, OSError) as e:
            raise TransportError(str(e)) from e
        logger.debug("Sent configuration to %s: %s", topic, payload)


class TransportSelector:
    """Route calls to the binding registered for a transport name."""

    def __init__(self) -> None:
        self._bindings: dict[str, Any] = {}

    def register(self, transport: str, binding: Any) -> None:
        """Register a binding under a transport name (case-insensitive)."""
        self._bindings[transport.upper()] = binding

    @property
    def transports(self) -> list[str]:
        return list(self._bindings)

    def apply_function_from_binding(
        self, args: Sequence[Any], function_name: str, transport: str
    ) -> Any:
        """Call a binding function for the given transport.

        Raises:
            TransportError: If no binding provides the function
        """
        binding = self._bindings.get(transport.upper())
        if binding is None:
            raise TransportError(f"No binding registered for transport {transport}")
        function = getattr(binding, function_name, None)
        if function is None:
            raise TransportError(
                f"Transport {transport} does not support {function_name}"
            )
        return function(*args)
