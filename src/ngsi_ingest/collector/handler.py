"""Transport message entry points.

``MessageHandler`` is what transports call for every incoming message. It
opens a message-scoped log context, decodes the body, parses the topic,
resolves the device and hands the message to the ``UpdateDispatcher``.
"""

import logging
from typing import Optional

from ngsi_ingest.collector.decoder import decode_payload
from ngsi_ingest.collector.dispatcher import UpdateDispatcher
from ngsi_ingest.collector.interfaces import Alarms, DeviceRegistry
from ngsi_ingest.collector.metrics import CollectorMetrics
from ngsi_ingest.collector.router import parse_topic, select_flow
from ngsi_ingest.common.constants import MQTTB_ALARM, TRANSPORT_AMQP, TRANSPORT_MQTT
from ngsi_ingest.common.logging import LogContext, context_logger
from ngsi_ingest.common.registry import DeviceNotFoundError

logger = logging.getLogger(__name__)


class MessageHandler:
    """Handle raw transport messages addressed to device topics."""

    def __init__(
        self,
        registry: DeviceRegistry,
        dispatcher: UpdateDispatcher,
        alarms: Alarms,
        metrics: Optional[CollectorMetrics] = None,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self.alarms = alarms
        self.metrics = metrics

    def handle_mqtt_message(self, topic: str, body: bytes) -> None:
        """Entry point for MQTT messages."""
        self._count_received(TRANSPORT_MQTT)
        context = LogContext.new()
        context_logger(logger, context).debug("MQTT message on topic %s", topic)
        self.handle_message(topic, body, context)

    def handle_amqp_message(self, topic: str, body: bytes) -> None:
        """Entry point for AMQP messages (routing key used as topic)."""
        self._count_received(TRANSPORT_AMQP)
        context = LogContext.new()
        context_logger(logger, context).debug("AMQP message on topic %s", topic)
        self.handle_message(topic, body, context)

    def handle_message(
        self, topic: str, body: bytes, context: Optional[LogContext] = None
    ) -> None:
        """Process one message.

        Args:
            topic: Topic of the form /<apikey>/<resource>/<device_id>/<action>
                with an optional trailing /<attribute>
            body: Raw message body
            context: Message log context (a new one is created if omitted)
        """
        context = context or LogContext.new()
        log = context_logger(logger, context)

        parts = parse_topic(topic)
        payload = decode_payload(body)
        if parts is None:
            log.warning("Could not parse topic %s", topic)
            self._count_rejected("invalid_topic")
            return

        if parts.is_configuration_response():
            # Our own configuration response echoed back by the subscription
            log.debug("Ignoring configuration response on %s", topic)
            return

        log.debug(
            "Topic parts: apikey=%s device=%s action=%s attribute=%s",
            parts.api_key,
            parts.device_id,
            parts.action,
            parts.attribute,
        )

        self.alarms.release(MQTTB_ALARM)

        try:
            device = self.registry.get_device(parts.device_id)
        except DeviceNotFoundError:
            log.warning("Device not found for topic %s", topic)
            self._count_rejected("device_not_found")
            return

        device_context = context.for_service(device)
        device_log = context_logger(logger, device_context)
        device_log.debug("Found device %s (type=%s)", device.id, device.type)

        flow = select_flow(parts, payload)
        if flow is None:
            device_log.error(
                "Couldn't process message %r for device %s due to format issues",
                body,
                device.id,
            )
            self._count_rejected("format_mismatch")
            return

        device_log.debug("Dispatching %s for device %s", flow.value, device.id)
        self.dispatcher.dispatch(parts, device, payload, flow, device_context)

    def _count_received(self, transport: str) -> None:
        if self.metrics:
            self.metrics.messages_received.labels(transport=transport).inc()

    def _count_rejected(self, reason: str) -> None:
        if self.metrics:
            self.metrics.messages_rejected.labels(reason=reason).inc()
