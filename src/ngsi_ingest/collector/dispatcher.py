"""Dispatch decoded messages to the context broker or configuration flow."""

import logging
from collections.abc import Sequence
from typing import Any, Optional

from ngsi_ingest.collector.configuration import ConfigurationError, ConfigurationManager
from ngsi_ingest.collector.decoder import DecodedPayload
from ngsi_ingest.collector.extractor import ExtractionResult, extract_attributes
from ngsi_ingest.collector.interfaces import Alarms, ContextBroker, Transactions
from ngsi_ingest.collector.metrics import CollectorMetrics
from ngsi_ingest.collector.router import Flow, TopicParts
from ngsi_ingest.collector.type_inference import infer_type
from ngsi_ingest.common.constants import MQTTB_ALARM, ORION_ALARM
from ngsi_ingest.common.logging import LogContext, context_logger
from ngsi_ingest.common.models import AttributeRecord, DeviceDescriptor

logger = logging.getLogger(__name__)


def as_measure_groups(values: ExtractionResult) -> list[list[AttributeRecord]]:
    """Normalize extractor output to one attribute list per measure."""
    if values and isinstance(values[0], list):
        return [group for group in values if isinstance(group, list)]
    return [values]  # type: ignore[list-item]


class UpdateDispatcher:
    """Run the selected flow for a message from a resolved device.

    Every backend update and every configuration request runs inside its own
    transaction scope. Failures are logged and signalled through alarms; they
    never propagate to the transport and never stop sibling measures.
    """

    def __init__(
        self,
        broker: ContextBroker,
        configuration: ConfigurationManager,
        transactions: Transactions,
        alarms: Alarms,
        metrics: Optional[CollectorMetrics] = None,
    ) -> None:
        self.broker = broker
        self.configuration = configuration
        self.transactions = transactions
        self.alarms = alarms
        self.metrics = metrics

    def dispatch(
        self,
        parts: TopicParts,
        device: DeviceDescriptor,
        payload: DecodedPayload,
        flow: Flow,
        context: LogContext,
    ) -> None:
        """Process a message according to its flow.

        Args:
            parts: Parsed topic
            device: Resolved device
            payload: Decoded message body
            flow: Selected flow
            context: Message log context
        """
        if flow is Flow.CONFIGURATION:
            api_key = device.api_key or parts.api_key
            self.manage_configuration_request(
                parts.device_id, device, payload.records, api_key, context
            )
        elif flow is Flow.SINGLE_MEASURE:
            if parts.attribute is None:
                context_logger(logger, context).error(
                    "Couldn't process single measure for device %s: "
                    "topic has no attribute",
                    parts.device_id,
                )
                return
            self.single_measure(
                parts.device_id, parts.attribute, device, payload, context
            )
        else:
            self.multiple_measures(parts.device_id, device, payload.records, context)

    def manage_configuration_request(
        self,
        device_id: str,
        device: DeviceDescriptor,
        requests: Sequence[Any],
        api_key: str,
        context: LogContext,
    ) -> None:
        """Serve each configuration request of a message."""
        for request in requests:
            with self.transactions.transaction(context) as tx_context:
                log = context_logger(logger, tx_context)
                try:
                    self.configuration.manage_configuration(
                        device_id, device, request, api_key, tx_context
                    )
                except ConfigurationError as e:
                    log.error(
                        "Configuration request failed for device %s: %s", device_id, e
                    )
                    self.alarms.raise_alarm(MQTTB_ALARM, e)
                    self._count_configuration("error")
                else:
                    self.alarms.release(MQTTB_ALARM)
                    log.debug("Configuration request finished for device %s", device_id)
                    self._count_configuration("success")

    def single_measure(
        self,
        device_id: str,
        attribute: str,
        device: DeviceDescriptor,
        payload: DecodedPayload,
        context: LogContext,
    ) -> None:
        """Update one attribute with the first decoded value."""
        values = [
            AttributeRecord(
                name=attribute,
                type=infer_type(attribute, device),
                value=payload.first,
            )
        ]
        context_logger(logger, context).debug(
            "Single measure for device %s attribute %s: %s",
            device_id,
            attribute,
            [v.as_dict() for v in values],
        )
        self._send_update(device_id, device, values, Flow.SINGLE_MEASURE, context)

    def multiple_measures(
        self,
        device_id: str,
        device: DeviceDescriptor,
        measures: Sequence[Any],
        context: LogContext,
    ) -> None:
        """Update attributes from each decoded record."""
        log = context_logger(logger, context)
        log.debug("Processing multiple measures for device %s", device_id)

        for measure in measures:
            values = extract_attributes(device, measure, device.payload_type, context)
            for group in as_measure_groups(values):
                if not group:
                    log.warning("Skipping empty measure for device %s", device_id)
                    continue
                self._send_update(device_id, device, group, Flow.MULTI_MEASURE, context)

    def _send_update(
        self,
        device_id: str,
        device: DeviceDescriptor,
        values: list[AttributeRecord],
        flow: Flow,
        context: LogContext,
    ) -> None:
        with self.transactions.transaction(context) as tx_context:
            log = context_logger(logger, tx_context)
            try:
                self.broker.update(
                    device_id, device.type, "", values, device, tx_context
                )
            except Exception as e:
                log.error(
                    "MEASURES-002: Couldn't send the updated values to the "
                    "Context Broker due to an error: %s",
                    e,
                )
                self.alarms.raise_alarm(ORION_ALARM, e)
                self._count_update(flow, "error")
            else:
                self.alarms.release(ORION_ALARM)
                log.info("Measures for device %s successfully updated", device_id)
                self._count_update(flow, "success")

    def _count_update(self, flow: Flow, result: str) -> None:
        if self.metrics:
            self.metrics.measure_updates.labels(flow=flow.value, result=result).inc()

    def _count_configuration(self, result: str) -> None:
        if self.metrics:
            self.metrics.configuration_requests.labels(result=result).inc()
