"""Tests for the update dispatcher."""

from unittest.mock import ANY

from ngsi_ingest.collector.configuration import ConfigurationError
from ngsi_ingest.collector.decoder import decode_payload
from ngsi_ingest.collector.dispatcher import as_measure_groups
from ngsi_ingest.collector.router import Flow, parse_topic
from ngsi_ingest.common.broker import ContextBrokerError
from ngsi_ingest.common.constants import MQTTB_ALARM, ORION_ALARM
from ngsi_ingest.common.models import AttributeRecord


def _sample(metrics, name, labels):
    return metrics.registry.get_sample_value(name, labels) or 0.0


class TestSingleMeasure:
    """Tests for the single-measure flow."""

    def test_updates_one_attribute(
        self, dispatcher, mock_broker, device, context, transactions
    ) -> None:
        """The first decoded value is sent for the topic attribute."""
        dispatcher.dispatch(
            parse_topic("/k/x/dev1/attrs/temp"),
            device,
            decode_payload(b"21"),
            Flow.SINGLE_MEASURE,
            context,
        )

        mock_broker.update.assert_called_once_with(
            "dev1",
            "Thing",
            "",
            [AttributeRecord(name="temp", type="Number", value=21)],
            device,
            ANY,
        )
        assert transactions.closed_count == 1
        assert transactions.open_count == 0

    def test_missing_attribute_is_rejected(
        self, dispatcher, mock_broker, device, context, transactions
    ) -> None:
        """A single measure without attribute segment is not sent."""
        dispatcher.dispatch(
            parse_topic("/k/x/dev1/attrs"),
            device,
            decode_payload(b"21"),
            Flow.SINGLE_MEASURE,
            context,
        )

        mock_broker.update.assert_not_called()
        assert transactions.closed_count == 0

    def test_raw_value_is_sent_as_hex(
        self, dispatcher, mock_broker, device, context
    ) -> None:
        """Opaque payloads are sent as their hex string."""
        dispatcher.dispatch(
            parse_topic("/k/x/dev1/attrs/blob"),
            device,
            decode_payload(b"\xde\xad"),
            Flow.SINGLE_MEASURE,
            context,
        )

        values = mock_broker.update.call_args.args[3]
        assert values == [AttributeRecord(name="blob", type="string", value="dead")]

    def test_backend_failure_is_contained(
        self,
        dispatcher,
        mock_broker,
        mock_alarms,
        device,
        context,
        transactions,
        metrics,
    ) -> None:
        """A failed update raises an alarm and still closes the transaction."""
        error = ContextBrokerError("broker down")
        mock_broker.update.side_effect = error

        dispatcher.dispatch(
            parse_topic("/k/x/dev1/attrs/temp"),
            device,
            decode_payload(b"21"),
            Flow.SINGLE_MEASURE,
            context,
        )

        mock_alarms.raise_alarm.assert_called_once_with(ORION_ALARM, error)
        assert transactions.closed_count == 1
        assert (
            _sample(
                metrics,
                "ngsi_ingest_measure_updates_total",
                {"flow": "single_measure", "result": "error"},
            )
            == 1.0
        )


class TestMultipleMeasures:
    """Tests for the multi-measure flow."""

    def test_each_element_is_sent(
        self, dispatcher, mock_broker, device, context
    ) -> None:
        """Every decoded record becomes its own update."""
        dispatcher.dispatch(
            parse_topic("/k/x/dev1/attrs"),
            device,
            decode_payload(b'[{"temp": 21}, {"temp": 22, "hum": 40}]'),
            Flow.MULTI_MEASURE,
            context,
        )

        assert mock_broker.update.call_count == 2
        first, second = (call.args[3] for call in mock_broker.update.call_args_list)
        assert first == [AttributeRecord(name="temp", type="Number", value=21)]
        assert [record.name for record in second] == ["temp", "hum"]

    def test_failure_does_not_block_siblings(
        self, dispatcher, mock_broker, mock_alarms, device, context, transactions
    ) -> None:
        """One failed element out of three leaves the others dispatched."""
        mock_broker.update.side_effect = [None, ContextBrokerError("boom"), None]

        dispatcher.dispatch(
            parse_topic("/k/x/dev1/attrs"),
            device,
            decode_payload(b'[{"temp": 1}, {"temp": 2}, {"temp": 3}]'),
            Flow.MULTI_MEASURE,
            context,
        )

        assert mock_broker.update.call_count == 3
        assert transactions.closed_count == 3
        assert transactions.open_count == 0
        mock_alarms.raise_alarm.assert_called_once()
        assert mock_alarms.raise_alarm.call_args.args[0] == ORION_ALARM

    def test_ngsiv2_batch_splits_per_entity(
        self, dispatcher, mock_broker, ngsiv2_device, context, transactions
    ) -> None:
        """A multi-entity envelope sends one update per entity."""
        body = (
            b'{"actionType": "append", "entities": ['
            b'{"id": "e1", "type": "T", "temp": {"value": 1, "type": "Number"}},'
            b'{"id": "e2", "type": "T", "temp": {"value": 2, "type": "Number"}}]}'
        )

        dispatcher.dispatch(
            parse_topic("/k/x/dev2/attrs"),
            ngsiv2_device,
            decode_payload(body),
            Flow.MULTI_MEASURE,
            context,
        )

        assert mock_broker.update.call_count == 2
        sent_ids = [call.args[3][0].value for call in mock_broker.update.call_args_list]
        assert sent_ids == ["e1", "e2"]
        assert transactions.closed_count == 2

    def test_empty_record_is_skipped(
        self, dispatcher, mock_broker, device, context, transactions
    ) -> None:
        """Records without attributes are not sent."""
        dispatcher.dispatch(
            parse_topic("/k/x/dev1/attrs"),
            device,
            decode_payload(b"{}"),
            Flow.MULTI_MEASURE,
            context,
        )

        mock_broker.update.assert_not_called()
        assert transactions.closed_count == 0

    def test_success_releases_alarm(
        self, dispatcher, mock_broker, mock_alarms, device, context
    ) -> None:
        """A successful update releases the broker alarm."""
        dispatcher.dispatch(
            parse_topic("/k/x/dev1/attrs"),
            device,
            decode_payload(b'{"temp": 1}'),
            Flow.MULTI_MEASURE,
            context,
        )

        mock_alarms.release.assert_called_once_with(ORION_ALARM)


class TestConfigurationRequest:
    """Tests for the configuration flow."""

    def test_each_request_is_served(
        self, dispatcher, mock_configuration, mock_alarms, device, context, transactions
    ) -> None:
        """Every request element is served in its own transaction."""
        body = (
            b'[{"type": "configuration", "fields": ["a"]},'
            b' {"type": "configuration", "fields": ["b"]}]'
        )

        dispatcher.dispatch(
            parse_topic("/k/x/dev1/configuration/commands"),
            device,
            decode_payload(body),
            Flow.CONFIGURATION,
            context,
        )

        assert mock_configuration.manage_configuration.call_count == 2
        device_id, used_device, request, api_key, _ctx = (
            mock_configuration.manage_configuration.call_args_list[0].args
        )
        assert device_id == "dev1"
        assert used_device is device
        assert request == {"type": "configuration", "fields": ["a"]}
        assert api_key == "1234"
        assert mock_alarms.release.call_count == 2
        mock_alarms.release.assert_called_with(MQTTB_ALARM)
        assert transactions.closed_count == 2

    def test_topic_api_key_used_when_device_has_none(
        self, dispatcher, mock_configuration, ngsiv2_device, context
    ) -> None:
        """The topic's API key is the fallback."""
        dispatcher.dispatch(
            parse_topic("/k/x/dev2/configuration/commands"),
            ngsiv2_device,
            decode_payload(b'{"type": "configuration", "fields": ["a"]}'),
            Flow.CONFIGURATION,
            context,
        )

        assert mock_configuration.manage_configuration.call_args.args[3] == "k"

    def test_failure_raises_alarm(
        self, dispatcher, mock_configuration, mock_alarms, device, context, transactions
    ) -> None:
        """A failed configuration request raises the transport alarm."""
        error = ConfigurationError("unsupported")
        mock_configuration.manage_configuration.side_effect = error

        dispatcher.dispatch(
            parse_topic("/k/x/dev1/configuration/commands"),
            device,
            decode_payload(b'{"type": "subscription", "fields": ["a"]}'),
            Flow.CONFIGURATION,
            context,
        )

        mock_alarms.raise_alarm.assert_called_once_with(MQTTB_ALARM, error)
        mock_alarms.release.assert_not_called()
        assert transactions.closed_count == 1


class TestAsMeasureGroups:
    """Tests for extractor output normalization."""

    def test_flat_list_is_wrapped(self) -> None:
        """A flat list becomes a single group."""
        record = AttributeRecord(name="a", type="string", value=1)

        assert as_measure_groups([record]) == [[record]]

    def test_nested_list_is_kept(self) -> None:
        """Nested lists are already grouped."""
        a = AttributeRecord(name="a", type="string", value=1)
        b = AttributeRecord(name="b", type="string", value=2)

        assert as_measure_groups([[a], [b]]) == [[a], [b]]

    def test_empty_list(self) -> None:
        """An empty result is one empty group."""
        assert as_measure_groups([]) == [[]]
