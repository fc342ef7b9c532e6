"""Prometheus metrics for the collector."""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

from ngsi_ingest import __version__


class CollectorMetrics:
    """Collector counters.

    Each instance owns its own CollectorRegistry so tests and multiple
    collectors in one process do not share global state.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        info = Gauge(
            "ngsi_ingest_info",
            "NGSI Ingest collector info",
            ["version"],
            registry=self.registry,
        )
        info.labels(version=__version__).set(1)

        self.messages_received = Counter(
            "ngsi_ingest_messages_received_total",
            "Messages received by transport",
            ["transport"],
            registry=self.registry,
        )
        self.messages_rejected = Counter(
            "ngsi_ingest_messages_rejected_total",
            "Messages dropped before dispatch by reason",
            ["reason"],
            registry=self.registry,
        )
        self.measure_updates = Counter(
            "ngsi_ingest_measure_updates_total",
            "Context broker measure updates by flow and result",
            ["flow", "result"],
            registry=self.registry,
        )
        self.configuration_requests = Counter(
            "ngsi_ingest_configuration_requests_total",
            "Configuration requests served by result",
            ["result"],
            registry=self.registry,
        )

    def render(self) -> bytes:
        """Prometheus text exposition of the collector metrics."""
        output: bytes = generate_latest(self.registry)
        return output
