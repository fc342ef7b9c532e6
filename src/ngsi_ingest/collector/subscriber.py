"""MQTT subscriber feeding device measures into the context broker.

The subscriber:
1. Connects to the MQTT broker
2. Subscribes to the device measure and configuration topics
3. Hands each message to a worker pool so the network loop never blocks
4. Serves Prometheus metrics if enabled
"""

import logging
import signal
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

from prometheus_client import start_http_server

from ngsi_ingest.collector.configuration import ConfigurationManager
from ngsi_ingest.collector.dispatcher import UpdateDispatcher
from ngsi_ingest.collector.handler import MessageHandler
from ngsi_ingest.collector.metrics import CollectorMetrics
from ngsi_ingest.collector.transport import MQTTBinding, TransportSelector
from ngsi_ingest.common.alarms import AlarmManager
from ngsi_ingest.common.broker import ContextBrokerClient
from ngsi_ingest.common.constants import TRANSPORT_MQTT
from ngsi_ingest.common.mqtt import MQTTClient, MQTTConfig
from ngsi_ingest.common.registry import InMemoryDeviceRegistry, load_registry_file
from ngsi_ingest.common.transactions import TransactionManager

logger = logging.getLogger(__name__)


class Subscriber:
    """MQTT subscriber routing device messages to the message handler."""

    def __init__(
        self,
        mqtt_client: MQTTClient,
        handler: MessageHandler,
        worker_threads: int = 4,
        metrics: Optional[CollectorMetrics] = None,
        metrics_port: int = 0,
    ):
        """Initialize subscriber.

        Args:
            mqtt_client: MQTT client instance
            handler: Message handler for device topics
            worker_threads: Number of threads processing messages
            metrics: Collector metrics to expose
            metrics_port: Port for the metrics endpoint (0 disables it)
        """
        self.mqtt = mqtt_client
        self.handler = handler
        self._worker_threads = worker_threads
        self._executor: Optional[ThreadPoolExecutor] = None
        self._metrics = metrics
        self._metrics_port = metrics_port
        self._metrics_server: Any = None
        self._running = False
        self._shutdown_event = threading.Event()
        self._mqtt_connected = False

    @property
    def is_healthy(self) -> bool:
        """Check if the subscriber is healthy.

        Returns:
            True if running and connected to MQTT
        """
        return self._running and self._mqtt_connected

    def get_health_status(self) -> dict[str, Any]:
        """Get detailed health status.

        Returns:
            Dictionary with health status details
        """
        return {
            "healthy": self.is_healthy,
            "running": self._running,
            "mqtt_connected": self._mqtt_connected,
        }

    def _handle_mqtt_message(self, topic: str, pattern: str, payload: bytes) -> None:
        """Hand an incoming MQTT message to the worker pool.

        Args:
            topic: MQTT topic
            pattern: Subscription pattern
            payload: Raw message body
        """
        if self._executor is None:
            logger.warning("Dropping message on %s: subscriber not running", topic)
            return
        future = self._executor.submit(self.handler.handle_mqtt_message, topic, payload)
        future.add_done_callback(self._log_worker_error)

    @staticmethod
    def _log_worker_error(future: Any) -> None:
        error = future.exception()
        if error is not None:
            logger.error("Error processing message: %s", error, exc_info=error)

    def start(self) -> None:
        """Start the subscriber."""
        logger.info("Starting collector subscriber")

        self._executor = ThreadPoolExecutor(
            max_workers=self._worker_threads, thread_name_prefix="collector-worker"
        )

        try:
            self.mqtt.connect()
            self.mqtt.start_background()
            self._mqtt_connected = True
            logger.info("Connected to MQTT broker")
        except Exception as e:
            self._mqtt_connected = False
            logger.error(f"Failed to connect to MQTT broker: {e}")
            self._executor.shutdown(wait=False)
            self._executor = None
            raise

        for topic in self.mqtt.topic_builder.measure_topics():
            self.mqtt.subscribe(topic, self._handle_mqtt_message)
            logger.info(f"Subscribed to device topic: {topic}")

        if self._metrics is not None and self._metrics_port:
            self._metrics_server = start_http_server(
                self._metrics_port, registry=self._metrics.registry
            )
            logger.info("Serving metrics on port %d", self._metrics_port)

        self._running = True

    def run(self) -> None:
        """Run the subscriber event loop (blocking)."""
        if not self._running:
            self.start()

        logger.info("Collector running. Press Ctrl+C to stop.")

        try:
            while self._running and not self._shutdown_event.is_set():
                time.sleep(0.1)
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the subscriber."""
        if not self._running:
            return

        logger.info("Stopping collector subscriber")
        self._running = False
        self._shutdown_event.set()

        # Stop MQTT first so no new work arrives
        self.mqtt.stop()
        self.mqtt.disconnect()
        self._mqtt_connected = False

        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

        if self._metrics_server is not None:
            server, _thread = self._metrics_server
            server.shutdown()
            self._metrics_server = None

        logger.info("Collector subscriber stopped")


def create_subscriber(
    mqtt_host: str = "localhost",
    mqtt_port: int = 1883,
    mqtt_username: Optional[str] = None,
    mqtt_password: Optional[str] = None,
    mqtt_prefix: str = "json",
    mqtt_tls: bool = False,
    mqtt_transport: str = "tcp",
    mqtt_ws_path: str = "/mqtt",
    mqtt_qos: int = 0,
    context_broker_url: str = "http://localhost:1026",
    context_broker_timeout: float = 5.0,
    devices_file: Optional[str] = None,
    default_resource: str = "",
    default_transport: str = TRANSPORT_MQTT,
    worker_threads: int = 4,
    metrics_port: int = 0,
    registry: Optional[InMemoryDeviceRegistry] = None,
) -> Subscriber:
    """Create a configured subscriber instance.

    Args:
        mqtt_host: MQTT broker host
        mqtt_port: MQTT broker port
        mqtt_username: MQTT username
        mqtt_password: MQTT password
        mqtt_prefix: First topic segment devices publish under
        mqtt_tls: Enable TLS/SSL for MQTT connection
        mqtt_transport: MQTT transport protocol (tcp or websockets)
        mqtt_ws_path: WebSocket path (used when transport=websockets)
        mqtt_qos: MQTT QoS for subscriptions and configuration responses
        context_broker_url: NGSI-v2 context broker base URL
        context_broker_timeout: Context broker request timeout in seconds
        devices_file: YAML file with service groups and devices
        default_resource: Resource used to resolve service groups
        default_transport: Fallback transport for configuration responses
        worker_threads: Number of threads processing messages
        metrics_port: Port for the Prometheus endpoint (0 disables it)
        registry: Pre-populated device registry (overrides devices_file)

    Returns:
        Configured Subscriber instance
    """
    # Unique client ID allows multiple collectors on one broker
    unique_id = uuid.uuid4().hex[:8]
    mqtt_config = MQTTConfig(
        host=mqtt_host,
        port=mqtt_port,
        username=mqtt_username,
        password=mqtt_password,
        prefix=mqtt_prefix,
        client_id=f"ngsi-ingest-collector-{unique_id}",
        qos=mqtt_qos,
        tls=mqtt_tls,
        transport=mqtt_transport,
        ws_path=mqtt_ws_path,
    )
    mqtt_client = MQTTClient(mqtt_config)

    if registry is None:
        registry = InMemoryDeviceRegistry()
        if devices_file:
            load_registry_file(devices_file, registry)

    transports = TransportSelector()
    transports.register(TRANSPORT_MQTT, MQTTBinding(mqtt_client))

    broker = ContextBrokerClient(context_broker_url, timeout=context_broker_timeout)
    alarms = AlarmManager()
    metrics = CollectorMetrics()

    configuration = ConfigurationManager(
        registry,
        broker,
        transports,
        default_resource=default_resource,
        default_transport=default_transport,
    )
    dispatcher = UpdateDispatcher(
        broker, configuration, TransactionManager(), alarms, metrics=metrics
    )
    handler = MessageHandler(registry, dispatcher, alarms, metrics=metrics)

    return Subscriber(
        mqtt_client,
        handler,
        worker_threads=worker_threads,
        metrics=metrics,
        metrics_port=metrics_port,
    )


def run_collector(**kwargs: Any) -> None:
    """Run the collector (blocking).

    Args:
        **kwargs: Passed to create_subscriber
    """
    subscriber = create_subscriber(**kwargs)

    def signal_handler(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}")
        subscriber.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    subscriber.run()
