"""MQTT client wrapper and topic helpers."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from ngsi_ingest.common.constants import (
    CONFIGURATION_TOKEN,
    CONFIGURATION_VALUES_TOKEN,
)

logger = logging.getLogger(__name__)

# Message handler: receives (topic, subscription pattern, raw payload)
MessageHandler = Callable[[str, str, bytes], None]


@dataclass
class MQTTConfig:
    """MQTT connection settings."""

    host: str = "localhost"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    prefix: str = "json"
    client_id: Optional[str] = None
    keepalive: int = 60
    qos: int = 0
    tls: bool = False
    transport: str = "tcp"
    ws_path: str = "/mqtt"


class TopicBuilder:
    """Build the topics the collector subscribes and publishes to.

    Device topics have the shape
    ``[/]<prefix>/<resource>/<device_id>/<action>[/<attribute>]``; devices may
    publish with or without the leading slash.
    """

    def __init__(self, prefix: str = "json") -> None:
        self.prefix = prefix.strip("/")

    def measure_topics(self) -> list[str]:
        """Topics covering multi-measure and single-measure publications."""
        topics: list[str] = []
        for lead in ("", "/"):
            topics.append(f"{lead}{self.prefix}/+/+/+")
            topics.append(f"{lead}{self.prefix}/+/+/+/+")
        return topics

    @staticmethod
    def configuration_values_topic(api_key: str, device_id: str) -> str:
        """Topic configuration responses are published to."""
        return (
            f"/{api_key}/{device_id}/{CONFIGURATION_TOKEN}/"
            f"{CONFIGURATION_VALUES_TOKEN}"
        )


class MQTTClient:
    """Thin wrapper around the paho MQTT client."""

    def __init__(self, config: MQTTConfig) -> None:
        self.config = config
        self.topic_builder = TopicBuilder(config.prefix)
        self._handlers: dict[str, MessageHandler] = {}
        self._connected = False

        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id or "",
            transport=config.transport,
        )
        if config.transport == "websockets":
            self._client.ws_set_options(path=config.ws_path)
        if config.username:
            self._client.username_pw_set(config.username, config.password)
        if config.tls:
            self._client.tls_set()

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        """Connect to the broker."""
        logger.info(
            "Connecting to MQTT broker %s:%d (transport=%s, tls=%s)",
            self.config.host,
            self.config.port,
            self.config.transport,
            self.config.tls,
        )
        self._client.connect(
            self.config.host, self.config.port, keepalive=self.config.keepalive
        )

    def start_background(self) -> None:
        """Start the network loop in a background thread."""
        self._client.loop_start()

    def stop(self) -> None:
        """Stop the background network loop."""
        self._client.loop_stop()

    def disconnect(self) -> None:
        """Disconnect from the broker."""
        self._client.disconnect()
        self._connected = False

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Subscribe to a topic pattern and route matching messages to handler."""
        self._handlers[topic] = handler
        if self._connected:
            self._client.subscribe(topic, qos=self.config.qos)
        logger.debug("Subscribed to %s", topic)

    def publish(
        self, topic: str, payload: str | bytes, qos: Optional[int] = None
    ) -> None:
        """Publish a message.

        Raises:
            RuntimeError: If the message could not be queued for sending
        """
        info = self._client.publish(
            topic, payload, qos=self.config.qos if qos is None else qos
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise RuntimeError(
                f"MQTT publish to {topic} failed: {mqtt.error_string(info.rc)}"
            )
        logger.debug("Published to %s", topic)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):  # type: ignore[no-untyped-def]
        if reason_code.is_failure:
            self._connected = False
            logger.error("MQTT connection refused: %s", reason_code)
            return
        self._connected = True
        logger.info("Connected to MQTT broker")
        # (Re)subscribe after every connect so sessions survive reconnects
        for topic in self._handlers:
            client.subscribe(topic, qos=self.config.qos)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):  # type: ignore[no-untyped-def]
        self._connected = False
        logger.warning("Disconnected from MQTT broker: %s", reason_code)

    def _on_message(self, client, userdata, msg):  # type: ignore[no-untyped-def]
        for pattern, handler in self._handlers.items():
            if mqtt.topic_matches_sub(pattern, msg.topic):
                try:
                    handler(msg.topic, pattern, msg.payload)
                except Exception as e:
                    logger.error(f"Error handling message on {msg.topic}: {e}")
                return
        logger.debug("No handler for topic %s", msg.topic)
