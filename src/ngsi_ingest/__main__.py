"""Run the collector: ``python -m ngsi_ingest``."""

from ngsi_ingest.collector.subscriber import run_collector
from ngsi_ingest.common.config import get_collector_settings
from ngsi_ingest.common.logging import configure_logging


def main() -> None:
    settings = get_collector_settings()
    configure_logging(settings.log_level.value)
    run_collector(
        mqtt_host=settings.mqtt_host,
        mqtt_port=settings.mqtt_port,
        mqtt_username=settings.mqtt_username,
        mqtt_password=settings.mqtt_password,
        mqtt_prefix=settings.mqtt_prefix,
        mqtt_tls=settings.mqtt_tls,
        mqtt_transport=settings.mqtt_transport.value,
        mqtt_ws_path=settings.mqtt_ws_path,
        mqtt_qos=settings.mqtt_qos,
        context_broker_url=settings.context_broker_url,
        context_broker_timeout=settings.context_broker_timeout,
        devices_file=settings.effective_devices_file,
        default_resource=settings.default_resource,
        default_transport=settings.default_transport,
        worker_threads=settings.worker_threads,
        metrics_port=settings.metrics_port,
    )


if __name__ == "__main__":
    main()
