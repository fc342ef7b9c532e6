"""Fixtures for collector component tests."""

from unittest.mock import MagicMock

import pytest

from ngsi_ingest.collector.dispatcher import UpdateDispatcher
from ngsi_ingest.collector.metrics import CollectorMetrics
from ngsi_ingest.common.alarms import AlarmManager
from ngsi_ingest.common.logging import LogContext
from ngsi_ingest.common.models import ActiveAttribute, DeviceDescriptor, ServiceGroup
from ngsi_ingest.common.registry import InMemoryDeviceRegistry
from ngsi_ingest.common.transactions import TransactionManager


@pytest.fixture
def device():
    """Plain-dialect device with a declared numeric attribute."""
    return DeviceDescriptor(
        id="dev1",
        type="Thing",
        name="urn:ngsi:Thing:dev1",
        service="smartcity",
        subservice="/parking",
        api_key="1234",
        active=[ActiveAttribute(name="temp", type="Number")],
    )


@pytest.fixture
def ngsiv2_device():
    """Device publishing NGSI-v2 entities."""
    return DeviceDescriptor(id="dev2", type="Thing", payload_type="ngsiv2")


@pytest.fixture
def ngsild_device():
    """Device publishing NGSI-LD entities."""
    return DeviceDescriptor(id="dev3", type="Vehicle", payload_type="NGSILD")


@pytest.fixture
def group():
    """Service group for API key 1234."""
    return ServiceGroup(api_key="1234", resource="/iot/json", transport="MQTT")


@pytest.fixture
def registry(device, ngsiv2_device, ngsild_device, group):
    """Registry holding the test devices and group."""
    registry = InMemoryDeviceRegistry()
    registry.add_device(device)
    registry.add_device(ngsiv2_device)
    registry.add_device(ngsild_device)
    registry.add_group(group)
    return registry


@pytest.fixture
def context():
    """Fresh message context."""
    return LogContext.new()


@pytest.fixture
def mock_broker():
    """Context broker collaborator."""
    return MagicMock()


@pytest.fixture
def mock_configuration():
    """Configuration manager collaborator."""
    return MagicMock()


@pytest.fixture
def mock_alarms():
    """Alarm collaborator."""
    return MagicMock(spec=AlarmManager)


@pytest.fixture
def transactions():
    """Real transaction manager (counts closes)."""
    return TransactionManager()


@pytest.fixture
def metrics():
    """Collector metrics on a private registry."""
    return CollectorMetrics()


@pytest.fixture
def dispatcher(mock_broker, mock_configuration, transactions, mock_alarms, metrics):
    """Update dispatcher wired to mock collaborators."""
    return UpdateDispatcher(
        mock_broker,
        mock_configuration,
        transactions,
        mock_alarms,
        metrics=metrics,
    )
