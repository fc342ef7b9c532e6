"""Collaborator interfaces the collector depends on.

The collector only talks to the registry, the context broker, transports,
transactions and alarms through these protocols. Default implementations
live in ``ngsi_ingest.common`` and ``ngsi_ingest.collector.transport``.
"""

from contextlib import AbstractContextManager
from typing import Any, Protocol, Sequence

from ngsi_ingest.common.logging import LogContext
from ngsi_ingest.common.models import AttributeRecord, DeviceDescriptor, ServiceGroup


class DeviceRegistry(Protocol):
    def get_device(self, device_id: str) -> DeviceDescriptor: ...

    def get_group(self, resource: str, api_key: str) -> ServiceGroup: ...


class ContextBroker(Protocol):
    def update(
        self,
        device_id: str,
        device_type: str,
        api_key: str,
        attributes: Sequence[AttributeRecord],
        device: DeviceDescriptor,
        context: LogContext,
    ) -> None: ...

    def query(
        self,
        device: DeviceDescriptor,
        attribute_names: Sequence[str],
        context: LogContext,
    ) -> dict[str, Any]: ...


class Transactions(Protocol):
    def transaction(
        self, context: LogContext
    ) -> AbstractContextManager[LogContext]: ...


class Alarms(Protocol):
    def raise_alarm(self, code: str, details: Any = None) -> None: ...

    def release(self, code: str) -> None: ...


class Transports(Protocol):
    def apply_function_from_binding(
        self, args: Sequence[Any], function_name: str, transport: str
    ) -> Any: ...
