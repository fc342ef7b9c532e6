"""NGSI-v2 context broker client."""

import logging
from typing import Any, Optional, Sequence

import httpx

from ngsi_ingest.common.constants import LD_CONTEXT_ATTRIBUTE
from ngsi_ingest.common.logging import LogContext, context_logger
from ngsi_ingest.common.models import AttributeRecord, DeviceDescriptor

logger = logging.getLogger(__name__)

# Entity identity carried as measures is renamed so it does not clash
# with the entity's own id and type.
MEASURE_RENAMES = {"id": "measure_id", "type": "measure_type"}


class ContextBrokerError(Exception):
    """Raised when the context broker rejects or cannot receive a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def build_entity(
    device: DeviceDescriptor,
    device_type: str,
    attributes: Sequence[AttributeRecord],
) -> dict[str, Any]:
    """Build an NGSI-v2 entity from attribute records.

    Args:
        device: Device the measures belong to
        device_type: Entity type
        attributes: Attribute records to send

    Returns:
        Entity in NGSI-v2 normalized representation
    """
    entity: dict[str, Any] = {"id": device.entity_name, "type": device_type}
    for record in attributes:
        if (
            record.type == LD_CONTEXT_ATTRIBUTE
            or record.name.lower() == LD_CONTEXT_ATTRIBUTE
        ):
            continue
        attr: dict[str, Any] = {"type": record.type, "value": record.value}
        if record.metadata:
            attr["metadata"] = record.metadata
        entity[MEASURE_RENAMES.get(record.name, record.name)] = attr
    return entity


class ContextBrokerClient:
    """Minimal NGSI-v2 client for measure updates and attribute queries."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Context broker base URL (e.g. http://orion:1026)
            timeout: Request timeout in seconds
            client: Preconfigured HTTP client (mainly for tests)
        """
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"), timeout=timeout
        )

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _headers(device: DeviceDescriptor, context: LogContext) -> dict[str, str]:
        headers = {"Fiware-Correlator": context.correlator or context.transaction_id}
        if device.service:
            headers["Fiware-Service"] = device.service
        if device.subservice:
            headers["Fiware-ServicePath"] = device.subservice
        return headers

    def update(
        self,
        device_id: str,
        device_type: str,
        api_key: str,
        attributes: Sequence[AttributeRecord],
        device: DeviceDescriptor,
        context: LogContext,
    ) -> None:
        """Append measures to the device entity.

        Raises:
            ContextBrokerError: If the request fails or is rejected
        """
        log = context_logger(logger, context)
        body = {
            "actionType": "append",
            "entities": [build_entity(device, device_type or device.type, attributes)],
        }
        log.debug(
            "Updating entity for device %s (apikey=%s): %s", device_id, api_key, body
        )
        response = self._request(
            "POST",
            "/v2/op/update",
            json=body,
            headers=self._headers(device, context),
        )
        log.debug(
            "Context broker answered %d for device %s", response.status_code, device_id
        )

    def query(
        self,
        device: DeviceDescriptor,
        attribute_names: Sequence[str],
        context: LogContext,
    ) -> dict[str, Any]:
        """Read attribute values of the device entity.

        Returns:
            Mapping of attribute name to value

        Raises:
            ContextBrokerError: If the request fails or is rejected
        """
        params = {"options": "keyValues", "type": device.type}
        if attribute_names:
            params["attrs"] = ",".join(attribute_names)
        response = self._request(
            "GET",
            f"/v2/entities/{device.entity_name}",
            params=params,
            headers=self._headers(device, context),
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ContextBrokerError(f"Invalid JSON from context broker: {e}") from e
        if not isinstance(data, dict):
            raise ContextBrokerError(
                "Unexpected entity representation from context broker"
            )
        data.pop("id", None)
        data.pop("type", None)
        return data

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ContextBrokerError(f"Context broker request failed: {e}") from e
        except (TypeError, ValueError) as e:
            # Request body could not be encoded as JSON
            raise ContextBrokerError(f"Invalid context broker request: {e}") from e
        if response.is_error:
            raise ContextBrokerError(
                f"Context broker returned {response.status_code}: "
                f"{response.text[:500]}",
                status_code=response.status_code,
            )
        return response
