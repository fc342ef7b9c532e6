"""Tests for attribute type inference."""

from ngsi_ingest.collector.type_inference import infer_type
from ngsi_ingest.common.models import ActiveAttribute, DeviceDescriptor


class TestInferType:
    """Tests for infer_type resolution order."""

    def test_declared_type_wins_over_hint(self, device) -> None:
        """The device's declared type beats any hint."""
        assert infer_type("temp", device, "string") == "Number"

    def test_timestamp_attribute(self, device) -> None:
        """The reserved timestamp attribute gets the DateTime type."""
        assert infer_type("timeinstant", device, "Text") == "DateTime"
        assert infer_type("TimeInstant", device) == "DateTime"

    def test_declared_timestamp_type_wins(self) -> None:
        """A declared type applies even to the timestamp attribute."""
        device = DeviceDescriptor(
            id="d", active=[ActiveAttribute(name="TimeInstant", type="ISO8601")]
        )

        assert infer_type("TimeInstant", device) == "ISO8601"

    def test_hint_used_when_not_declared(self, device) -> None:
        """Hints apply to undeclared attributes."""
        assert infer_type("pressure", device, "Float") == "Float"

    def test_default_type(self, device) -> None:
        """Undeclared attributes without hint use the default type."""
        assert infer_type("pressure", device) == "string"
        assert infer_type("pressure", device, "") == "string"
