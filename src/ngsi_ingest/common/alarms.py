"""Alarm bookkeeping.

Alarms are side-channel fault flags: raised when an operation fails and
released once the same kind of operation succeeds again. Only state
transitions are logged, so a flapping broker does not flood the log.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


class AlarmManager:
    """Track raised alarms by code."""

    def __init__(self) -> None:
        self._raised: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def raise_alarm(self, code: str, details: Any = None) -> None:
        """Raise an alarm.

        Args:
            code: Alarm code (e.g. 'MQTTB-ALARM')
            details: Error or description attached to the alarm
        """
        with self._lock:
            already_raised = code in self._raised
            self._raised[code] = {
                "details": str(details) if details is not None else "",
                "raised_at": datetime.now(timezone.utc),
            }
        if not already_raised:
            logger.error("Raising alarm %s: %s", code, details)

    def release(self, code: str) -> None:
        """Release an alarm if it is raised."""
        with self._lock:
            was_raised = self._raised.pop(code, None) is not None
        if was_raised:
            logger.info("Releasing alarm %s", code)

    def is_raised(self, code: str) -> bool:
        """Check whether an alarm is currently raised."""
        with self._lock:
            return code in self._raised

    def raised(self) -> dict[str, str]:
        """Return the raised alarms with their details."""
        with self._lock:
            return {code: info["details"] for code, info in self._raised.items()}
