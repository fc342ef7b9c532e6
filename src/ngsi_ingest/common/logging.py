"""Logging setup and message-scoped log context.

Every transport message gets its own immutable ``LogContext``. The context is
passed explicitly down the processing chain and rendered into each log line
by ``ContextLoggerAdapter``, so concurrent messages never share (or overwrite)
each other's service or transaction details.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, MutableMapping, Optional, Protocol

from ngsi_ingest.common.constants import LOG_OPERATION

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

UNKNOWN_SERVICE = "n/a"


class ServiceScoped(Protocol):
    """Anything carrying a FIWARE service and subservice."""

    service: Optional[str]
    subservice: Optional[str]


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the process.

    Args:
        level: Log level name (e.g. 'DEBUG', 'INFO')
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # paho is chatty at DEBUG
    logging.getLogger("paho").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class LogContext:
    """Immutable logging context for one message (or one transaction)."""

    op: str = LOG_OPERATION
    transaction_id: str = ""
    correlator: str = ""
    service: str = UNKNOWN_SERVICE
    subservice: str = UNKNOWN_SERVICE

    @classmethod
    def new(cls, op: str = LOG_OPERATION) -> "LogContext":
        """Create a context with fresh transaction and correlation ids."""
        transaction_id = _new_id()
        return cls(op=op, transaction_id=transaction_id, correlator=transaction_id)

    def for_service(self, scoped: ServiceScoped) -> "LogContext":
        """Return a copy carrying the service/subservice of a device or group."""
        return replace(
            self,
            service=scoped.service or UNKNOWN_SERVICE,
            subservice=scoped.subservice or UNKNOWN_SERVICE,
        )

    def with_transaction(self, transaction_id: Optional[str] = None) -> "LogContext":
        """Return a copy with a new transaction id, keeping the correlator."""
        return replace(self, transaction_id=transaction_id or _new_id())

    def render(self) -> str:
        return (
            f"op={self.op} trans={self.transaction_id or '-'} "
            f"corr={self.correlator or '-'} "
            f"srv={self.service} subsrv={self.subservice}"
        )


class ContextLoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter prefixing records with a ``LogContext``."""

    def __init__(self, logger: logging.Logger, context: LogContext) -> None:
        super().__init__(logger, {"log_context": context})
        self.context = context

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("log_context", self.context)
        kwargs["extra"] = extra
        return f"[{self.context.render()}] {msg}", kwargs


def context_logger(logger: logging.Logger, context: LogContext) -> ContextLoggerAdapter:
    """Bind a module logger to a message context."""
    return ContextLoggerAdapter(logger, context)
