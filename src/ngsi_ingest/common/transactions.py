"""Southbound transaction scopes.

A transaction spans one logical update attempt (one backend update or one
configuration request). ``TransactionManager.transaction`` is a context
manager, so the close runs exactly once whether the attempt succeeds, fails
or raises.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from ngsi_ingest.common.logging import LogContext, context_logger

logger = logging.getLogger(__name__)


class TransactionManager:
    """Open and close southbound transactions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._opened = 0
        self._closed = 0

    @property
    def open_count(self) -> int:
        """Number of transactions currently open."""
        with self._lock:
            return self._opened - self._closed

    @property
    def closed_count(self) -> int:
        """Number of transactions closed since start."""
        with self._lock:
            return self._closed

    @contextmanager
    def transaction(self, context: LogContext) -> Iterator[LogContext]:
        """Open a transaction derived from a message context.

        Args:
            context: Message-scoped log context

        Yields:
            Context carrying the transaction id
        """
        tx_context = context.with_transaction()
        with self._lock:
            self._opened += 1
        try:
            yield tx_context
        finally:
            self.close(tx_context)

    def close(self, context: LogContext) -> None:
        """Finish a transaction."""
        with self._lock:
            self._closed += 1
        context_logger(logger, context).debug("Transaction finished")
