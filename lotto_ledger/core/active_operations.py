"""
Active operations registry for graceful shutdown.

Background jobs register themselves while running. On shutdown the worker
marks the registry as closing (new runs are rejected) and waits for the
in-flight ones to finish instead of interrupting them mid-batch.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class ShutdownInProgressError(Exception):
    """Raised when a new operation is started while the process is shutting down."""
    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


@dataclass
class ActiveOperation:
    id: str
    type: str  # job | request | other
    description: str
    started_at: float = field(default_factory=time.monotonic)

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class ActiveOperationsRegistry:
    """Tracks in-flight background operations."""

    def __init__(self, poll_interval: float = 1.0):
        self._operations: Dict[str, ActiveOperation] = {}
        self._shutting_down = False
        self._poll_interval = poll_interval

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def active_count(self) -> int:
        return len(self._operations)

    def register(self, operation_id: str, op_type: str, description: str) -> None:
        if self._shutting_down:
            logger.warning(
                f"Operation '{operation_id}' ({description}) rejected: shutdown in progress"
            )
            raise ShutdownInProgressError(
                "Server is shutting down, cannot start new operations",
                {"operation_id": operation_id, "type": op_type},
            )

        self._operations[operation_id] = ActiveOperation(operation_id, op_type, description)
        logger.debug(f"Registered operation '{operation_id}' ({self.active_count} active)")

    def unregister(self, operation_id: str) -> None:
        operation = self._operations.pop(operation_id, None)
        if operation:
            logger.debug(
                f"Operation '{operation_id}' completed in {operation.duration_ms}ms "
                f"({self.active_count} active)"
            )

    @asynccontextmanager
    async def track(self, operation_id: str, op_type: str, description: str):
        """Register for the duration of the block."""
        self.register(operation_id, op_type, description)
        try:
            yield
        finally:
            self.unregister(operation_id)

    def snapshot(self) -> List[dict]:
        return [
            {
                "id": op.id,
                "type": op.type,
                "description": op.description,
                "duration_ms": op.duration_ms,
            }
            for op in self._operations.values()
        ]

    def mark_shutting_down(self) -> None:
        self._shutting_down = True
        logger.info(f"Shutdown marked with {self.active_count} active operations: {self.snapshot()}")

    async def wait_for_completion(self, timeout_seconds: float = 30) -> bool:
        """
        Wait until every registered operation has finished.

        Returns:
            True if all finished, False if the timeout elapsed first
        """
        started = time.monotonic()
        while self._operations:
            elapsed = time.monotonic() - started
            if elapsed >= timeout_seconds:
                logger.warning(
                    f"Shutdown timeout after {timeout_seconds}s, "
                    f"{self.active_count} operations still running: {self.snapshot()}"
                )
                return False
            logger.info(f"Waiting for {self.active_count} active operations ({elapsed:.0f}s elapsed)")
            await asyncio.sleep(self._poll_interval)

        logger.info(f"All operations completed in {time.monotonic() - started:.1f}s")
        return True


# Global registry instance
_registry: Optional[ActiveOperationsRegistry] = None


def get_active_operations() -> ActiveOperationsRegistry:
    """Get or create the global registry."""
    global _registry
    if _registry is None:
        _registry = ActiveOperationsRegistry()
    return _registry
