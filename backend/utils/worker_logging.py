"""
Worker logging utilities with Protocol + Mixin pattern.

Provides trait-like logging functionality for Lambda workers.
Each worker defines its type and context format, the mixin provides
consistent log_info/log_warning/log_error methods.

Usage:
    class SessionLogContext(WorkerLoggerMixin):
        worker_type = WorkerType.WEBSOCKET

        def __init__(self, connection_id: str, action: str):
            self.connection_id = connection_id
            self.action = action

        def _log_context(self) -> str:
            return f"conn={self.connection_id}:action={self.action}"

    ctx = SessionLogContext("abc=", "sendMessage")
    ctx.log_info("Message stored")  # [WebSocketHandler:conn=abc=:action=sendMessage] Message stored
"""

import logging
from enum import Enum
from typing import Optional, Protocol

logger = logging.getLogger()
logger.setLevel(logging.INFO)


class WorkerType(Enum):
    """Worker type enum for log prefix identification."""
    WEBSOCKET = "WebSocketHandler"
    EVENT_BRIDGE = "EventToMessage"


class WorkerLoggerProtocol(Protocol):
    """
    Protocol defining what classes using WorkerLoggerMixin must provide.

    This enables type checking - mypy will error if a class uses the mixin
    but doesn't define worker_type or _log_context().
    """
    worker_type: WorkerType

    def _log_context(self) -> str:
        """Return context string like 'conn=abc=' or 'event=shift-applied:convo=...'."""
        ...


class WorkerLoggerMixin:
    """
    Mixin providing log_info/log_warning/log_error/log_exception methods.

    Classes using this mixin must satisfy WorkerLoggerProtocol:
    - Define worker_type: WorkerType class attribute
    - Implement _log_context() -> str method

    Log format: [WorkerType:context] message

    Examples:
    - [WebSocketHandler:conn=abc=:action=sendMessage] Message stored
    - [EventToMessage:event=shift-scheduled:convo=clinic#C1|prof#P1] System message sent
    """

    def _log_prefix(self: WorkerLoggerProtocol) -> str:
        """Build log prefix from worker type and context."""
        return f"[{self.worker_type.value}:{self._log_context()}]"

    def log_info(self: WorkerLoggerProtocol, message: str) -> None:
        """Log info message with worker prefix."""
        logger.info(f"{self._log_prefix()} {message}")

    def log_warning(self: WorkerLoggerProtocol, message: str) -> None:
        """Log warning message with worker prefix."""
        logger.warning(f"{self._log_prefix()} {message}")

    def log_error(self: WorkerLoggerProtocol, message: str) -> None:
        """Log error message with worker prefix."""
        logger.error(f"{self._log_prefix()} {message}")

    def log_exception(self: WorkerLoggerProtocol, message: str) -> None:
        """Log error message with worker prefix and the active traceback."""
        logger.exception(f"{self._log_prefix()} {message}")


# =============================================================================
# Concrete Context Classes
# =============================================================================

class SessionLogContext(WorkerLoggerMixin):
    """
    Logging context for the WebSocket session handler.

    Log format: [WebSocketHandler:conn=X:action=Y] message
    """
    worker_type = WorkerType.WEBSOCKET

    def __init__(self, connection_id: str, action: str):
        self.connection_id = connection_id
        self.action = action

    def _log_context(self) -> str:
        return f"conn={self.connection_id}:action={self.action}"


class EventLogContext(WorkerLoggerMixin):
    """
    Logging context for the domain-event-to-message bridge.

    Log format: [EventToMessage:event=X:convo=Y] message
    """
    worker_type = WorkerType.EVENT_BRIDGE

    def __init__(self, event_type: str, conversation_id: Optional[str] = None):
        self.event_type = event_type
        self.conversation_id = conversation_id

    def _log_context(self) -> str:
        if self.conversation_id:
            return f"event={self.event_type}:convo={self.conversation_id}"
        return f"event={self.event_type}"
