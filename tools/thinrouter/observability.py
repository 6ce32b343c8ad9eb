"""
THINROUTER Observability

Structured JSON logging with correlation ids, plus a hash-chained audit
trail for Admin actions on the router.

    logger = get_logger("router", RouterLayer.ROUTER)
    logger.info("route accepted", nonce=7, dst_chain_id=84532)

Each record is one JSON object per line on stderr, carrying the layer,
operation, duration and any keyword context passed to the call.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import functools
import hashlib
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class RouterLayer(Enum):
    """Components, used to categorize log records."""
    CODEC = "codec"
    FEES = "fees"
    AUTHORITY = "authority"
    REPLAY = "replay"
    ROUTER = "router"
    DEPLOY = "deploy"
    CHAIN = "chain"
    STORE = "store"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    chain: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


class StructuredHandler(logging.Handler):
    """Logging handler that writes one JSON object per record."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                chain=getattr(record, "chain", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )
            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextHandler(logging.StreamHandler):
    """Plain one-line records for interactive use."""

    def __init__(self, stream: Any = None):
        super().__init__(stream or sys.stderr)
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))


def configure_logging(level: str = "info", fmt: str = "json", stream: Any = None) -> None:
    """Install one handler on the ``thinrouter`` root logger."""
    root = logging.getLogger("thinrouter")
    root.setLevel(getattr(logging, level.upper()))
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(StructuredHandler(stream) if fmt == "json" else TextHandler(stream))
    root.propagate = False


class RouterLogger:
    """
    Structured logger for thinrouter components.

    Records go to ``thinrouter.<layer>.<name>`` and inherit the handler
    configured on the ``thinrouter`` logger.
    """

    def __init__(self, name: str, layer: RouterLayer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"thinrouter.{layer.value}.{name}")

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        chain: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "chain": chain,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, error_code: str = "", exc_info: bool = False, **context: Any) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(self, name: str, duration_ms: float, success: bool = True, **context: Any) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(level, f"Operation {name} {status}", operation=name, duration_ms=duration_ms, **context)


def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Current correlation id, creating one on first use."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: RouterLayer) -> RouterLogger:
    return RouterLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: RouterLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator


# Audit trail for Admin actions
@dataclass
class AuditEvent:
    """One Admin action against a router instance."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    resource: str
    outcome: str  # success, denied, rejected
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """
    Tamper-evident audit trail.

    Every entry's hash covers the previous entry's hash, so any edit to the
    recorded history breaks the chain from that point on.
    """

    def __init__(self, logger: RouterLogger):
        self._logger = logger
        self._last_hash: str = "genesis"
        self._entries: List[tuple] = []
        self._lock = threading.Lock()

    @staticmethod
    def _compute_hash(event: AuditEvent, previous: str) -> str:
        data = json.dumps(event.to_dict(), sort_keys=True, default=_json_default) + previous
        return hashlib.sha256(data.encode()).hexdigest()

    def log(self, actor: str, action: str, resource: str, outcome: str, **details: Any) -> AuditEvent:
        event = AuditEvent(
            event_id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc).isoformat(),
            actor=actor,
            action=action,
            resource=resource,
            outcome=outcome,
            correlation_id=get_correlation_id(),
            details=details,
        )

        with self._lock:
            event_hash = self._compute_hash(event, self._last_hash)
            self._last_hash = event_hash
            self._entries.append((event, event_hash))

        self._logger.info(
            f"AUDIT: {action} on {resource} ({outcome})",
            operation="audit",
            actor=actor,
            event_hash=event_hash,
            **details,
        )
        return event

    @property
    def entries(self) -> List[AuditEvent]:
        with self._lock:
            return [e for e, _ in self._entries]

    def verify_chain(self) -> bool:
        """Recompute every hash from genesis."""
        with self._lock:
            previous = "genesis"
            for event, recorded in self._entries:
                if self._compute_hash(event, previous) != recorded:
                    return False
                previous = recorded
            return True
