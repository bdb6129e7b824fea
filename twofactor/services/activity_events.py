"""
Two-factor activity events handed to the activity-log collaborator.

The core only emits events; storing and displaying them belongs to the host.
"""
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from ..core.clock import as_utc, utcnow
from ..core.logging import get_logger

logger = get_logger(__name__)


class ActivityEventType(str, Enum):
    TOTP_SUCCESS = "totp_success"
    TOTP_FAILED = "totp_failed"
    BACKUP_CODE_USED = "backup_code_used"
    ACCOUNT_LOCKED = "account_locked"
    SECRET_CONFIRMED = "secret_confirmed"
    SECRET_REVOKED = "secret_revoked"


class ActivitySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SEVERITY_MAPPING = {
    ActivityEventType.TOTP_FAILED: ActivitySeverity.MEDIUM,
    ActivityEventType.BACKUP_CODE_USED: ActivitySeverity.MEDIUM,
    ActivityEventType.SECRET_REVOKED: ActivitySeverity.MEDIUM,
    ActivityEventType.ACCOUNT_LOCKED: ActivitySeverity.HIGH,
}


@dataclass(frozen=True)
class ActivityEvent:
    """One two-factor event for the activity log."""
    type: ActivityEventType
    account_id: str
    timestamp: datetime
    detail: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def severity(self) -> ActivitySeverity:
        return SEVERITY_MAPPING.get(self.type, ActivitySeverity.LOW)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["timestamp"] = self.timestamp.isoformat()
        data["severity"] = self.severity.value
        return data


def make_event(
    event_type: ActivityEventType,
    account_id: str,
    timestamp: Optional[datetime] = None,
    **detail: Any,
) -> ActivityEvent:
    return ActivityEvent(
        type=event_type,
        account_id=account_id,
        timestamp=as_utc(timestamp) or utcnow(),
        detail={k: v for k, v in detail.items() if v is not None},
    )


class LoggingActivitySink:
    """Default sink: writes each event to the security log."""

    def emit(self, event: ActivityEvent) -> None:
        logger.security_event(
            event.type.value,
            event.account_id,
            high_severity=event.severity != ActivitySeverity.LOW,
            event_id=event.event_id,
            timestamp=event.timestamp.isoformat(),
            **event.detail,
        )


class ActivityLog:
    """Bounded in-memory sink for hosts that show recent activity."""

    def __init__(self, max_events: int = 1000):
        self._events: Deque[ActivityEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def emit(self, event: ActivityEvent) -> None:
        with self._lock:
            self._events.append(event)

    def events(self) -> List[ActivityEvent]:
        with self._lock:
            return list(self._events)

    def events_for(self, account_id: str, limit: Optional[int] = None) -> List[ActivityEvent]:
        """Most recent events first."""
        matching = [e for e in reversed(self.events()) if e.account_id == account_id]
        return matching[:limit] if limit else matching

    def types_for(self, account_id: str) -> List[ActivityEventType]:
        """Event types in emission order."""
        return [e.type for e in self.events() if e.account_id == account_id]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
