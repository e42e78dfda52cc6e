"""
User-facing notification surface (toasts) with id-based deduplication.
"""

import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Optional

from .logging import get_logger


DEFAULT_NOTIFICATION_DURATION = 4.0


@dataclass
class Notification:
    id: str
    message: str
    level: str
    created_at: float
    duration: float

    def expires_at(self) -> float:
        return self.created_at + self.duration

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NotificationCenter:
    """Holds the notifications currently shown to the user.

    Notifying with an id that is already showing replaces that notification
    instead of stacking a second one.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._active: "OrderedDict[str, Notification]" = OrderedDict()
        self.logger = get_logger("erp.notifications")

    def notify(self,
               message: str,
               *,
               id: Optional[str] = None,
               duration: float = DEFAULT_NOTIFICATION_DURATION,
               level: str = "error") -> str:
        notification_id = id or str(uuid.uuid4())
        replaced = notification_id in self._active
        self._active.pop(notification_id, None)
        self._active[notification_id] = Notification(
            id=notification_id,
            message=message,
            level=level,
            created_at=self._clock(),
            duration=duration,
        )
        self.logger.info(
            "Notification shown",
            notification_id=notification_id,
            level=level,
            replaced=replaced,
        )
        return notification_id

    def dismiss(self, notification_id: str) -> bool:
        return self._active.pop(notification_id, None) is not None

    def active(self) -> List[Notification]:
        """Unexpired notifications, oldest first."""
        now = self._clock()
        for notification_id in [n.id for n in self._active.values() if n.expires_at() <= now]:
            del self._active[notification_id]
        return list(self._active.values())
