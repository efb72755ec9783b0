from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from logger import log_event


@dataclass
class Notification:
    kind: str  # success | error | info
    title: str
    message: str = ""
    session_id: Optional[str] = None
    reason: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "notification",
            "kind": self.kind,
            "title": self.title,
            "message": self.message,
            "sessionId": self.session_id,
            "reason": self.reason,
            "ts": self.timestamp,
        }


class Notifier(Protocol):
    async def notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    async def notify(self, notification: Notification) -> None:
        level = logging.WARNING if notification.kind == "error" else logging.INFO
        reason = f" ({notification.reason})" if notification.reason else ""
        log_event("NOTIFY", f"{notification.session_id or '-'} {notification.title}: "
                            f"{notification.message}{reason}", level=level)


class CompositeNotifier:
    def __init__(self, notifiers: List[Notifier]) -> None:
        self.notifiers = list(notifiers)

    async def notify(self, notification: Notification) -> None:
        for notifier in self.notifiers:
            await notifier.notify(notification)
