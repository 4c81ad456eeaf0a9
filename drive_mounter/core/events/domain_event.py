"""
Base class for events about one connection's mount.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict
from uuid import uuid4


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """
    Something that happened to a connection's mount.

    Every event names its connection so handlers and log lines can be
    correlated without knowing the concrete event type.
    """

    connection_id: str
    event_id: str = field(default_factory=lambda: uuid4().hex)
    occurred_at: datetime = field(default_factory=datetime.now)

    @property
    def event_name(self) -> str:
        return type(self).__name__

    def log_extra(self) -> Dict[str, str]:
        """Context for logging calls, matching the file formatter's fields."""
        return {"connection_id": self.connection_id, "operation": self.event_name}
