"""
Domain events specific to mount operations.
"""

from dataclasses import dataclass
from typing import Optional

from drive_mounter.core.events.domain_event import DomainEvent
from drive_mounter.models import MountStatus, MountStatusUpdate


@dataclass(frozen=True, kw_only=True)
class MountStatusChangedEvent(DomainEvent):
    """Event published on every mount status transition of a connection."""

    old_status: MountStatus
    new_status: MountStatus
    drive_letter: Optional[str] = None
    error_message: Optional[str] = None

    def to_update(self) -> MountStatusUpdate:
        return MountStatusUpdate(
            connection_id=self.connection_id,
            old_status=self.old_status,
            new_status=self.new_status,
            drive_letter=self.drive_letter,
            error_message=self.error_message,
            timestamp=self.occurred_at,
        )
