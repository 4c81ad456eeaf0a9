"""
Mount Registry - A pure data access layer for MountedDrive records.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from drive_mounter.models import MountedDrive, MountStatus

LIVE_STATUSES = frozenset({MountStatus.MOUNTING, MountStatus.MOUNTED, MountStatus.UNMOUNTING})


class MountRegistry:
    """
    Provides a concurrency-safe, in-memory table of MountedDrive records keyed
    by connection id. Status changes go through MountStateMachine; this class
    only stores and retrieves.
    """

    def __init__(self):
        self._drives_by_connection: Dict[str, MountedDrive] = {}
        self._lock = asyncio.Lock()
        logging.info("MountRegistry initialized")

    async def get(self, connection_id: str) -> Optional[MountedDrive]:
        """Get the record for a connection, or None when it has no entry."""
        async with self._lock:
            return self._drives_by_connection.get(connection_id)

    async def get_all(self) -> List[MountedDrive]:
        async with self._lock:
            return list(self._drives_by_connection.values())

    async def connection_ids(self) -> List[str]:
        async with self._lock:
            return list(self._drives_by_connection.keys())

    async def update(self, drive: MountedDrive) -> None:
        """Insert or replace the record for drive.connection_id."""
        async with self._lock:
            self._drives_by_connection[drive.connection_id] = drive

    async def remove(self, connection_id: str) -> bool:
        async with self._lock:
            if connection_id in self._drives_by_connection:
                del self._drives_by_connection[connection_id]
                return True
            return False

    async def live_drive_letters(self, exclude_connection_id: Optional[str] = None) -> Set[str]:
        """Drive letters held by Mounting/Mounted/Unmounting entries."""
        async with self._lock:
            return {
                drive.drive_letter
                for drive in self._drives_by_connection.values()
                if drive.status in LIVE_STATUSES
                and drive.drive_letter
                and drive.connection_id != exclude_connection_id
            }

    async def count(self) -> int:
        async with self._lock:
            return len(self._drives_by_connection)
