"""
Config Manager - persisted application settings and connection records.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from ..config import Settings
from ..models import AppSettings, Connection, GlobalVfsSettings, Preferences


class ConfigManager:
    """
    Owns settings.json: preferences, connections and global VFS defaults.

    Reads are served from memory; every mutation is written straight back to
    disk. Mount code only ever reads snapshots through the getters below.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._path: Path = settings.settings_file_path
        self._app_settings = AppSettings()
        self._lock = asyncio.Lock()

    @property
    def app_settings(self) -> AppSettings:
        return self._app_settings

    async def initialize(self) -> None:
        """Load settings.json, falling back to defaults when missing or unreadable."""
        await aiofiles.os.makedirs(self._path.parent, exist_ok=True)

        if not await aiofiles.os.path.exists(self._path):
            logging.info(f"No settings file at {self._path}, using defaults")
            self._app_settings = AppSettings()
            await self.save()
            return

        try:
            async with aiofiles.open(self._path, "r", encoding="utf-8") as f:
                content = await f.read()
            self._app_settings = AppSettings.model_validate_json(content)
            logging.info(
                f"Loaded {len(self._app_settings.connections)} connection(s) from {self._path}"
            )
        except (OSError, ValidationError, ValueError) as e:
            logging.error(f"Error loading settings from {self._path}: {e}. Using defaults.")
            self._app_settings = AppSettings()
            await self._quarantine_unreadable_file()

    async def _quarantine_unreadable_file(self) -> None:
        """Move the bad file aside so the next save cannot overwrite the user's data."""
        corrupt_path = self._path.with_suffix(".json.corrupt")
        try:
            await aiofiles.os.replace(self._path, corrupt_path)
            logging.warning(f"Unreadable settings kept as {corrupt_path}")
        except OSError as e:
            logging.error(f"Could not move unreadable settings file aside: {e}")

    async def save(self) -> None:
        async with self._lock:
            await aiofiles.os.makedirs(self._path.parent, exist_ok=True)
            tmp_path = self._path.with_suffix(".json.tmp")
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(self._app_settings.model_dump_json(indent=2))
            await aiofiles.os.replace(tmp_path, self._path)
            logging.debug(f"Settings saved to {self._path}")

    # --- Connections ---

    def list_connections(self, protocol: Optional[str] = None) -> List[Connection]:
        connections = list(self._app_settings.connections)
        if protocol:
            connections = [c for c in connections if c.protocol == protocol]
        return [c.model_copy(deep=True) for c in connections]

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        for connection in self._app_settings.connections:
            if connection.id == connection_id:
                return connection.model_copy(deep=True)
        return None

    async def add_connection(self, connection: Connection) -> None:
        if any(c.id == connection.id for c in self._app_settings.connections):
            raise ValueError(f"Connection {connection.id} already exists")
        self._app_settings.connections.append(connection)
        await self.save()
        logging.info(f"Added {connection.protocol} connection '{connection.name}' ({connection.id})")

    async def update_connection(self, connection: Connection) -> None:
        for index, existing in enumerate(self._app_settings.connections):
            if existing.id == connection.id:
                connection.created_at = existing.created_at
                connection.modified_at = datetime.now()
                self._app_settings.connections[index] = connection
                await self.save()
                return
        raise ValueError(f"Connection {connection.id} does not exist")

    async def delete_connection(self, connection_id: str) -> bool:
        before = len(self._app_settings.connections)
        self._app_settings.connections = [
            c for c in self._app_settings.connections if c.id != connection_id
        ]
        if len(self._app_settings.connections) == before:
            return False
        await self.save()
        logging.info(f"Deleted connection {connection_id}")
        return True

    # --- Preferences ---

    def preferences(self) -> Preferences:
        return Preferences.model_validate(
            self._app_settings.model_dump(include=set(Preferences.model_fields))
        )

    async def update_preferences(self, preferences: Preferences) -> None:
        for key, value in preferences.model_dump().items():
            setattr(self._app_settings, key, value)
        await self.save()
        logging.info("Preferences updated")

    def global_defaults(self) -> GlobalVfsSettings:
        """Latest global VFS defaults, as a copy."""
        return self._app_settings.global_vfs_settings.model_copy(deep=True)

    async def update_global_defaults(self, vfs_settings: GlobalVfsSettings) -> None:
        self._app_settings.global_vfs_settings = vfs_settings
        await self.save()

    def auto_mount_enabled(self) -> bool:
        return self._app_settings.auto_mount_on_startup

    def unmount_on_close_enabled(self) -> bool:
        return self._app_settings.unmount_on_close

    def notifications_enabled(self) -> bool:
        return self._app_settings.show_notifications

    def effective_rclone_path(self) -> str:
        """custom_rclone_path when it exists on disk, else the configured default."""
        custom = self._app_settings.custom_rclone_path
        if custom and Path(custom).is_file():
            return custom
        return self._settings.rclone_path

    def cache_directory(self) -> Path:
        custom = self._app_settings.cache_directory
        return Path(custom) if custom else self._settings.cache_directory
