"""
Mount Orchestrator - drives every connection through its mount lifecycle.
"""

import asyncio
import logging
from typing import List, Optional

from .process_supervisor import ProcessSupervisor
from ..config_manager import ConfigManager
from ..notification_service import NotificationService
from ..rclone.adapter_factory import AdapterFactory
from ...config import Settings
from ...core.exceptions import NoDriveLetterAvailableError, UnknownConnectionError
from ...core.mount_registry import MountRegistry
from ...core.mount_state_machine import MountStateMachine
from ...models import (
    ConnectionBase,
    MountedDrive,
    MountErrorKind,
    MountResult,
    MountStatus,
    normalize_drive_letter,
)


class MountOrchestrator:
    """
    Public mount API used by the HTTP layer and the application lifespan.

    Failures of the mount process are turned into Error entries with
    last_error set; only the drive-letter precondition and a concurrent
    mount of the same connection are raised to the caller.
    """

    def __init__(
        self,
        state_machine: MountStateMachine,
        registry: MountRegistry,
        adapter_factory: AdapterFactory,
        config_manager: ConfigManager,
        notification_service: NotificationService,
        settings: Settings,
    ):
        self._state_machine = state_machine
        self._registry = registry
        self._adapter_factory = adapter_factory
        self._config_manager = config_manager
        self._notifications = notification_service
        self._settings = settings
        self._supervisor = ProcessSupervisor(state_machine)

        logging.info("MountOrchestrator initialized")

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    async def mount(self, connection: ConnectionBase, preferred_letter: Optional[str] = None) -> MountedDrive:
        """
        Mount a connection and return the resulting entry.

        Letter priority: preferred_letter, then the connection's stored
        letter, then the allocator's first free letter.

        Raises:
            NoDriveLetterAvailableError: No usable letter remains.
            AlreadyMountingError: The connection already has a live entry.
        """
        adapter = self._adapter_factory.for_connection(connection)
        candidates = await self._candidate_letters(connection, preferred_letter, adapter)

        drive = await self._state_machine.begin_mount(
            connection_id=connection.id,
            connection_name=connection.name,
            candidate_letters=candidates,
            protocol=connection.protocol,
        )
        drive_letter = drive.drive_letter

        try:
            result = await adapter.mount(connection, drive_letter)
        except Exception as e:
            logging.error(f"Mount of {connection.name} on {drive_letter}: raised: {e}", exc_info=True)
            result = MountResult(
                success=False,
                drive_letter=drive_letter,
                error_message=str(e) or type(e).__name__,
                error_kind=MountErrorKind.LAUNCH_FAILED,
            )

        if result.success and result.process is None:
            # A Mounted entry must hold a handle the orchestrator can stop
            result = MountResult(
                success=False,
                drive_letter=drive_letter,
                error_message="Mount reported success without a mount process",
                error_kind=MountErrorKind.LAUNCH_FAILED,
            )

        if result.success:
            updated = await self._state_machine.transition(
                connection_id=connection.id,
                new_status=MountStatus.MOUNTED,
                expected_status=MountStatus.MOUNTING,
                process=result.process,
                process_id=getattr(result.process, "pid", None),
            )
            self._supervisor.watch(connection.id, result.process, drive_letter)
            self._notify(self._notifications.notify_mounted, connection.name, drive_letter)
        else:
            error_message = result.error_message or "Mount failed"
            kind = result.error_kind or MountErrorKind.LAUNCH_FAILED
            logging.error(
                f"Mount of {connection.name} on {drive_letter}: failed ({kind.value}): {error_message}",
                extra={"operation": "mount_failed", "connection_id": connection.id},
            )
            updated = await self._state_machine.transition(
                connection_id=connection.id,
                new_status=MountStatus.ERROR,
                expected_status=MountStatus.MOUNTING,
                last_error=error_message,
                error_kind=kind,
            )
            self._notify(self._notifications.notify_mount_error, connection.name, error_message)

        if updated is None:
            updated = await self._registry.get(connection.id) or drive
        return updated.snapshot()

    async def mount_by_id(self, connection_id: str, preferred_letter: Optional[str] = None) -> MountedDrive:
        connection = self._config_manager.get_connection(connection_id)
        if connection is None:
            raise UnknownConnectionError(connection_id)
        return await self.mount(connection, preferred_letter)

    async def unmount(self, connection_id: str) -> bool:
        """
        Tear down a mount. Returns False when there is nothing to unmount,
        another operation is in flight, or teardown failed (entry left in Error).
        """
        drive = await self._state_machine.transition(
            connection_id=connection_id,
            new_status=MountStatus.UNMOUNTING,
            expected_status={MountStatus.MOUNTED, MountStatus.ERROR},
        )
        if drive is None:
            logging.debug(f"Nothing to unmount for {connection_id}")
            return False

        drive_letter = drive.drive_letter
        try:
            if drive.process is not None:
                await self._stop_process(drive.process, drive_letter)
            elif drive_letter:
                await self._unmount_by_letter(connection_id, drive.protocol, drive_letter)

            await self._state_machine.transition(
                connection_id=connection_id,
                new_status=MountStatus.UNMOUNTED,
                expected_status=MountStatus.UNMOUNTING,
            )
        except Exception as e:
            logging.error(
                f"Unmount of {drive.connection_name or connection_id} failed: {e}",
                extra={"operation": "unmount_failed", "connection_id": connection_id},
            )
            await self._state_machine.transition(
                connection_id=connection_id,
                new_status=MountStatus.ERROR,
                expected_status=MountStatus.UNMOUNTING,
                last_error=str(e) or type(e).__name__,
                error_kind=MountErrorKind.UNMOUNT_FAILED,
            )
            return False

        logging.info(f"Unmounted {drive.connection_name or connection_id} from {drive_letter}:")
        self._notify(self._notifications.notify_unmounted, drive.connection_name, drive_letter)
        return True

    async def unmount_all(self) -> None:
        connection_ids = await self._registry.connection_ids()
        if not connection_ids:
            return

        logging.info(f"Unmounting {len(connection_ids)} drive(s)")
        for connection_id in connection_ids:
            try:
                await self.unmount(connection_id)
            except Exception as e:
                logging.error(f"Error unmounting {connection_id}: {e}")

    async def auto_mount(self) -> None:
        if not self._config_manager.auto_mount_enabled():
            logging.info("Auto-mount on startup is disabled")
            return

        for protocol in self._adapter_factory.protocols:
            for connection in self._config_manager.list_connections(protocol):
                if not connection.auto_mount:
                    continue
                try:
                    drive = await self.mount(connection)
                    logging.info(f"Auto-mount {connection.name}: {drive.status.value}")
                except Exception as e:
                    logging.error(f"Auto-mount of {connection.name} failed: {e}")

    async def shutdown(self) -> None:
        """Bounded best-effort cleanup when the application exits."""
        try:
            if self._config_manager.unmount_on_close_enabled():
                await asyncio.wait_for(self.unmount_all(), timeout=self._settings.shutdown_timeout_seconds)
        except asyncio.TimeoutError:
            logging.warning(
                f"Unmount on close did not finish within {self._settings.shutdown_timeout_seconds}s, abandoning cleanup"
            )
        except Exception as e:
            logging.error(f"Error during unmount on close: {e}")
        finally:
            await self._supervisor.stop_all()

    async def get_status(self, connection_id: str) -> Optional[MountedDrive]:
        drive = await self._registry.get(connection_id)
        return drive.snapshot() if drive else None

    async def is_mounted(self, connection_id: str) -> bool:
        drive = await self._registry.get(connection_id)
        return drive is not None and drive.status == MountStatus.MOUNTED

    async def mounted_drives(self) -> List[MountedDrive]:
        drives = await self._registry.get_all()
        return [drive.snapshot() for drive in sorted(drives, key=lambda d: d.drive_letter or "")]

    async def _candidate_letters(self, connection: ConnectionBase, preferred_letter: Optional[str], adapter) -> List[str]:
        explicit = normalize_drive_letter(preferred_letter) or normalize_drive_letter(
            connection.mount_settings.drive_letter
        )
        if explicit:
            return [explicit]

        letters = await asyncio.to_thread(adapter.available_letters)
        if not letters:
            raise NoDriveLetterAvailableError()
        return letters

    async def _unmount_by_letter(self, connection_id: str, protocol: Optional[str], drive_letter: str) -> None:
        """Fallback for entries without a handle. Never touches a letter another entry holds."""
        if drive_letter in await self._registry.live_drive_letters(exclude_connection_id=connection_id):
            logging.info(
                f"{drive_letter}: now belongs to another mount, dropping stale entry for {connection_id}",
                extra={"operation": "unmount_stale", "connection_id": connection_id},
            )
            return

        adapter = self._adapter_factory.for_protocol(protocol or "")
        if not await adapter.unmount(drive_letter):
            logging.warning(f"No running mount process stopped for {drive_letter}:, assuming it already exited")

    async def _stop_process(self, process, drive_letter: Optional[str]) -> None:
        if process.returncode is not None:
            logging.debug(f"Mount process for {drive_letter}: already exited with {process.returncode}")
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self._settings.unmount_grace_seconds)
        except asyncio.TimeoutError:
            logging.warning(
                f"Mount process for {drive_letter}: did not exit within "
                f"{self._settings.unmount_grace_seconds}s, continuing"
            )

    @staticmethod
    def _notify(notify, *args) -> None:
        try:
            notify(*args)
        except Exception as e:
            logging.warning(f"Notification failed: {e}")
