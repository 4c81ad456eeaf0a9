"""Abstract remote-mount adapter: shared rclone mount flow for every protocol."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Tuple

import aiofiles.os

from .mount_arguments import build_mount_arguments
from .process_finder import kill_mount_process
from .rclone_runner import RcloneRunner
from ..drive_letters import DriveLetterAllocator
from ...config import Settings
from ...models import ConnectionBase, MountErrorKind, MountResult

TIMED_OUT_MESSAGE = "Mount did not become accessible in time"


class BaseRemoteAdapter(ABC):
    """
    Builds and launches 'rclone mount' for one remote protocol.

    Subclasses only describe how their remote definition is created; the
    launch and readiness detection are shared.
    """

    protocol: str = ""
    remote_type: str = ""

    def __init__(
        self,
        runner: RcloneRunner,
        config_manager,
        settings: Settings,
        allocator: DriveLetterAllocator,
    ):
        self._runner = runner
        self._config_manager = config_manager
        self._settings = settings
        self._allocator = allocator

    @abstractmethod
    def remote_options(self, connection: ConnectionBase) -> List[str]:
        """key=value options for 'rclone config create'."""
        pass

    def get_protocol_name(self) -> str:
        """Get protocol name for logging."""
        return self.protocol.upper()

    async def create_remote(self, connection: ConnectionBase) -> bool:
        created = await self._runner.create_remote(
            connection.remote_name, self.remote_type, self.remote_options(connection)
        )
        if created:
            logging.debug(f"rclone remote {connection.remote_name} configured for {connection.host}")
        return created

    async def delete_remote(self, connection: ConnectionBase) -> bool:
        return await self._runner.delete_remote(connection.remote_name)

    async def test_connection(self, connection: ConnectionBase) -> Tuple[bool, str]:
        """List the remote path once to prove host, credentials and path are valid."""
        if not await self.create_remote(connection):
            return False, "Could not create rclone remote"

        result = await self._runner.list_directories(
            connection.remote_spec, timeout=self._settings.connection_test_timeout_seconds
        )
        if result.success:
            return True, "Connection successful!"
        return False, result.error.strip() or "Connection failed"

    def build_mount_command(self, connection: ConnectionBase, drive_letter: str) -> List[str]:
        cache_directory = self._config_manager.cache_directory()
        return self._runner.base_command() + build_mount_arguments(
            connection,
            drive_letter,
            self._config_manager.global_defaults(),
            cache_directory=str(cache_directory) if cache_directory else "",
        )

    async def mount(self, connection: ConnectionBase, drive_letter: str) -> MountResult:
        """
        Launch the mount process and wait for the drive to appear.

        rclone gives no ready signal: after a short grace period an exited
        process is a launch failure, a reachable drive is success, otherwise a
        second grace period is granted before giving up and killing it.
        """
        try:
            if not await self.create_remote(connection):
                return self._failure(
                    drive_letter, MountErrorKind.LAUNCH_FAILED,
                    f"Could not create rclone remote {connection.remote_name}",
                )

            cmd = self.build_mount_command(connection, drive_letter)
            logging.info(f"Attempting {self.get_protocol_name()} mount: {connection.remote_spec} -> {drive_letter}:")

            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )

            for grace in (self._settings.mount_initial_grace_seconds, self._settings.mount_ready_grace_seconds):
                await asyncio.sleep(grace)

                if process.returncode is not None:
                    error = await self._read_stderr(process)
                    logging.error(f"Mount process for {drive_letter}: exited with {process.returncode}: {error}")
                    return self._failure(
                        drive_letter, MountErrorKind.LAUNCH_FAILED,
                        error or f"rclone exited with code {process.returncode}",
                    )

                if await self.is_drive_reachable(drive_letter):
                    logging.info(f"Successfully mounted {connection.remote_spec} as {drive_letter}:\\")
                    return MountResult(success=True, drive_letter=drive_letter, process=process)

            logging.error(f"{drive_letter}: not reachable after grace periods, killing mount process {process.pid}")
            await self._terminate(process)
            return self._failure(drive_letter, MountErrorKind.TIMED_OUT, TIMED_OUT_MESSAGE)

        except Exception as e:
            logging.error(f"Exception during {self.get_protocol_name()} mount attempt: {e}")
            return self._failure(drive_letter, MountErrorKind.LAUNCH_FAILED, str(e))

    async def unmount(self, drive_letter: str) -> bool:
        """No native detach on Windows: find the rclone process serving the letter and kill it."""
        return await kill_mount_process(drive_letter, timeout=self._settings.unmount_grace_seconds)

    def available_letters(self) -> List[str]:
        return self._allocator.available_letters()

    async def is_drive_reachable(self, drive_letter: str) -> bool:
        try:
            return await asyncio.wait_for(aiofiles.os.path.isdir(f"{drive_letter}:\\"), timeout=5.0)
        except asyncio.TimeoutError:
            logging.debug(f"Reachability check for {drive_letter}: timed out")
            return False

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self._settings.unmount_grace_seconds)
        except asyncio.TimeoutError:
            logging.warning(f"Mount process {process.pid} did not exit after kill")

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> str:
        if process.stderr is None:
            return ""
        try:
            data = await asyncio.wait_for(process.stderr.read(), timeout=1.0)
        except asyncio.TimeoutError:
            return ""
        return data.decode(errors="replace").strip()

    @staticmethod
    def _failure(drive_letter: str, kind: MountErrorKind, message: str) -> MountResult:
        return MountResult(success=False, drive_letter=drive_letter, error_message=message, error_kind=kind)
