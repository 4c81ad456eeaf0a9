"""Adapter Factory - protocol dispatch for remote connections."""

from typing import Dict, List, Type

from .base_adapter import BaseRemoteAdapter
from .ftp_adapter import FtpAdapter
from .rclone_runner import RcloneRunner
from .sftp_adapter import SftpAdapter
from ..drive_letters import DriveLetterAllocator
from ...config import Settings
from ...core.exceptions import UnsupportedProtocolError
from ...models import ConnectionBase

ADAPTER_TYPES: Dict[str, Type[BaseRemoteAdapter]] = {
    "sftp": SftpAdapter,
    "ftp": FtpAdapter,
}


class AdapterFactory:
    """Holds one adapter per protocol and picks it by the connection's protocol tag."""

    def __init__(
        self,
        runner: RcloneRunner,
        config_manager,
        settings: Settings,
        allocator: DriveLetterAllocator,
    ):
        self._adapters: Dict[str, BaseRemoteAdapter] = {
            protocol: adapter_type(runner, config_manager, settings, allocator)
            for protocol, adapter_type in ADAPTER_TYPES.items()
        }

    @property
    def protocols(self) -> List[str]:
        return list(self._adapters.keys())

    def for_protocol(self, protocol: str) -> BaseRemoteAdapter:
        try:
            return self._adapters[protocol]
        except KeyError:
            raise UnsupportedProtocolError(f"No mount adapter for protocol: {protocol}") from None

    def for_connection(self, connection: ConnectionBase) -> BaseRemoteAdapter:
        return self.for_protocol(getattr(connection, "protocol", ""))
