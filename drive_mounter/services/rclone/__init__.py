"""
rclone adapters.

One adapter per remote protocol turns a connection record into an
'rclone mount' invocation, launches it and classifies the result.

Components:
- BaseRemoteAdapter: shared launch and readiness detection
- SftpAdapter / FtpAdapter: remote definitions per protocol
- AdapterFactory: dispatch on the connection's protocol tag
- RcloneRunner: one-shot rclone commands (config, obscure, lsd)
"""

from .adapter_factory import AdapterFactory
from .base_adapter import BaseRemoteAdapter
from .ftp_adapter import FtpAdapter
from .rclone_runner import RcloneResult, RcloneRunner
from .sftp_adapter import SftpAdapter

__all__ = [
    "AdapterFactory",
    "BaseRemoteAdapter",
    "FtpAdapter",
    "RcloneResult",
    "RcloneRunner",
    "SftpAdapter",
]
