"""FTP remote adapter."""

from typing import List

from .base_adapter import BaseRemoteAdapter
from ...models import FtpConnection, FtpTlsMode


class FtpAdapter(BaseRemoteAdapter):
    """FTP/FTPS mounts via rclone's ftp backend."""

    protocol = "ftp"
    remote_type = "ftp"

    def remote_options(self, connection: FtpConnection) -> List[str]:
        options = [f"host={connection.host}", f"port={connection.port}"]

        # rclone logs in anonymously when no user is configured
        if not connection.is_anonymous:
            options.append(f"user={connection.username}")
            if connection.obscured_password:
                options.append(f"pass={connection.obscured_password}")

        if connection.tls_mode == FtpTlsMode.IMPLICIT:
            options.append("tls=true")
        elif connection.tls_mode == FtpTlsMode.EXPLICIT:
            options.append("explicit_tls=true")

        return options
