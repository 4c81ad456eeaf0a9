"""SFTP remote adapter."""

from typing import List

from .base_adapter import BaseRemoteAdapter
from ...models import AuthenticationType, SftpConnection


class SftpAdapter(BaseRemoteAdapter):
    """SFTP mounts via rclone's sftp backend. Password or key-file authentication."""

    protocol = "sftp"
    remote_type = "sftp"

    def remote_options(self, connection: SftpConnection) -> List[str]:
        options = [
            f"host={connection.host}",
            f"port={connection.port}",
            f"user={connection.username}",
        ]

        if connection.auth_type == AuthenticationType.PASSWORD and connection.obscured_password:
            options.append(f"pass={connection.obscured_password}")
        elif connection.auth_type == AuthenticationType.KEY_FILE and connection.key_file_path:
            options.append(f"key_file={connection.key_file_path}")
            if connection.obscured_key_passphrase:
                options.append(f"key_file_pass={connection.obscured_key_passphrase}")

        return options
