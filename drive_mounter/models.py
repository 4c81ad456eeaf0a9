from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, ConfigDict, computed_field, field_validator


class MountStatus(str, Enum):
    """
    Status for a mount attempt, one per connection.

    Normal Workflow: Unmounted -> Mounting -> Mounted -> Unmounting -> Unmounted
    Alternative: -> Error (launch failure, timeout, process death, teardown failure)
    Error is not terminal: both mount (retry) and unmount (force kill) are allowed.
    """

    UNMOUNTED = "Unmounted"  # No registry entry exists
    MOUNTING = "Mounting"  # Mount process launched, waiting for the drive
    MOUNTED = "Mounted"  # Drive reachable, process supervised
    UNMOUNTING = "Unmounting"  # Teardown in progress
    ERROR = "Error"  # Last operation failed, see last_error


class MountErrorKind(str, Enum):
    LAUNCH_FAILED = "MountLaunchFailed"
    TIMED_OUT = "MountTimedOut"
    UNEXPECTED_TERMINATION = "UnexpectedTermination"
    UNMOUNT_FAILED = "UnmountFailed"


class VfsCacheMode(str, Enum):
    OFF = "off"
    MINIMAL = "minimal"
    WRITES = "writes"
    FULL = "full"


class VfsPerformanceProfile(str, Enum):
    DEFAULT = "default"  # Balanced settings suitable for most use cases
    FAST_STREAMING = "fast_streaming"  # Large read-ahead buffers for media
    LARGE_FILES = "large_files"  # Big chunks, many parallel transfers
    LOW_MEMORY = "low_memory"  # Minimal caching, small buffers
    MANY_SMALL_FILES = "many_small_files"  # Fast directory scanning
    MAXIMUM_PERFORMANCE = "maximum_performance"  # Full caching and parallelism
    CUSTOM = "custom"  # User-defined values, never overwritten


class AuthenticationType(str, Enum):
    PASSWORD = "password"
    KEY_FILE = "key_file"


class FtpTlsMode(str, Enum):
    NONE = "none"  # Plain FTP
    IMPLICIT = "implicit"  # FTPS, usually port 990
    EXPLICIT = "explicit"  # AUTH TLS upgrade


SUPPORTED_PROTOCOLS = ("sftp", "ftp")


_PROFILE_PRESETS: Dict[VfsPerformanceProfile, Dict[str, Any]] = {
    VfsPerformanceProfile.DEFAULT: dict(
        cache_mode=VfsCacheMode.WRITES, cache_max_size="10G", cache_max_age=None,
        dir_cache_time_minutes=5, poll_interval_seconds=60, buffer_size="16M",
        chunk_size="64M", transfers=4, checkers=8, async_read=True, async_write=False,
    ),
    VfsPerformanceProfile.FAST_STREAMING: dict(
        cache_mode=VfsCacheMode.FULL, cache_max_size="50G", cache_max_age="168h",
        dir_cache_time_minutes=60, poll_interval_seconds=300, buffer_size="64M",
        chunk_size="256M", transfers=8, checkers=16, async_read=True, async_write=False,
    ),
    VfsPerformanceProfile.LARGE_FILES: dict(
        cache_mode=VfsCacheMode.FULL, cache_max_size="100G", cache_max_age=None,
        dir_cache_time_minutes=30, poll_interval_seconds=120, buffer_size="128M",
        chunk_size="512M", transfers=16, checkers=32, async_read=True, async_write=False,
    ),
    VfsPerformanceProfile.LOW_MEMORY: dict(
        cache_mode=VfsCacheMode.MINIMAL, cache_max_size="1G", cache_max_age="24h",
        dir_cache_time_minutes=2, poll_interval_seconds=0, buffer_size="4M",
        chunk_size="16M", transfers=2, checkers=4, async_read=False, async_write=False,
    ),
    VfsPerformanceProfile.MANY_SMALL_FILES: dict(
        cache_mode=VfsCacheMode.WRITES, cache_max_size="5G", cache_max_age="72h",
        dir_cache_time_minutes=60, poll_interval_seconds=60, buffer_size="8M",
        chunk_size="32M", transfers=8, checkers=64, async_read=True, async_write=False,
    ),
    VfsPerformanceProfile.MAXIMUM_PERFORMANCE: dict(
        cache_mode=VfsCacheMode.FULL, cache_max_size="200G", cache_max_age=None,
        dir_cache_time_minutes=120, poll_interval_seconds=300, buffer_size="256M",
        chunk_size="1G", transfers=32, checkers=64, async_read=True, async_write=True,
    ),
}


class VfsSettings(BaseModel):
    """
    Cache and performance options forwarded to the rclone mount process.

    Pure configuration values: nothing here has behaviour beyond presets.
    """

    cache_mode: VfsCacheMode = Field(default=VfsCacheMode.WRITES)
    cache_max_size: str = Field(default="10G", description="e.g. 10G, 500M")
    cache_max_age: Optional[str] = Field(
        default=None, description="e.g. 72h; None means no limit"
    )
    cache_max_files: int = Field(default=0, ge=0, description="0 = no limit")
    dir_cache_time_minutes: int = Field(default=5, ge=0)
    poll_interval_seconds: int = Field(default=60, ge=0, description="0 = disabled")
    buffer_size: str = Field(default="16M")
    chunk_size: str = Field(default="64M")
    transfers: int = Field(default=4, ge=1)
    checkers: int = Field(default=8, ge=1)
    async_read: bool = True
    async_write: bool = False
    umask: str = Field(default="000", description="Octal permission mask")
    uid: int = Field(default=0, ge=0, description="0 = default owner")
    gid: int = Field(default=0, ge=0, description="0 = default group")
    performance_profile: VfsPerformanceProfile = VfsPerformanceProfile.DEFAULT

    def apply_profile(self, profile: VfsPerformanceProfile) -> None:
        """Overwrite the tunables with a preset. CUSTOM keeps current values."""
        for key, value in _PROFILE_PRESETS.get(profile, {}).items():
            setattr(self, key, value)
        if profile != VfsPerformanceProfile.CUSTOM:
            self.umask = "000"
            self.uid = 0
            self.gid = 0
        self.performance_profile = profile

    def vfs_values(self) -> Dict[str, Any]:
        """Only the VFS tunables, without connection-level mount options."""
        return self.model_dump(include=set(VfsSettings.model_fields))


class GlobalVfsSettings(VfsSettings):
    """Process-wide VFS defaults applied to every mount unless overridden."""

    is_customized: bool = Field(
        default=False, description="Shown in the UI when defaults were changed"
    )

    def apply_profile(self, profile: VfsPerformanceProfile) -> None:
        super().apply_profile(profile)
        self.is_customized = True

    def reset_to_defaults(self) -> None:
        defaults = GlobalVfsSettings()
        for key in GlobalVfsSettings.model_fields:
            setattr(self, key, getattr(defaults, key))


class MountSettings(VfsSettings):
    """Per-connection mount options plus optional VFS overrides."""

    drive_letter: str = Field(
        default="", description="Preferred drive letter A-Z, empty for auto-assign"
    )
    network_mode: bool = Field(
        default=True, description="Mount as network drive instead of fixed disk"
    )
    volume_name: Optional[str] = Field(
        default=None, description="Volume label shown in Explorer"
    )
    read_only: bool = False
    use_global_vfs_settings: bool = Field(
        default=True,
        description="When true the VFS fields above are ignored and global defaults are used",
    )

    @field_validator("drive_letter")
    @classmethod
    def _normalize_drive_letter(cls, value: str) -> str:
        return normalize_drive_letter(value) or ""


def normalize_drive_letter(value: Optional[str]) -> Optional[str]:
    """Accept 'z', 'Z', 'Z:' or 'Z:\\' and return 'Z'. Empty input returns None."""
    if not value:
        return None
    letter = value.strip().rstrip("\\/").rstrip(":").upper()
    if not letter:
        return None
    if len(letter) != 1 or not ("A" <= letter <= "Z"):
        raise ValueError(f"Invalid drive letter: {value!r}. Must be a single letter A-Z.")
    return letter


class ConnectionBase(BaseModel):
    """Fields every remote connection carries, whatever the protocol."""

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Stable unique identifier, never reused",
    )
    name: str = Field(default="", description="Display name")
    host: str = Field(default="")
    username: str = Field(default="")
    obscured_password: Optional[str] = Field(
        default=None, description="Password obscured with 'rclone obscure'"
    )
    remote_path: str = Field(default="/", description="Remote path to mount")
    mount_settings: MountSettings = Field(default_factory=MountSettings)
    auto_mount: bool = Field(default=False, description="Mount on application startup")
    created_at: datetime = Field(default_factory=datetime.now)
    modified_at: datetime = Field(default_factory=datetime.now)

    @property
    def remote_name(self) -> str:
        """Name of the rclone remote created for this connection."""
        return f"{self.protocol}_{self.id.replace('-', '')}"

    @property
    def remote_spec(self) -> str:
        return f"{self.remote_name}:{self.remote_path}"


class SftpConnection(ConnectionBase):
    protocol: Literal["sftp"] = "sftp"
    port: int = Field(default=22, ge=1, le=65535)
    auth_type: AuthenticationType = AuthenticationType.PASSWORD
    key_file_path: Optional[str] = Field(default=None, description="SSH private key")
    obscured_key_passphrase: Optional[str] = Field(default=None)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "protocol": "sftp",
                "name": "Build server",
                "host": "build.example.com",
                "port": 22,
                "username": "deploy",
                "auth_type": "key_file",
                "key_file_path": "C:\\Users\\me\\.ssh\\id_ed25519",
                "remote_path": "/srv/artifacts",
                "mount_settings": {"drive_letter": "Z", "read_only": True},
                "auto_mount": True,
            }
        }
    )


class FtpConnection(ConnectionBase):
    protocol: Literal["ftp"] = "ftp"
    port: int = Field(default=21, ge=1, le=65535)
    tls_mode: FtpTlsMode = FtpTlsMode.NONE

    @property
    def is_anonymous(self) -> bool:
        return not self.username or self.username.lower() == "anonymous"


Connection = Annotated[Union[SftpConnection, FtpConnection], Field(discriminator="protocol")]


class Preferences(BaseModel):
    """User-editable application behaviour."""

    auto_mount_on_startup: bool = True
    unmount_on_close: bool = True
    show_notifications: bool = True
    custom_rclone_path: Optional[str] = Field(
        default=None, description="rclone executable, empty = use configured default"
    )
    cache_directory: Optional[str] = Field(default=None, description="VFS cache location")

    @field_validator("custom_rclone_path", "cache_directory")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() or None if value else None


class AppSettings(Preferences):
    """Persisted preferences plus connection records and global VFS defaults."""

    connections: List[Connection] = Field(default_factory=list)
    global_vfs_settings: GlobalVfsSettings = Field(default_factory=GlobalVfsSettings)


class MountedDrive(BaseModel):
    """
    Registry record for one mount attempt.

    Created as Mounting when a mount starts and removed only after a successful
    unmount. The process handle never leaves the orchestrator: snapshots handed
    to readers have it stripped.
    """

    connection_id: str
    connection_name: str = ""
    protocol: Optional[str] = None
    drive_letter: Optional[str] = None
    status: MountStatus = MountStatus.UNMOUNTED
    last_error: Optional[str] = None
    error_kind: Optional[MountErrorKind] = None
    process: Optional[Any] = Field(default=None, exclude=True, repr=False)
    process_id: Optional[int] = None
    mounted_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.now)

    def snapshot(self) -> "MountedDrive":
        return self.model_copy(update={"process": None})

    @computed_field
    @property
    def mount_point(self) -> Optional[str]:
        return f"{self.drive_letter}:\\" if self.drive_letter else None


class MountRequest(BaseModel):
    drive_letter: Optional[str] = Field(
        default=None, description="Explicit drive letter, overrides the connection's own"
    )

    @field_validator("drive_letter")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        return normalize_drive_letter(value)


class MountStatusUpdate(BaseModel):
    """Wire format of a mount status change pushed to WebSocket clients."""

    connection_id: str
    old_status: MountStatus
    new_status: MountStatus
    drive_letter: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


@dataclass
class MountResult:
    """Outcome of one adapter mount attempt."""

    success: bool
    drive_letter: str
    process: Optional[Any] = None
    error_message: Optional[str] = None
    error_kind: Optional[MountErrorKind] = None


class SftpConnectionRequest(BaseModel):
    """New SFTP connection as entered by the user. Secrets arrive in plain text."""

    name: str
    host: str
    port: int = Field(default=22, ge=1, le=65535)
    username: str
    password: Optional[str] = Field(default=None, repr=False)
    auth_type: AuthenticationType = AuthenticationType.PASSWORD
    key_file_path: Optional[str] = None
    key_passphrase: Optional[str] = Field(default=None, repr=False)
    remote_path: str = "/"
    mount_settings: MountSettings = Field(default_factory=MountSettings)
    auto_mount: bool = False


class FtpConnectionRequest(BaseModel):
    """New FTP connection. An empty username means anonymous login."""

    name: str
    host: str
    port: int = Field(default=21, ge=1, le=65535)
    username: str = ""
    password: Optional[str] = Field(default=None, repr=False)
    tls_mode: FtpTlsMode = FtpTlsMode.NONE
    remote_path: str = "/"
    mount_settings: MountSettings = Field(default_factory=MountSettings)
    auto_mount: bool = False


class ConnectionUpdateRequest(BaseModel):
    """
    Partial edit of a stored connection. Omitted fields keep their value.

    A new password or key passphrase arrives in plain text and replaces the
    stored one. Omitting it keeps the current secret, an empty string clears it.
    """

    name: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    remote_path: Optional[str] = None
    mount_settings: Optional[MountSettings] = None
    auto_mount: Optional[bool] = None
    # SFTP only
    auth_type: Optional[AuthenticationType] = None
    key_file_path: Optional[str] = None
    key_passphrase: Optional[str] = Field(default=None, repr=False)
    # FTP only
    tls_mode: Optional[FtpTlsMode] = None


SFTP_ONLY_FIELDS = frozenset({"auth_type", "key_file_path", "key_passphrase"})
FTP_ONLY_FIELDS = frozenset({"tls_mode"})


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
