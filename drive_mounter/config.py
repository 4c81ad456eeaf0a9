from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Data directory (settings.json, rclone.conf, vfs cache)
    data_directory: str = str(Path.home() / ".drive-mounter")

    # rclone executable (overridden by custom_rclone_path in settings.json)
    rclone_path: str = "rclone"
    rclone_command_timeout_seconds: int = 60
    connection_test_timeout_seconds: int = 30

    # Mount timing
    mount_initial_grace_seconds: float = 2.0  # Detect instant launch failures
    mount_ready_grace_seconds: float = 3.0  # Extra wait for the drive to appear
    unmount_grace_seconds: float = 3.0  # Wait for killed mount process to exit
    shutdown_timeout_seconds: float = 5.0  # Overall bound on unmount-all at exit

    # Logging konfiguration
    log_level: str = "INFO"
    log_file_path: str = "logs/drive_mounter.log"
    log_retention_days: int = 30

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    model_config = SettingsConfigDict(env_file="settings.env", extra="ignore")

    @property
    def data_path(self) -> Path:
        return Path(self.data_directory)

    @property
    def settings_file_path(self) -> Path:
        """Persisted application settings and connections."""
        return self.data_path / "settings.json"

    @property
    def rclone_config_path(self) -> Path:
        """rclone config file holding the remote definitions we create."""
        return self.data_path / "rclone.conf"

    @property
    def cache_directory(self) -> Path:
        return self.data_path / "cache"

    @property
    def log_directory(self) -> Path:
        """Directory holding the rotating log files."""
        return Path(self.log_file_path).parent
