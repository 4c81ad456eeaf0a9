"""Translate mount and VFS settings into rclone mount flags."""

from typing import List

from ...models import ConnectionBase, GlobalVfsSettings, MountSettings, VfsSettings

# Always passed, independent of user settings
BASELINE_FLAGS = ["--vfs-cache-poll-interval", "1m", "--log-level", "INFO"]


def effective_vfs_settings(mount_settings: MountSettings, global_defaults: GlobalVfsSettings) -> VfsSettings:
    """Connection-level VFS values win only when the connection opts out of global defaults."""
    source = global_defaults if mount_settings.use_global_vfs_settings else mount_settings
    return VfsSettings(**source.vfs_values())


def mount_option_flags(connection: ConnectionBase) -> List[str]:
    settings = connection.mount_settings
    flags: List[str] = []
    if settings.network_mode:
        flags.append("--network-mode")
    flags += ["--volname", settings.volume_name or connection.name or connection.remote_name]
    if settings.read_only:
        flags.append("--read-only")
    return flags


def vfs_flags(vfs: VfsSettings) -> List[str]:
    flags = ["--vfs-cache-mode", vfs.cache_mode.value]

    if vfs.cache_max_size:
        flags += ["--vfs-cache-max-size", vfs.cache_max_size]
    if vfs.cache_max_age:
        flags += ["--vfs-cache-max-age", vfs.cache_max_age]
    if vfs.cache_max_files > 0:
        flags += ["--vfs-cache-max-files", str(vfs.cache_max_files)]

    flags += ["--dir-cache-time", f"{vfs.dir_cache_time_minutes}m"]
    if vfs.poll_interval_seconds > 0:
        flags += ["--poll-interval", f"{vfs.poll_interval_seconds}s"]

    if vfs.buffer_size:
        flags += ["--buffer-size", vfs.buffer_size]
    if vfs.chunk_size:
        flags += ["--vfs-read-chunk-size", vfs.chunk_size]
    flags += ["--transfers", str(vfs.transfers), "--checkers", str(vfs.checkers)]

    if vfs.async_read:
        flags += ["--vfs-read-wait", "0"]
    if vfs.async_write:
        flags += ["--vfs-write-wait", "0"]
    if vfs.umask and vfs.umask != "000":
        flags += ["--umask", vfs.umask]
    if vfs.uid > 0:
        flags += ["--uid", str(vfs.uid)]
    if vfs.gid > 0:
        flags += ["--gid", str(vfs.gid)]
    return flags


def build_mount_arguments(
    connection: ConnectionBase,
    drive_letter: str,
    global_defaults: GlobalVfsSettings,
    cache_directory: str = "",
) -> List[str]:
    """rclone arguments (without executable/--config) for mounting connection at drive_letter."""
    args = ["mount", connection.remote_spec, f"{drive_letter}:"]
    args += mount_option_flags(connection)
    args += vfs_flags(effective_vfs_settings(connection.mount_settings, global_defaults))
    if cache_directory:
        args += ["--cache-dir", cache_directory]
    args += BASELINE_FLAGS
    return args
