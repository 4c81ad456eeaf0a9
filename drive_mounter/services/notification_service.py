import logging
from typing import Optional

from rich.console import Console
from rich.panel import Panel


class NotificationService:
    """
    Desktop-style notifications for mount events.

    Best-effort: disabled notifications are skipped and rendering errors are
    logged, never raised to the mount code.
    """

    def __init__(self, config_manager, console: Optional[Console] = None):
        self._config_manager = config_manager
        self._console = console or Console(stderr=True)

    def _should_show(self) -> bool:
        try:
            return self._config_manager.notifications_enabled()
        except Exception as e:
            logging.debug(f"Could not read notification preference: {e}")
            return True

    def _show(self, title: str, message: str, style: str) -> None:
        if not self._should_show():
            return
        try:
            self._console.print(Panel(message, title=title, border_style=style, expand=False))
            logging.info(f"{title}: {message}", extra={"operation": "notification"})
        except Exception as e:
            logging.warning(f"Ignoring notification error: {e}")

    def notify_mounted(self, connection_name: str, drive_letter: str) -> None:
        self._show("Drive Mounted", f"{connection_name} is now available as {drive_letter}:\\", "green")

    def notify_unmounted(self, connection_name: str, drive_letter: str) -> None:
        self._show("Drive Unmounted", f"{connection_name} ({drive_letter}:\\) has been disconnected", "blue")

    def notify_mount_error(self, connection_name: str, error_message: str) -> None:
        self._show("Mount Failed", f"Failed to mount {connection_name}: {error_message}", "red")
