"""
Mount orchestration.

Components:
- MountOrchestrator: mount, unmount, unmount-all, auto-mount and shutdown
- ProcessSupervisor: one watch task per mounted rclone process, turning an
  exit nobody asked for into an Error entry
"""

from .mount_orchestrator import MountOrchestrator
from .process_supervisor import ProcessSupervisor

__all__ = [
    "MountOrchestrator",
    "ProcessSupervisor",
]
