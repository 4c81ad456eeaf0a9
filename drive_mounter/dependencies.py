from functools import lru_cache
from typing import Any, Dict

from drive_mounter.core.events.event_bus import DomainEventBus
from drive_mounter.core.mount_registry import MountRegistry
from drive_mounter.core.mount_state_machine import MountStateMachine

from .config import Settings
from .services.config_manager import ConfigManager
from .services.drive_letters import DriveLetterAllocator
from .services.mount_orchestrator import MountOrchestrator
from .services.notification_service import NotificationService
from .services.rclone import AdapterFactory, RcloneRunner
from .services.websocket_manager import WebSocketManager

# Global singleton instances
_singletons: Dict[str, Any] = {}


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_event_bus() -> DomainEventBus:
    if "event_bus" not in _singletons:
        _singletons["event_bus"] = DomainEventBus()
    return _singletons["event_bus"]


def get_mount_registry() -> MountRegistry:
    if "mount_registry" not in _singletons:
        _singletons["mount_registry"] = MountRegistry()
    return _singletons["mount_registry"]


def get_state_machine() -> MountStateMachine:
    if "state_machine" not in _singletons:
        _singletons["state_machine"] = MountStateMachine(
            registry=get_mount_registry(),
            event_bus=get_event_bus(),
        )
    return _singletons["state_machine"]


def get_config_manager() -> ConfigManager:
    if "config_manager" not in _singletons:
        _singletons["config_manager"] = ConfigManager(get_settings())
    return _singletons["config_manager"]


def get_rclone_runner() -> RcloneRunner:
    if "rclone_runner" not in _singletons:
        settings = get_settings()
        config_manager = get_config_manager()
        _singletons["rclone_runner"] = RcloneRunner(
            rclone_path=config_manager.effective_rclone_path,
            config_path=settings.rclone_config_path,
            default_timeout=settings.rclone_command_timeout_seconds,
        )
    return _singletons["rclone_runner"]


def get_allocator() -> DriveLetterAllocator:
    if "allocator" not in _singletons:
        _singletons["allocator"] = DriveLetterAllocator()
    return _singletons["allocator"]


def get_adapter_factory() -> AdapterFactory:
    if "adapter_factory" not in _singletons:
        _singletons["adapter_factory"] = AdapterFactory(
            runner=get_rclone_runner(),
            config_manager=get_config_manager(),
            settings=get_settings(),
            allocator=get_allocator(),
        )
    return _singletons["adapter_factory"]


def get_notification_service() -> NotificationService:
    if "notification_service" not in _singletons:
        _singletons["notification_service"] = NotificationService(get_config_manager())
    return _singletons["notification_service"]


def get_mount_orchestrator() -> MountOrchestrator:
    if "mount_orchestrator" not in _singletons:
        _singletons["mount_orchestrator"] = MountOrchestrator(
            state_machine=get_state_machine(),
            registry=get_mount_registry(),
            adapter_factory=get_adapter_factory(),
            config_manager=get_config_manager(),
            notification_service=get_notification_service(),
            settings=get_settings(),
        )
    return _singletons["mount_orchestrator"]


def get_websocket_manager() -> WebSocketManager:
    if "websocket_manager" not in _singletons:
        _singletons["websocket_manager"] = WebSocketManager(
            registry=get_mount_registry(),
            event_bus=get_event_bus(),
        )
    return _singletons["websocket_manager"]


def reset_singletons() -> None:
    global _singletons
    _singletons.clear()
