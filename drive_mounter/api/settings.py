import logging

from fastapi import APIRouter, Depends

from ..dependencies import get_config_manager
from ..models import GlobalVfsSettings, Preferences, VfsPerformanceProfile
from ..services.config_manager import ConfigManager

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/vfs", response_model=GlobalVfsSettings)
async def read_vfs_settings(config_manager: ConfigManager = Depends(get_config_manager)):
    """Global VFS defaults used by every mount that does not override them"""
    return config_manager.global_defaults()


@router.put("/vfs", response_model=GlobalVfsSettings)
async def update_vfs_settings(
    vfs_settings: GlobalVfsSettings,
    config_manager: ConfigManager = Depends(get_config_manager),
):
    vfs_settings.is_customized = True
    await config_manager.update_global_defaults(vfs_settings)
    logging.info("Global VFS settings updated", extra={"operation": "api_update_vfs"})
    return vfs_settings


@router.post("/vfs/profile/{profile}", response_model=GlobalVfsSettings)
async def apply_vfs_profile(
    profile: VfsPerformanceProfile,
    config_manager: ConfigManager = Depends(get_config_manager),
):
    """Apply a preset; takes effect on the next mount."""
    vfs_settings = config_manager.global_defaults()
    vfs_settings.apply_profile(profile)
    await config_manager.update_global_defaults(vfs_settings)
    logging.info(f"Applied VFS profile {profile.value}", extra={"operation": "api_vfs_profile"})
    return vfs_settings


@router.post("/vfs/reset", response_model=GlobalVfsSettings)
async def reset_vfs_settings(config_manager: ConfigManager = Depends(get_config_manager)):
    vfs_settings = config_manager.global_defaults()
    vfs_settings.reset_to_defaults()
    await config_manager.update_global_defaults(vfs_settings)
    return vfs_settings


@router.get("/preferences", response_model=Preferences)
async def read_preferences(config_manager: ConfigManager = Depends(get_config_manager)):
    return config_manager.preferences()


@router.put("/preferences", response_model=Preferences)
async def update_preferences(
    preferences: Preferences,
    config_manager: ConfigManager = Depends(get_config_manager),
):
    """
    Replace the application preferences.

    A custom rclone path that does not exist is stored but ignored until it
    does; the configured default is used meanwhile.
    """
    await config_manager.update_preferences(preferences)
    logging.info(
        f"Preferences updated, rclone: {config_manager.effective_rclone_path()}",
        extra={"operation": "api_update_preferences"},
    )
    return config_manager.preferences()
