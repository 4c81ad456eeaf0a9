import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ..core.exceptions import (
    AlreadyMountingError,
    NoDriveLetterAvailableError,
    UnknownConnectionError,
    UnsupportedProtocolError,
)
from ..dependencies import get_allocator, get_mount_orchestrator, get_mount_registry
from ..core.mount_registry import MountRegistry
from ..models import MountedDrive, MountRequest
from ..services.drive_letters import DriveLetterAllocator
from ..services.mount_orchestrator import MountOrchestrator

router = APIRouter(prefix="/api", tags=["mounts"])


@router.get("/mounts", response_model=List[MountedDrive])
async def list_mounts(orchestrator: MountOrchestrator = Depends(get_mount_orchestrator)):
    return await orchestrator.mounted_drives()


@router.get("/mounts/{connection_id}", response_model=MountedDrive)
async def get_mount(connection_id: str, orchestrator: MountOrchestrator = Depends(get_mount_orchestrator)):
    drive = await orchestrator.get_status(connection_id)
    if drive is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{connection_id} is not mounted")
    return drive


@router.post("/mounts/unmount-all")
async def unmount_all(
    orchestrator: MountOrchestrator = Depends(get_mount_orchestrator),
    registry: MountRegistry = Depends(get_mount_registry),
):
    await orchestrator.unmount_all()
    return {"success": True, "remaining": await registry.count()}


@router.post("/mounts/{connection_id}", response_model=MountedDrive)
async def mount_connection(
    connection_id: str,
    request: Optional[MountRequest] = None,
    orchestrator: MountOrchestrator = Depends(get_mount_orchestrator),
):
    """
    Mount a stored connection.

    A failed mount still returns 200 with status Error and last_error set.

    HTTP Status Codes:
        404: Unknown connection
        409: No free drive letter, or the connection is already mounted/mounting
    """
    preferred_letter = request.drive_letter if request else None
    logging.info(
        f"Mount requested for {connection_id}",
        extra={"operation": "api_mount", "connection_id": connection_id},
    )
    try:
        return await orchestrator.mount_by_id(connection_id, preferred_letter)
    except UnknownConnectionError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (NoDriveLetterAvailableError, AlreadyMountingError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except UnsupportedProtocolError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.delete("/mounts/{connection_id}")
async def unmount_connection(connection_id: str, orchestrator: MountOrchestrator = Depends(get_mount_orchestrator)):
    success = await orchestrator.unmount(connection_id)
    drive = await orchestrator.get_status(connection_id)
    return {"success": success, "status": drive.status.value if drive else "Unmounted"}


@router.get("/drive-letters", response_model=List[str])
async def available_drive_letters(
    allocator: DriveLetterAllocator = Depends(get_allocator),
    registry: MountRegistry = Depends(get_mount_registry),
):
    """Free letters, Z first, minus those held by in-flight mounts."""
    letters = await asyncio.to_thread(allocator.available_letters)
    taken = await registry.live_drive_letters()
    return [letter for letter in letters if letter not in taken]
