import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_adapter_factory, get_config_manager, get_mount_orchestrator, get_rclone_runner
from ..models import (
    FTP_ONLY_FIELDS,
    SFTP_ONLY_FIELDS,
    SUPPORTED_PROTOCOLS,
    AuthenticationType,
    Connection,
    ConnectionTestResult,
    ConnectionUpdateRequest,
    FtpConnection,
    FtpConnectionRequest,
    SftpConnection,
    SftpConnectionRequest,
)
from ..services.config_manager import ConfigManager
from ..services.mount_orchestrator import MountOrchestrator
from ..services.rclone import AdapterFactory, RcloneRunner

router = APIRouter(prefix="/api", tags=["connections"])


async def _obscure(runner: RcloneRunner, secret: Optional[str]) -> Optional[str]:
    if not secret:
        return None
    try:
        return await runner.obscure_secret(secret)
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


def _require_connection(config_manager: ConfigManager, connection_id: str) -> Connection:
    connection = config_manager.get_connection(connection_id)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Connection {connection_id} not found")
    return connection


@router.get("/connections", response_model=List[Connection])
async def list_connections(
    protocol: Optional[str] = None,
    config_manager: ConfigManager = Depends(get_config_manager),
):
    if protocol and protocol not in SUPPORTED_PROTOCOLS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown protocol {protocol!r}, expected one of {', '.join(SUPPORTED_PROTOCOLS)}",
        )
    return config_manager.list_connections(protocol)


@router.post("/connections/sftp", response_model=SftpConnection, status_code=status.HTTP_201_CREATED)
async def create_sftp_connection(
    request: SftpConnectionRequest,
    config_manager: ConfigManager = Depends(get_config_manager),
    runner: RcloneRunner = Depends(get_rclone_runner),
):
    if request.auth_type == AuthenticationType.KEY_FILE and not request.key_file_path:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="key_file_path is required")

    connection = SftpConnection(
        name=request.name,
        host=request.host,
        port=request.port,
        username=request.username,
        obscured_password=await _obscure(runner, request.password),
        auth_type=request.auth_type,
        key_file_path=request.key_file_path,
        obscured_key_passphrase=await _obscure(runner, request.key_passphrase),
        remote_path=request.remote_path,
        mount_settings=request.mount_settings,
        auto_mount=request.auto_mount,
    )
    await config_manager.add_connection(connection)
    logging.info(f"Created SFTP connection {connection.name}", extra={"operation": "api_create_connection"})
    return connection


@router.post("/connections/ftp", response_model=FtpConnection, status_code=status.HTTP_201_CREATED)
async def create_ftp_connection(
    request: FtpConnectionRequest,
    config_manager: ConfigManager = Depends(get_config_manager),
    runner: RcloneRunner = Depends(get_rclone_runner),
):
    connection = FtpConnection(
        name=request.name,
        host=request.host,
        port=request.port,
        username=request.username,
        obscured_password=await _obscure(runner, request.password),
        tls_mode=request.tls_mode,
        remote_path=request.remote_path,
        mount_settings=request.mount_settings,
        auto_mount=request.auto_mount,
    )
    await config_manager.add_connection(connection)
    logging.info(f"Created FTP connection {connection.name}", extra={"operation": "api_create_connection"})
    return connection


@router.put("/connections/{connection_id}", response_model=Connection)
async def update_connection(
    connection_id: str,
    request: ConnectionUpdateRequest,
    config_manager: ConfigManager = Depends(get_config_manager),
    runner: RcloneRunner = Depends(get_rclone_runner),
):
    """
    Edit a stored connection. A live mount keeps its old options until it
    is mounted again.

    HTTP Status Codes:
        404: Unknown connection
        422: A field that does not apply to the connection's protocol
    """
    connection = _require_connection(config_manager, connection_id)
    changes = request.model_dump(exclude_unset=True, exclude_none=True)

    foreign = FTP_ONLY_FIELDS if connection.protocol == "sftp" else SFTP_ONLY_FIELDS
    misplaced = sorted(foreign.intersection(changes))
    if misplaced:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Not valid for {connection.protocol} connections: {', '.join(misplaced)}",
        )

    if "password" in changes:
        changes["obscured_password"] = await _obscure(runner, changes.pop("password"))
    if "key_passphrase" in changes:
        changes["obscured_key_passphrase"] = await _obscure(runner, changes.pop("key_passphrase"))
    if "mount_settings" in changes:
        changes["mount_settings"] = request.mount_settings

    updated = connection.model_copy(update=changes)
    if (
        isinstance(updated, SftpConnection)
        and updated.auth_type == AuthenticationType.KEY_FILE
        and not updated.key_file_path
    ):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="key_file_path is required")

    await config_manager.update_connection(updated)
    logging.info(
        f"Updated connection {updated.name}: {', '.join(sorted(changes)) or 'no changes'}",
        extra={"operation": "api_update_connection", "connection_id": connection_id},
    )
    return config_manager.get_connection(connection_id)


@router.delete("/connections/{connection_id}")
async def delete_connection(
    connection_id: str,
    config_manager: ConfigManager = Depends(get_config_manager),
    orchestrator: MountOrchestrator = Depends(get_mount_orchestrator),
    adapter_factory: AdapterFactory = Depends(get_adapter_factory),
):
    """
    Unmount if needed, drop the rclone remote and forget the connection.

    HTTP Status Codes:
        404: Unknown connection
        409: The mount could not be torn down (in flight or teardown failed)
    """
    connection = _require_connection(config_manager, connection_id)

    if await orchestrator.get_status(connection_id) is not None:
        if not await orchestrator.unmount(connection_id):
            drive = await orchestrator.get_status(connection_id)
            state = drive.status.value if drive else "unknown"
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Connection {connection_id} could not be unmounted (status: {state})",
            )

    await adapter_factory.for_connection(connection).delete_remote(connection)
    await config_manager.delete_connection(connection_id)
    return {"success": True, "connection_id": connection_id}


@router.post("/connections/{connection_id}/test", response_model=ConnectionTestResult)
async def test_connection(
    connection_id: str,
    config_manager: ConfigManager = Depends(get_config_manager),
    adapter_factory: AdapterFactory = Depends(get_adapter_factory),
):
    connection = _require_connection(config_manager, connection_id)

    success, message = await adapter_factory.for_connection(connection).test_connection(connection)
    logging.info(
        f"Connection test for {connection.name}: {message}",
        extra={"operation": "api_test_connection"},
    )
    return ConnectionTestResult(success=success, message=message)
