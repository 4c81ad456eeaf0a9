from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from drive_mounter.dependencies import (
    get_adapter_factory,
    get_config_manager,
    get_mount_orchestrator,
    get_rclone_runner,
    get_settings,
)
from drive_mounter.main import app
from drive_mounter.models import FtpConnection, MountedDrive, MountStatus, SftpConnection
from drive_mounter.services.config_manager import ConfigManager
from drive_mounter.services.rclone.rclone_runner import RcloneRunner


@pytest.fixture
def config_manager(test_settings) -> ConfigManager:
    return ConfigManager(test_settings)


@pytest.fixture
def runner() -> Mock:
    runner = Mock(spec=RcloneRunner)
    runner.obscure_secret = AsyncMock(side_effect=lambda secret: f"obscured({secret})")
    return runner


@pytest.fixture
def adapter() -> Mock:
    adapter = Mock()
    adapter.test_connection = AsyncMock(return_value=(True, "Connection successful!"))
    adapter.delete_remote = AsyncMock(return_value=True)
    return adapter


@pytest.fixture
def orchestrator() -> Mock:
    orchestrator = Mock()
    orchestrator.get_status = AsyncMock(return_value=None)
    orchestrator.unmount = AsyncMock(return_value=True)
    return orchestrator


@pytest.fixture
def client(config_manager, runner, adapter, orchestrator, test_settings):
    factory = Mock()
    factory.for_connection.return_value = adapter
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_config_manager] = lambda: config_manager
    app.dependency_overrides[get_rclone_runner] = lambda: runner
    app.dependency_overrides[get_adapter_factory] = lambda: factory
    app.dependency_overrides[get_mount_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_create_sftp_connection_obscures_password(client, config_manager):
    response = client.post(
        "/api/connections/sftp",
        json={"name": "Build", "host": "build.local", "username": "deploy", "password": "hunter2"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["protocol"] == "sftp"
    assert body["obscured_password"] == "obscured(hunter2)"
    assert "password" not in body

    stored = config_manager.get_connection(body["id"])
    assert isinstance(stored, SftpConnection)
    assert stored.obscured_password == "obscured(hunter2)"


def test_key_file_auth_requires_path(client):
    response = client.post(
        "/api/connections/sftp",
        json={"name": "Build", "host": "h", "username": "u", "auth_type": "key_file"},
    )

    assert response.status_code == 422


def test_create_anonymous_ftp_connection(client, runner):
    response = client.post("/api/connections/ftp", json={"name": "Mirror", "host": "ftp.example.org"})

    assert response.status_code == 201
    assert response.json()["obscured_password"] is None
    runner.obscure_secret.assert_not_called()


def test_list_connections_by_protocol(client, config_manager):
    client.post("/api/connections/ftp", json={"name": "Mirror", "host": "ftp.example.org"})
    client.post("/api/connections/sftp", json={"name": "Build", "host": "h", "username": "u"})

    all_connections = client.get("/api/connections").json()
    ftp_only = client.get("/api/connections", params={"protocol": "ftp"}).json()

    assert len(all_connections) == 2
    assert [c["name"] for c in ftp_only] == ["Mirror"]


def test_test_connection(client, config_manager, adapter):
    created = client.post("/api/connections/ftp", json={"name": "Mirror", "host": "ftp.example.org"}).json()

    response = client.post(f"/api/connections/{created['id']}/test")

    assert response.json() == {"success": True, "message": "Connection successful!"}
    assert isinstance(adapter.test_connection.call_args[0][0], FtpConnection)


def test_delete_mounted_connection_unmounts_first(client, config_manager, orchestrator, adapter):
    created = client.post("/api/connections/ftp", json={"name": "Mirror", "host": "ftp.example.org"}).json()
    orchestrator.get_status.return_value = Mock()

    response = client.delete(f"/api/connections/{created['id']}")

    assert response.status_code == 200
    orchestrator.unmount.assert_awaited_once_with(created["id"])
    adapter.delete_remote.assert_awaited_once()
    assert config_manager.get_connection(created["id"]) is None


def test_unknown_connection(client):
    assert client.delete("/api/connections/nope").status_code == 404
    assert client.post("/api/connections/nope/test").status_code == 404


def test_delete_while_mounting_is_refused(client, config_manager, orchestrator, adapter):
    created = client.post("/api/connections/ftp", json={"name": "Mirror", "host": "ftp.example.org"}).json()
    orchestrator.get_status.return_value = MountedDrive(
        connection_id=created["id"], drive_letter="Z", status=MountStatus.MOUNTING
    )
    orchestrator.unmount.return_value = False

    response = client.delete(f"/api/connections/{created['id']}")

    assert response.status_code == 409
    assert "Mounting" in response.json()["detail"]
    adapter.delete_remote.assert_not_awaited()
    assert config_manager.get_connection(created["id"]) is not None


def test_list_connections_rejects_unknown_protocol(client):
    assert client.get("/api/connections", params={"protocol": "smb"}).status_code == 422


def test_update_connection_keeps_unset_fields(client, config_manager, runner):
    created = client.post(
        "/api/connections/sftp",
        json={"name": "Build", "host": "build.local", "username": "deploy", "password": "hunter2"},
    ).json()

    response = client.put(
        f"/api/connections/{created['id']}",
        json={"host": "build2.local", "mount_settings": {"drive_letter": "m", "read_only": True}},
    )

    assert response.status_code == 200
    stored = config_manager.get_connection(created["id"])
    assert stored.host == "build2.local"
    assert stored.name == "Build"
    assert stored.obscured_password == "obscured(hunter2)"
    assert stored.mount_settings.drive_letter == "M"
    assert stored.mount_settings.read_only is True
    assert response.json()["host"] == "build2.local"
    runner.obscure_secret.assert_awaited_once_with("hunter2")


def test_update_connection_obscures_new_password(client, config_manager):
    created = client.post("/api/connections/ftp", json={"name": "Mirror", "host": "ftp.example.org"}).json()

    client.put(f"/api/connections/{created['id']}", json={"username": "bob", "password": "s3cret"})

    stored = config_manager.get_connection(created["id"])
    assert stored.username == "bob"
    assert stored.obscured_password == "obscured(s3cret)"


def test_update_connection_rejects_fields_of_other_protocol(client, config_manager):
    created = client.post("/api/connections/ftp", json={"name": "Mirror", "host": "ftp.example.org"}).json()

    response = client.put(f"/api/connections/{created['id']}", json={"auth_type": "key_file"})

    assert response.status_code == 422
    assert isinstance(config_manager.get_connection(created["id"]), FtpConnection)


def test_update_connection_requires_key_file_for_key_auth(client):
    created = client.post("/api/connections/sftp", json={"name": "Build", "host": "h", "username": "u"}).json()

    response = client.put(f"/api/connections/{created['id']}", json={"auth_type": "key_file"})

    assert response.status_code == 422


def test_update_unknown_connection(client):
    assert client.put("/api/connections/nope", json={"name": "x"}).status_code == 404
