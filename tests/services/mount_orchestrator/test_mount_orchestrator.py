import asyncio
import logging
from typing import List, Tuple
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from drive_mounter.core.events.event_bus import DomainEventBus
from drive_mounter.core.events.mount_events import MountStatusChangedEvent
from drive_mounter.core.exceptions import (
    UNEXPECTED_TERMINATION_MESSAGE,
    AlreadyMountingError,
    NoDriveLetterAvailableError,
    UnknownConnectionError,
)
from drive_mounter.core.mount_registry import MountRegistry
from drive_mounter.core.mount_state_machine import MountStateMachine
from drive_mounter.models import FtpConnection, MountErrorKind, MountResult, MountSettings, MountStatus, SftpConnection
from drive_mounter.services.mount_orchestrator import MountOrchestrator

logging.disable(logging.CRITICAL)

Transition = Tuple[str, MountStatus, MountStatus]


async def wait_until(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def registry() -> MountRegistry:
    return MountRegistry()


@pytest.fixture
def event_bus() -> DomainEventBus:
    return DomainEventBus()


@pytest_asyncio.fixture
async def transitions(event_bus) -> List[Transition]:
    recorded: List[Transition] = []

    async def record(event: MountStatusChangedEvent):
        recorded.append((event.connection_id, event.old_status, event.new_status))

    await event_bus.subscribe(MountStatusChangedEvent, record)
    return recorded


@pytest.fixture
def adapter(make_process) -> Mock:
    adapter = Mock()
    adapter.available_letters = Mock(return_value=["Z", "Y", "X"])
    adapter.unmount = AsyncMock(return_value=True)

    async def mount(connection, drive_letter):
        return MountResult(success=True, drive_letter=drive_letter, process=make_process())

    adapter.mount = AsyncMock(side_effect=mount)
    return adapter


@pytest.fixture
def adapter_factory(adapter) -> Mock:
    factory = Mock()
    factory.protocols = ["sftp", "ftp"]
    factory.for_connection.return_value = adapter
    factory.for_protocol.return_value = adapter
    return factory


@pytest.fixture
def config_manager() -> Mock:
    config_manager = Mock()
    config_manager.auto_mount_enabled.return_value = True
    config_manager.unmount_on_close_enabled.return_value = True
    config_manager.list_connections.return_value = []
    config_manager.get_connection.return_value = None
    return config_manager


@pytest.fixture
def notifications() -> Mock:
    return Mock()


@pytest.fixture
def orchestrator(registry, event_bus, adapter_factory, config_manager, notifications, test_settings):
    state_machine = MountStateMachine(registry=registry, event_bus=event_bus)
    return MountOrchestrator(
        state_machine=state_machine,
        registry=registry,
        adapter_factory=adapter_factory,
        config_manager=config_manager,
        notification_service=notifications,
        settings=test_settings,
    )


def _connection(connection_id="c1", name="Build", letter="", auto_mount=False) -> SftpConnection:
    return SftpConnection(
        id=connection_id,
        name=name,
        host="build.local",
        mount_settings=MountSettings(drive_letter=letter),
        auto_mount=auto_mount,
    )


@pytest.mark.asyncio
async def test_happy_path_emits_mounting_then_mounted(orchestrator, transitions, notifications):
    drive = await orchestrator.mount(_connection(), "Z")

    assert drive.status == MountStatus.MOUNTED
    assert drive.drive_letter == "Z"
    assert drive.process is None
    assert drive.process_id == 4242
    assert transitions == [
        ("c1", MountStatus.UNMOUNTED, MountStatus.MOUNTING),
        ("c1", MountStatus.MOUNTING, MountStatus.MOUNTED),
    ]
    notifications.notify_mounted.assert_called_once_with("Build", "Z")
    assert await orchestrator.is_mounted("c1") is True


@pytest.mark.asyncio
async def test_letters_do_not_collide_between_mounts(orchestrator, adapter):
    adapter.available_letters.return_value = ["Z", "Y"]

    first = await orchestrator.mount(_connection("c1"))
    second = await orchestrator.mount(_connection("c2"))

    assert first.drive_letter == "Z"
    assert second.drive_letter == "Y"


@pytest.mark.asyncio
async def test_letter_priority(orchestrator, adapter):
    stored = await orchestrator.mount(_connection("c1", letter="M"))
    explicit = await orchestrator.mount(_connection("c2", letter="N"), "P")

    assert stored.drive_letter == "M"
    assert explicit.drive_letter == "P"
    adapter.available_letters.assert_not_called()


@pytest.mark.asyncio
async def test_no_drive_letter_available(orchestrator, adapter, registry, transitions):
    adapter.available_letters.return_value = []

    with pytest.raises(NoDriveLetterAvailableError):
        await orchestrator.mount(_connection())

    assert await registry.count() == 0
    assert transitions == []


@pytest.mark.asyncio
async def test_adapter_failure_parks_entry_in_error(orchestrator, adapter, transitions, notifications):
    adapter.mount.side_effect = None
    adapter.mount.return_value = MountResult(
        success=False, drive_letter="Z", error_message="ssh: handshake failed",
        error_kind=MountErrorKind.LAUNCH_FAILED,
    )

    drive = await orchestrator.mount(_connection())

    assert drive.status == MountStatus.ERROR
    assert drive.last_error == "ssh: handshake failed"
    assert drive.error_kind == MountErrorKind.LAUNCH_FAILED
    assert transitions == [
        ("c1", MountStatus.UNMOUNTED, MountStatus.MOUNTING),
        ("c1", MountStatus.MOUNTING, MountStatus.ERROR),
    ]
    assert (await orchestrator.get_status("c1")).status == MountStatus.ERROR
    notifications.notify_mount_error.assert_called_once_with("Build", "ssh: handshake failed")


@pytest.mark.asyncio
async def test_adapter_exception_becomes_error(orchestrator, adapter):
    adapter.mount.side_effect = OSError("rclone.exe not found")

    drive = await orchestrator.mount(_connection())

    assert drive.status == MountStatus.ERROR
    assert "rclone.exe not found" in drive.last_error


@pytest.mark.asyncio
async def test_concurrent_mounts_of_one_connection(orchestrator, adapter, registry, make_process):
    async def slow_mount(connection, drive_letter):
        await asyncio.sleep(0.02)
        return MountResult(success=True, drive_letter=drive_letter, process=make_process())

    adapter.mount.side_effect = slow_mount

    results = await asyncio.gather(*(orchestrator.mount(_connection()) for _ in range(3)), return_exceptions=True)

    assert sum(1 for r in results if isinstance(r, AlreadyMountingError)) == 2
    assert await registry.count() == 1
    assert adapter.mount.await_count == 1


@pytest.mark.asyncio
async def test_mounting_a_mounted_connection_is_rejected(orchestrator):
    await orchestrator.mount(_connection())

    with pytest.raises(AlreadyMountingError):
        await orchestrator.mount(_connection())


@pytest.mark.asyncio
async def test_retry_after_error(orchestrator, adapter, make_process):
    adapter.mount.side_effect = [
        MountResult(success=False, drive_letter="Z", error_message="timeout", error_kind=MountErrorKind.TIMED_OUT),
        MountResult(success=True, drive_letter="Z", process=make_process()),
    ]

    failed = await orchestrator.mount(_connection(), "Z")
    retried = await orchestrator.mount(_connection(), "Z")

    assert failed.status == MountStatus.ERROR
    assert failed.error_kind == MountErrorKind.TIMED_OUT
    assert retried.status == MountStatus.MOUNTED
    assert retried.last_error is None
    assert retried.error_kind is None


@pytest.mark.asyncio
async def test_mount_then_unmount_leaves_no_entry(orchestrator, registry, transitions, notifications):
    await orchestrator.mount(_connection(), "Z")
    process = (await registry.get("c1")).process

    assert await orchestrator.unmount("c1") is True

    assert await registry.get("c1") is None
    assert process.kill_calls == 1
    assert transitions[-2:] == [
        ("c1", MountStatus.MOUNTED, MountStatus.UNMOUNTING),
        ("c1", MountStatus.UNMOUNTING, MountStatus.UNMOUNTED),
    ]
    notifications.notify_unmounted.assert_called_once_with("Build", "Z")

    # The supervisor sees the exit but the entry is gone: no Error follows
    await asyncio.sleep(0.02)
    assert transitions[-1][2] == MountStatus.UNMOUNTED


@pytest.mark.asyncio
async def test_unmount_unknown_connection(orchestrator, transitions, notifications):
    assert await orchestrator.unmount("missing") is False
    assert transitions == []
    notifications.notify_unmounted.assert_not_called()


@pytest.mark.asyncio
async def test_unmount_does_not_wait_forever(orchestrator, adapter, registry, make_stuck_process):
    process = make_stuck_process()
    adapter.mount.side_effect = None
    adapter.mount.return_value = MountResult(success=True, drive_letter="Z", process=process)
    await orchestrator.mount(_connection())

    assert await asyncio.wait_for(orchestrator.unmount("c1"), timeout=1) is True
    assert process.kill_calls == 1
    assert await registry.get("c1") is None
    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_unmount_without_process_falls_back_to_letter(orchestrator, adapter, adapter_factory, registry):
    adapter.mount.side_effect = None
    adapter.mount.return_value = MountResult(success=False, drive_letter="Z", error_message="timeout")
    await orchestrator.mount(_connection(), "Z")

    assert await orchestrator.unmount("c1") is True

    adapter_factory.for_protocol.assert_called_with("sftp")
    adapter.unmount.assert_awaited_once_with("Z")
    assert await registry.get("c1") is None


@pytest.mark.asyncio
async def test_teardown_exception_leaves_error(orchestrator, registry, transitions):
    await orchestrator.mount(_connection())
    process = (await registry.get("c1")).process
    process.kill = Mock(side_effect=PermissionError("access denied"))

    assert await orchestrator.unmount("c1") is False

    drive = await orchestrator.get_status("c1")
    assert drive.status == MountStatus.ERROR
    assert "access denied" in drive.last_error
    assert drive.error_kind == MountErrorKind.UNMOUNT_FAILED
    assert transitions[-1] == ("c1", MountStatus.UNMOUNTING, MountStatus.ERROR)
    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_unexpected_exit_moves_mounted_to_error(orchestrator, registry, transitions):
    await orchestrator.mount(_connection())
    process = (await registry.get("c1")).process

    process.exit(1)
    await wait_until(lambda: transitions[-1][2] == MountStatus.ERROR)

    drive = await orchestrator.get_status("c1")
    assert drive.status == MountStatus.ERROR
    assert drive.last_error == UNEXPECTED_TERMINATION_MESSAGE
    assert drive.error_kind == MountErrorKind.UNEXPECTED_TERMINATION
    assert transitions[-1] == ("c1", MountStatus.MOUNTED, MountStatus.ERROR)


@pytest.mark.asyncio
async def test_unmount_all_survives_one_failure(orchestrator, registry):
    for connection_id in ("c1", "c2", "c3"):
        await orchestrator.mount(_connection(connection_id))
    (await registry.get("c2")).process.kill = Mock(side_effect=RuntimeError("boom"))

    await orchestrator.unmount_all()

    assert await registry.connection_ids() == ["c2"]
    assert (await registry.get("c2")).status == MountStatus.ERROR
    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_auto_mount_only_flagged_connections(orchestrator, adapter, config_manager, make_process):
    flagged = _connection("c1", auto_mount=True)
    broken = FtpConnection(id="c2", name="Broken", auto_mount=True)
    ignored = _connection("c3", auto_mount=False)
    config_manager.list_connections.side_effect = lambda protocol: {
        "sftp": [flagged, ignored],
        "ftp": [broken],
    }[protocol]

    async def mount(connection, drive_letter):
        if connection.id == "c2":
            raise RuntimeError("unreachable host")
        return MountResult(success=True, drive_letter=drive_letter, process=make_process())

    adapter.mount.side_effect = mount

    await orchestrator.auto_mount()

    assert await orchestrator.is_mounted("c1") is True
    assert (await orchestrator.get_status("c2")).status == MountStatus.ERROR
    assert await orchestrator.get_status("c3") is None


@pytest.mark.asyncio
async def test_auto_mount_disabled(orchestrator, config_manager, adapter):
    config_manager.auto_mount_enabled.return_value = False
    config_manager.list_connections.return_value = [_connection(auto_mount=True)]

    await orchestrator.auto_mount()

    adapter.mount.assert_not_called()


@pytest.mark.asyncio
async def test_shutdown_is_bounded(orchestrator, test_settings):
    async def hung_unmount_all():
        await asyncio.sleep(10)

    orchestrator.unmount_all = hung_unmount_all

    await asyncio.wait_for(orchestrator.shutdown(), timeout=test_settings.shutdown_timeout_seconds + 1)


@pytest.mark.asyncio
async def test_shutdown_respects_unmount_on_close(orchestrator, config_manager, registry):
    await orchestrator.mount(_connection())
    config_manager.unmount_on_close_enabled.return_value = False

    await orchestrator.shutdown()

    assert await registry.count() == 1
    assert orchestrator.supervisor.is_watching("c1") is False


@pytest.mark.asyncio
async def test_mount_by_id(orchestrator, config_manager):
    with pytest.raises(UnknownConnectionError):
        await orchestrator.mount_by_id("missing")

    config_manager.get_connection.return_value = _connection("c9")
    drive = await orchestrator.mount_by_id("c9", "q")

    assert drive.drive_letter == "Q"


@pytest.mark.asyncio
async def test_notification_failure_does_not_break_mount(orchestrator, notifications):
    notifications.notify_mounted.side_effect = RuntimeError("toast failed")

    drive = await orchestrator.mount(_connection())

    assert drive.status == MountStatus.MOUNTED


@pytest.mark.asyncio
async def test_success_without_process_is_a_launch_failure(orchestrator, adapter, notifications):
    adapter.mount.side_effect = None
    adapter.mount.return_value = MountResult(success=True, drive_letter="Z", process=None)

    drive = await orchestrator.mount(_connection(), "Z")

    assert drive.status == MountStatus.ERROR
    assert drive.error_kind == MountErrorKind.LAUNCH_FAILED
    assert await orchestrator.is_mounted("c1") is False
    assert orchestrator.supervisor.is_watching("c1") is False
    notifications.notify_mounted.assert_not_called()
    notifications.notify_mount_error.assert_called_once()


@pytest.mark.asyncio
async def test_unmount_while_mounting_is_refused(orchestrator, adapter, transitions, make_process):
    release = asyncio.Event()

    async def slow_mount(connection, drive_letter):
        await release.wait()
        return MountResult(success=True, drive_letter=drive_letter, process=make_process())

    adapter.mount.side_effect = slow_mount
    mount_task = asyncio.create_task(orchestrator.mount(_connection(), "Z"))
    await wait_until(lambda: bool(transitions) and transitions[-1][2] == MountStatus.MOUNTING)

    assert await orchestrator.unmount("c1") is False
    assert (await orchestrator.get_status("c1")).status == MountStatus.MOUNTING

    release.set()
    drive = await mount_task

    assert drive.status == MountStatus.MOUNTED
    assert transitions == [
        ("c1", MountStatus.UNMOUNTED, MountStatus.MOUNTING),
        ("c1", MountStatus.MOUNTING, MountStatus.MOUNTED),
    ]
    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_unmounting_error_entry_spares_letter_reused_by_another_mount(
    orchestrator, adapter, registry, make_process
):
    adapter.mount.side_effect = [
        MountResult(success=False, drive_letter="Z", error_message="timeout", error_kind=MountErrorKind.TIMED_OUT),
        MountResult(success=True, drive_letter="Z", process=make_process()),
    ]
    await orchestrator.mount(_connection("c1"), "Z")
    reused = await orchestrator.mount(_connection("c2", name="Other"), "Z")
    live_process = (await registry.get("c2")).process

    async def kill_by_letter(drive_letter):
        live_process.kill()
        return True

    adapter.unmount.side_effect = kill_by_letter

    assert reused.drive_letter == "Z"
    assert await orchestrator.unmount("c1") is True

    adapter.unmount.assert_not_awaited()
    assert live_process.kill_calls == 0
    assert await registry.get("c1") is None
    assert await orchestrator.is_mounted("c2") is True
    await orchestrator.shutdown()
