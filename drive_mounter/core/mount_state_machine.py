import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from drive_mounter.core.events.event_bus import DomainEventBus
from drive_mounter.core.events.mount_events import MountStatusChangedEvent
from drive_mounter.core.exceptions import (
    AlreadyMountingError,
    InvalidTransitionError,
    NoDriveLetterAvailableError,
)
from drive_mounter.core.mount_registry import MountRegistry
from drive_mounter.models import MountedDrive, MountStatus


class MountStateMachine:
    """
    Single gatekeeper for every mount status change.

    This is the ONLY class allowed to:
    1. Validate a status transition.
    2. Change a MountedDrive's status, or insert/remove registry entries.
    3. Publish MountStatusChangedEvent.

    Events are published after the lock is released but before the call
    returns, so a caller driving one connection sees its events in transition
    order.
    """

    def __init__(self, registry: MountRegistry, event_bus: DomainEventBus):
        self._registry = registry
        self._event_bus = event_bus
        # Guards read-check-write sequences across registry calls
        self._lock = asyncio.Lock()

        self._transitions: Dict[MountStatus, Set[MountStatus]] = {
            MountStatus.UNMOUNTED: {
                MountStatus.MOUNTING,
            },
            MountStatus.MOUNTING: {
                MountStatus.MOUNTED,
                MountStatus.ERROR,
            },
            MountStatus.MOUNTED: {
                MountStatus.UNMOUNTING,
                MountStatus.ERROR,  # Process died on its own
            },
            MountStatus.UNMOUNTING: {
                MountStatus.UNMOUNTED,
                MountStatus.ERROR,
            },
            MountStatus.ERROR: {
                MountStatus.MOUNTING,  # Retry
                MountStatus.UNMOUNTING,  # Force kill of a stuck process
            },
        }
        logging.info("MountStateMachine initialized with %s transition rules", len(self._transitions))

    def allowed_transitions(self, status: MountStatus) -> Set[MountStatus]:
        return set(self._transitions.get(status, set()))

    async def begin_mount(
        self,
        *,
        connection_id: str,
        connection_name: str,
        candidate_letters: List[str],
        protocol: Optional[str] = None,
    ) -> MountedDrive:
        """
        Atomically create the Mounting entry for a connection.

        The first candidate letter not held by another live entry is taken.
        An Error entry is replaced (retry); any other existing entry is rejected.

        Raises:
            AlreadyMountingError: The connection has a live entry.
            NoDriveLetterAvailableError: Every candidate letter is taken.
        """
        async with self._lock:
            existing = await self._registry.get(connection_id)
            old_status = existing.status if existing else MountStatus.UNMOUNTED

            if MountStatus.MOUNTING not in self._transitions.get(old_status, set()):
                raise AlreadyMountingError(connection_id, old_status.value)

            taken = await self._registry.live_drive_letters(exclude_connection_id=connection_id)
            drive_letter = next((letter for letter in candidate_letters if letter not in taken), None)
            if drive_letter is None:
                if len(candidate_letters) == 1:
                    raise NoDriveLetterAvailableError(
                        f"Drive letter {candidate_letters[0]}: is already used by another mount"
                    )
                raise NoDriveLetterAvailableError()

            drive = MountedDrive(
                connection_id=connection_id,
                connection_name=connection_name,
                protocol=protocol,
                drive_letter=drive_letter,
                status=MountStatus.MOUNTING,
            )
            await self._registry.update(drive)
            logging.info(
                f"Transition: {connection_id} | {old_status.value} -> {MountStatus.MOUNTING.value} ({drive_letter}:)",
                extra={"operation": "transition", "connection_id": connection_id},
            )

            event = MountStatusChangedEvent(
                connection_id=connection_id,
                old_status=old_status,
                new_status=MountStatus.MOUNTING,
                drive_letter=drive_letter,
            )

        await self._event_bus.publish(event)
        return drive

    async def transition(
        self,
        *,
        connection_id: str,
        new_status: MountStatus,
        expected_status: Union[MountStatus, Iterable[MountStatus], None] = None,
        expected_process: Optional[Any] = None,
        **kwargs
    ) -> Optional[MountedDrive]:
        """
        Performs a status transition atomically and publishes an event.

        Args:
            connection_id: Connection whose entry transitions (keyword-only).
            new_status: Target status. UNMOUNTED removes the entry.
            expected_status: When given, the transition only happens if the
                current status is one of these; otherwise None is returned.
            expected_process: When given, the transition only happens if the
                entry still holds this process handle.
            **kwargs: Fields to set on the entry (e.g. last_error, process).

        Returns:
            The updated entry, or None when a guard did not match or the
            connection has no entry.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        event_to_publish: Optional[MountStatusChangedEvent] = None

        async with self._lock:
            drive = await self._registry.get(connection_id)
            if drive is None:
                logging.debug(f"No registry entry for {connection_id}, ignoring transition to {new_status.value}")
                return None

            old_status = drive.status

            if expected_status is not None:
                expected = {expected_status} if isinstance(expected_status, MountStatus) else set(expected_status)
                if old_status not in expected:
                    logging.debug(
                        f"Skipping transition for {connection_id}: status is {old_status.value}, "
                        f"expected one of {sorted(s.value for s in expected)}"
                    )
                    return None

            if expected_process is not None and drive.process is not expected_process:
                logging.debug(f"Skipping transition for {connection_id}: process handle changed")
                return None

            if new_status == old_status:
                return drive

            if new_status not in self._transitions.get(old_status, set()):
                raise InvalidTransitionError(connection_id, old_status.value, new_status.value)

            logging.info(
                f"Transition: {connection_id} | {old_status.value} -> {new_status.value}",
                extra={"operation": "transition", "connection_id": connection_id},
            )
            drive.status = new_status

            # Stale errors are cleared on every transition unless a new one is given
            drive.last_error = None
            drive.error_kind = None
            for key, value in kwargs.items():
                if key in MountedDrive.model_fields:
                    setattr(drive, key, value)
            drive.updated_at = datetime.now()

            if new_status == MountStatus.MOUNTED and drive.mounted_at is None:
                drive.mounted_at = datetime.now()

            if new_status == MountStatus.UNMOUNTED:
                drive.process = None
                await self._registry.remove(connection_id)
            else:
                await self._registry.update(drive)

            event_to_publish = MountStatusChangedEvent(
                connection_id=connection_id,
                old_status=old_status,
                new_status=new_status,
                drive_letter=drive.drive_letter,
                error_message=drive.last_error,
            )

        await self._event_bus.publish(event_to_publish)
        return drive
