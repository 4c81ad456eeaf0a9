import asyncio
import logging
from typing import Any, Dict, Optional

from ...core.exceptions import UNEXPECTED_TERMINATION_MESSAGE
from ...core.mount_state_machine import MountStateMachine
from ...models import MountErrorKind, MountStatus


class ProcessSupervisor:
    """
    One background watch per mounted connection.

    The watch forwards rclone's stderr to the log and waits for the process
    to exit. An exit while the entry is still Mounted with the same process
    is unexpected; any other state means the exit was requested.
    """

    def __init__(self, state_machine: MountStateMachine):
        self._state_machine = state_machine
        self._tasks: Dict[str, asyncio.Task] = {}

    def watch(self, connection_id: str, process: Any, drive_letter: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(
            self._watch(connection_id, process, drive_letter),
            name=f"mount-supervisor-{connection_id}",
        )
        self._tasks[connection_id] = task
        task.add_done_callback(lambda t, cid=connection_id: self._forget(cid, t))
        return task

    def is_watching(self, connection_id: str) -> bool:
        task = self._tasks.get(connection_id)
        return task is not None and not task.done()

    async def stop_all(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logging.info(f"Stopped {len(tasks)} mount supervisor(s)")

    def _forget(self, connection_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(connection_id) is task:
            del self._tasks[connection_id]

    async def _watch(self, connection_id: str, process: Any, drive_letter: Optional[str]) -> None:
        label = f"{drive_letter}:" if drive_letter else connection_id
        try:
            last_line = await self._forward_stderr(process, label)
            returncode = await process.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.error(f"Process monitoring failed for {label}: {e}")
            return

        drive = await self._state_machine.transition(
            connection_id=connection_id,
            new_status=MountStatus.ERROR,
            expected_status=MountStatus.MOUNTED,
            expected_process=process,
            last_error=UNEXPECTED_TERMINATION_MESSAGE,
            error_kind=MountErrorKind.UNEXPECTED_TERMINATION,
        )
        if drive is not None:
            logging.warning(
                f"Mount process for {label} exited unexpectedly with code {returncode}"
                + (f": {last_line}" if last_line else ""),
                extra={"operation": "unexpected_termination", "connection_id": connection_id},
            )
        else:
            logging.debug(f"Mount process for {label} exited with code {returncode} after unmount")

    async def _forward_stderr(self, process: Any, label: str) -> Optional[str]:
        stream = getattr(process, "stderr", None)
        if stream is None:
            return None

        last_line = None
        async for raw_line in stream:
            line = raw_line.decode(errors="replace").rstrip()
            if line:
                last_line = line
                logging.debug(f"rclone[{label}] {line}")
        return last_line
