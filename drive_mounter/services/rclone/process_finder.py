"""Locate and stop rclone mount processes by drive letter."""

import asyncio
import logging
from typing import List, Optional, Sequence

import psutil


def is_mount_command_for_letter(cmdline: Sequence[str], drive_letter: str) -> bool:
    """
    True when cmdline is an 'rclone mount' whose mount point is exactly the letter.

    Tokens are compared whole, so 'D:' never matches 'D:\\sub' or 'remote:D:'.
    """
    if not cmdline or "mount" not in cmdline:
        return False
    letter = drive_letter.rstrip(":").upper()
    targets = {f"{letter}:", f"{letter}:\\", f"{letter}:/"}
    return any(token.upper() in targets for token in cmdline[1:])


def find_mount_processes(drive_letter: str) -> List[psutil.Process]:
    matches = []
    for process in psutil.process_iter(["pid", "name", "cmdline"]):
        name = (process.info.get("name") or "").lower()
        if not name.startswith("rclone"):
            continue
        cmdline = process.info.get("cmdline") or []
        if is_mount_command_for_letter(cmdline, drive_letter):
            matches.append(process)
    return matches


def _kill_and_wait(process: psutil.Process, timeout: float) -> bool:
    try:
        process.kill()
        process.wait(timeout=timeout)
        return True
    except psutil.NoSuchProcess:
        # Already gone
        return True
    except psutil.TimeoutExpired:
        logging.warning(f"rclone process {process.pid} did not exit within {timeout}s after kill")
        return True
    except psutil.AccessDenied as e:
        logging.error(f"Not allowed to stop rclone process {process.pid}: {e}")
        return False


async def kill_mount_process(drive_letter: str, timeout: float = 3.0) -> bool:
    """Kill the rclone mount serving drive_letter. False if none was found or it could not be stopped."""
    processes: Optional[List[psutil.Process]] = await asyncio.to_thread(find_mount_processes, drive_letter)
    if not processes:
        logging.info(f"No rclone mount process found for {drive_letter}:")
        return False

    stopped = False
    for process in processes:
        logging.info(f"Stopping rclone process {process.pid} serving {drive_letter}:")
        stopped = await asyncio.to_thread(_kill_and_wait, process, timeout) or stopped
    return stopped
