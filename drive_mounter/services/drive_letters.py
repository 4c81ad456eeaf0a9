"""Drive-letter allocation for new mounts."""

import logging
import re
import string
from typing import Callable, Iterable, List, Optional, Set

import psutil

_DRIVE_ROOT = re.compile(r"^([A-Za-z]):[\\/]?$")


def compute_available_letters(used: Iterable[str]) -> List[str]:
    """
    Complement of the used letters against A-Z, Z first.

    Letters near the end of the alphabet are preferred for network drives,
    leaving A-C free for local disks.
    """
    used_upper = {letter.strip().rstrip(":\\/").upper() for letter in used if letter}
    return [letter for letter in reversed(string.ascii_uppercase) if letter not in used_upper]


def system_drive_letters() -> Set[str]:
    """Drive letters currently assigned by the operating system."""
    letters: Set[str] = set()
    for partition in psutil.disk_partitions(all=True):
        for candidate in (partition.mountpoint, partition.device):
            match = _DRIVE_ROOT.match(candidate or "")
            if match:
                letters.add(match.group(1).upper())
    return letters


class DriveLetterAllocator:
    """
    Point-in-time view of unused drive letters.

    Stateless between calls: every call re-reads the system, so the caller
    must re-validate a letter against its own in-flight mounts when using it.
    """

    def __init__(self, used_letters_provider: Optional[Callable[[], Iterable[str]]] = None):
        self._used_letters_provider = used_letters_provider or system_drive_letters

    def available_letters(self) -> List[str]:
        try:
            used = set(self._used_letters_provider())
        except Exception as e:
            logging.error(f"Error enumerating system drive letters: {e}")
            raise
        available = compute_available_letters(used)
        logging.debug(f"Drive letters in use: {sorted(used)}, available: {available}")
        return available
