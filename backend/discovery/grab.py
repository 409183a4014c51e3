"""Grab state: which file, if any, this device currently holds."""

import logging

from discovery.locks import ReadWriteLock

logger = logging.getLogger(__name__)


class GrabState:
    """Either idle or holding exactly one file.

    Grabbing while already holding replaces the held file; there is no
    queue and no pending state.
    """

    def __init__(self) -> None:
        self._holding = False
        self._held_file = ""
        self._lock = ReadWriteLock()

    def set_grab(self, filename: str) -> None:
        if not filename:
            raise ValueError("Cannot grab an empty filename")
        with self._lock.write():
            self._holding = True
            self._held_file = filename
        logger.info(f"Now holding: {filename}")

    def clear_grab(self) -> None:
        with self._lock.write():
            self._holding = False
            self._held_file = ""
        logger.info("Released file")

    def is_holding(self) -> bool:
        with self._lock.read():
            return self._holding

    @property
    def held_file(self) -> str:
        with self._lock.read():
            return self._held_file

    def snapshot(self) -> tuple[bool, str]:
        """Return ``(is_holding, held_file)`` read atomically."""
        with self._lock.read():
            return self._holding, self._held_file
