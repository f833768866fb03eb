# cancellation.py
# Description: Cooperative cancellation token for sync runs
#
# Imports
import threading
from typing import Optional
#
# Third-Party Imports
from loguru import logger
#
########################################################################################################################
#
# Classes:

class CancellationToken:
    """
    Cancellation flag owned by a single sync run.

    Set from anywhere (another task, a signal handler, another thread);
    the engine polls it before each page fetch.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Sync cancelled by user") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.info(f"Cancellation requested: {reason}")

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

#
# End of cancellation.py
########################################################################################################################
