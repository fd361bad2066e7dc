"""Session context shared by the input reader and the request worker."""

import threading
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .config import Config


class SessionContext:
    """Interrupt flags plus configuration, built once at startup.

    Each flag is its own ``threading.Event``, so every read and write is
    atomic on its own; nothing ever updates two flags as one transaction.

    - ``running``: a request is actively streaming.
    - ``abort_requested``: the current request should stop at its next frame.
    - ``had_first_interrupt``: one Ctrl-C was already seen while idle.
    """

    def __init__(self, config: Optional["Config"] = None):
        self.config = config
        self.running = threading.Event()
        self.abort_requested = threading.Event()
        self.had_first_interrupt = threading.Event()

    @property
    def is_running(self) -> bool:
        return self.running.is_set()

    @property
    def is_aborting(self) -> bool:
        return self.running.is_set() and self.abort_requested.is_set()

    def request_abort(self) -> None:
        self.abort_requested.set()

    def begin_request(self) -> None:
        # A stale abort aimed at the previous request must not cancel this one.
        self.abort_requested.clear()
        self.running.set()

    def end_request(self) -> None:
        self.running.clear()
        self.abort_requested.clear()

    def describe(self) -> str:
        """Name the current state for logging."""
        if self.running.is_set():
            return "aborting" if self.abort_requested.is_set() else "streaming"
        if self.had_first_interrupt.is_set():
            return "interrupted-idle"
        return "idle"
