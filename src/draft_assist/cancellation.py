from __future__ import annotations

import asyncio
import threading
import time

from .errors import AnalysisAbortedError


class CancelToken:
    """Cooperative cancellation flag shared by one analysis run.

    Setting the token never interrupts running code; suspension points and the
    per-chunk loop check it and stop on their own. Blocking model calls running
    on worker threads observe the same flag through :attr:`thread_event`.
    """

    def __init__(self, run_id: str = "adhoc") -> None:
        self.run_id = run_id
        self._event = asyncio.Event()
        self._thread_event = threading.Event()
        self._reason: str | None = None
        self._deadline: float | None = None

    @property
    def cancelled(self) -> bool:
        return self._thread_event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def thread_event(self) -> threading.Event:
        return self._thread_event

    @property
    def deadline(self) -> float | None:
        """Absolute ``time.monotonic()`` deadline of the run, if it has one."""
        return self._deadline

    def set_deadline(self, seconds: float) -> None:
        self._deadline = time.monotonic() + seconds

    def cancel(self, reason: str = "cancelled") -> None:
        if self._reason is None:
            self._reason = reason
        self._thread_event.set()
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise AnalysisAbortedError(self.run_id, self._reason or "cancelled")
