from __future__ import annotations

import asyncio


class CancellationToken:
    """
    Per-request cancellation handle.

    The caller keeps the token and calls ``cancel()``; the orchestrator
    watches it while the provider call is in flight.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()
