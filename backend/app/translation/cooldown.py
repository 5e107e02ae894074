from __future__ import annotations

import asyncio
import logging


class CooldownGate:
    """Fixed-window gate armed after every successful provider dispatch.

    The gate is open when ``remaining_seconds`` is zero. ``arm`` resets the
    counter to the given window (arming again never stacks) and the ticking
    task started by ``start`` decrements it once per tick down to zero.
    """

    def __init__(self, logger: logging.Logger, tick_seconds: float = 1.0) -> None:
        self._logger = logger
        self._tick_seconds = max(0.01, tick_seconds)
        self._remaining_seconds = 0
        self._window_seconds = 0
        self._task: asyncio.Task[None] | None = None
        self._stopping = False

    @property
    def remaining_seconds(self) -> int:
        return self._remaining_seconds

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_open(self) -> bool:
        return self._remaining_seconds == 0

    def arm(self, window_seconds: int) -> None:
        if window_seconds < 0:
            raise ValueError("cooldown window must be >= 0")
        self._window_seconds = window_seconds
        self._remaining_seconds = window_seconds
        if self._task is not None and not self._task.done():
            # first decrement must land a full tick after arming
            self._task.cancel()
            self._task = asyncio.create_task(self._run(), name="cooldown-gate-ticker")

    def tick(self) -> None:
        if self._remaining_seconds > 0:
            self._remaining_seconds -= 1

    def reset(self) -> None:
        self._remaining_seconds = 0

    async def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.create_task(self._run(), name="cooldown-gate-ticker")

    async def stop(self) -> None:
        self._stopping = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            finally:
                self._task = None

    def snapshot(self) -> dict[str, object]:
        return {
            "open": self.is_open(),
            "remaining_seconds": self._remaining_seconds,
            "window_seconds": self._window_seconds,
            "ticker_running": self.running,
        }

    async def _run(self) -> None:
        while not self._stopping:
            await asyncio.sleep(self._tick_seconds)
            was_cooling = not self.is_open()
            self.tick()
            if was_cooling and self.is_open():
                self._logger.debug("cooldown_gate_opened", extra={"event": "cooldown_opened"})
