"""Fixed-interval driver for long-running service loops.

Each loop in the service exposes a single ``run_cycle()`` coroutine; this
module owns the "repeat forever, never die on a transient failure" part so
the cycle logic itself stays testable without real timers.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from utils.logger import get_logger


class CycleRunner:
    """Invoke ``cycle`` repeatedly with a sleep of ``interval`` seconds.

    With ``idle_only=True`` the sleep only happens after a cycle that
    reported no work (returned a falsy value); busy cycles are followed
    immediately by the next one.  Exceptions other than cancellation are
    logged and the loop carries on after the interval.
    """

    def __init__(
        self,
        name: str,
        cycle: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        idle_only: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.name = name
        self._cycle = cycle
        self.interval = float(interval)
        self.idle_only = idle_only
        self._sleep = sleep
        self._running = False
        self.cycles = 0
        self.failures = 0
        self.logger = get_logger(name)

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Finish the current cycle and leave ``run_forever``."""
        self._running = False

    async def run_once(self) -> Any:
        """Run a single guarded cycle; returns its result, or None on failure."""
        self.cycles += 1
        try:
            return await self._cycle()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failures += 1
            self.logger.exception(
                "Cycle failed",
                cycle=self.cycles,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        self._running = True
        self.logger.info("Loop started", interval_seconds=self.interval, idle_only=self.idle_only)
        try:
            while self._running:
                result = await self.run_once()
                if max_cycles is not None and self.cycles >= max_cycles:
                    break
                if not self._running:
                    break
                if self.idle_only and result:
                    # Yield so sibling loops get scheduled between busy cycles.
                    await asyncio.sleep(0)
                    continue
                await self._sleep(self.interval)
        except asyncio.CancelledError:
            self.logger.info("Loop cancelled", cycles=self.cycles)
            raise
        finally:
            self._running = False
