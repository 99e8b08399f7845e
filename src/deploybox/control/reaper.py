"""ExpirationReaper - reclaims instances past expires_at.

Runs as one asyncio task owned by the application lifespan. Each cycle is
awaited before the next sleep, so cycles never overlap.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime

from deploybox.app.config import get_settings
from deploybox.app.metrics.collector import REAPER_CYCLES_TOTAL, REAPER_REAPED_TOTAL
from deploybox.core.interfaces import InstanceRegistry
from deploybox.core.logging_schema import LogEvent
from deploybox.core.models import utc_now
from deploybox.services.lifecycle import LifecycleManager

logger = logging.getLogger(__name__)


class ExpirationReaper:
    """Periodic teardown of expired instances."""

    def __init__(
        self,
        lifecycle: LifecycleManager,
        registry: InstanceRegistry,
        interval: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._lifecycle = lifecycle
        self._registry = registry
        self._interval = interval if interval is not None else get_settings().ttl.reaper_interval
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run(), name="expiration-reaper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run(self) -> None:
        """Main reaper loop. The first cycle runs immediately."""
        logger.info(
            "Starting expiration reaper",
            extra={"event": LogEvent.APP_STARTED, "interval": self._interval},
        )
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Error in reaper cycle: %s", e)
            await asyncio.sleep(self._interval)

    async def tick(self) -> int:
        """Tear down every expired instance independently.

        Returns:
            Number of instances torn down.
        """
        start = time.monotonic()
        expired = await self._registry.list_expired(self._clock())

        reaped = 0
        for instance in expired:
            try:
                await self._lifecycle.teardown(instance, reason="expired")
                reaped += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "Failed to reap instance %s: %s",
                    instance.id,
                    e,
                    extra={"event": LogEvent.TEARDOWN_FAILED, "instance_id": instance.id},
                )

        REAPER_CYCLES_TOTAL.inc()
        REAPER_REAPED_TOTAL.inc(reaped)
        if expired:
            logger.info(
                "Reaped %d of %d expired instances",
                reaped,
                len(expired),
                extra={
                    "event": LogEvent.REAPER_CYCLE_COMPLETED,
                    "reaped": reaped,
                    "expired": len(expired),
                    "duration_ms": (time.monotonic() - start) * 1000,
                },
            )
        return reaped
