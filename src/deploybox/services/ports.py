"""Host port pool for instance port bindings.

Thread-safe: allocate and release may be called from any thread or task.
The lock is held only for check-and-mark / unmark, never across I/O.
"""

import logging
import threading

from deploybox.app.config import get_settings
from deploybox.core.errors import PoolExhaustedError
from deploybox.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)


class PortAllocator:
    """Leases unique host ports from an inclusive range.

    Allocation returns the lowest free port in the range.
    """

    def __init__(self, range_start: int | None = None, range_end: int | None = None) -> None:
        ports = get_settings().ports
        self._start = ports.range_start if range_start is None else range_start
        self._end = ports.range_end if range_end is None else range_end
        if self._start > self._end:
            raise ValueError(f"Invalid port range {self._start}-{self._end}")
        self._leases: dict[int, str] = {}
        self._lock = threading.Lock()

    @property
    def range(self) -> tuple[int, int]:
        return self._start, self._end

    @property
    def capacity(self) -> int:
        return self._end - self._start + 1

    @property
    def available(self) -> int:
        with self._lock:
            return self.capacity - len(self._leases)

    def allocate(self, holder: str) -> int:
        """Lease the lowest free port to holder.

        Raises:
            PoolExhaustedError: If every port in the range is leased
        """
        with self._lock:
            for port in range(self._start, self._end + 1):
                if port not in self._leases:
                    self._leases[port] = holder
                    break
            else:
                port = None
            leased = len(self._leases)

        if port is None:
            logger.warning(
                "Port pool exhausted",
                extra={"event": LogEvent.PORT_LEASED, "capacity": self.capacity},
            )
            raise PoolExhaustedError()

        logger.debug(
            "Leased port %d",
            port,
            extra={"event": LogEvent.PORT_LEASED, "port": port, "holder": holder, "leased": leased},
        )
        return port

    def reserve(self, port: int, holder: str) -> bool:
        """Mark an already-bound port as leased.

        Ports outside the range are ignored.

        Returns:
            True if the port is now held by holder
        """
        if not self._start <= port <= self._end:
            return False
        with self._lock:
            current = self._leases.setdefault(port, holder)
        return current == holder

    def release(self, port: int, holder: str | None = None) -> None:
        """Return a port to the pool. Releasing a free port is a no-op.

        With holder given, a port leased to someone else is left alone.
        """
        with self._lock:
            current = self._leases.get(port)
            if current is None or (holder is not None and current != holder):
                return
            del self._leases[port]
        logger.debug(
            "Released port %d",
            port,
            extra={"event": LogEvent.PORT_RELEASED, "port": port, "holder": current},
        )

    def is_leased(self, port: int) -> bool:
        with self._lock:
            return port in self._leases

    def leased(self) -> dict[int, str]:
        """Snapshot of current leases (port -> holder)."""
        with self._lock:
            return dict(self._leases)
