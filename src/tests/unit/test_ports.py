"""Tests for PortAllocator."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from deploybox.core.errors import PoolExhaustedError
from deploybox.services.ports import PortAllocator


class TestAllocate:
    def test_returns_lowest_free_port(self, ports: PortAllocator) -> None:
        assert ports.allocate("a") == 3001
        assert ports.allocate("b") == 3002

    def test_reuses_released_port(self, ports: PortAllocator) -> None:
        first = ports.allocate("a")
        ports.allocate("b")
        ports.release(first)

        assert ports.allocate("c") == first

    def test_exhausted_pool_raises(self, ports: PortAllocator) -> None:
        for i in range(ports.capacity):
            ports.allocate(f"h{i}")

        with pytest.raises(PoolExhaustedError):
            ports.allocate("late")

        assert ports.available == 0

    def test_single_port_range(self) -> None:
        allocator = PortAllocator(4000, 4000)
        assert allocator.allocate("a") == 4000
        with pytest.raises(PoolExhaustedError):
            allocator.allocate("b")

    def test_invalid_range_rejected(self) -> None:
        with pytest.raises(ValueError):
            PortAllocator(4000, 3000)

    def test_defaults_from_settings(self) -> None:
        allocator = PortAllocator()
        assert allocator.range == (3001, 4000)
        assert allocator.capacity == 1000


class TestRelease:
    def test_release_is_idempotent(self, ports: PortAllocator) -> None:
        port = ports.allocate("a")
        ports.release(port)
        ports.release(port)

        assert ports.available == ports.capacity

    def test_release_unknown_port_is_noop(self, ports: PortAllocator) -> None:
        ports.release(9999)
        assert ports.available == ports.capacity

    def test_release_with_other_holder_keeps_lease(self, ports: PortAllocator) -> None:
        port = ports.allocate("owner-a")

        ports.release(port, "owner-b")

        assert ports.is_leased(port)
        assert ports.leased() == {port: "owner-a"}


class TestReserve:
    def test_reserve_marks_port_leased(self, ports: PortAllocator) -> None:
        assert ports.reserve(3003, "inst-1") is True
        assert ports.allocate("new") == 3001
        assert ports.allocate("new2") == 3002
        assert ports.allocate("new3") == 3004

    def test_reserve_outside_range_ignored(self, ports: PortAllocator) -> None:
        assert ports.reserve(80, "inst-1") is False
        assert ports.available == ports.capacity

    def test_reserve_taken_port_by_other_holder(self, ports: PortAllocator) -> None:
        ports.reserve(3001, "inst-1")
        assert ports.reserve(3001, "inst-2") is False
        assert ports.reserve(3001, "inst-1") is True


class TestConcurrency:
    def test_no_double_lease_across_threads(self) -> None:
        """Concurrent allocations never hand out the same port."""
        allocator = PortAllocator(3001, 3200)
        barrier = threading.Barrier(8)

        def worker(n: int) -> list[int]:
            barrier.wait()
            return [allocator.allocate(f"w{n}-{i}") for i in range(25)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(worker, range(8)))

        leased = [port for ports in results for port in ports]
        assert len(leased) == 200
        assert len(set(leased)) == 200
        assert all(3001 <= port <= 3200 for port in leased)
        assert allocator.available == 0

    def test_allocate_release_churn_keeps_invariants(self) -> None:
        allocator = PortAllocator(3001, 3010)

        def worker(n: int) -> None:
            for i in range(200):
                try:
                    port = allocator.allocate(f"w{n}-{i}")
                except PoolExhaustedError:
                    continue
                allocator.release(port)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert allocator.leased() == {}
        assert allocator.available == 10
