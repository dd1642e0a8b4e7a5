from __future__ import annotations

import asyncio

import pytest
from bleak.exc import BleakError

from lissabon.transports.radio import Radio


class FakeScanner:
    def __init__(self) -> None:
        self.events: list[str] = []

    async def pause(self) -> None:
        self.events.append("pause")

    async def resume(self) -> None:
        self.events.append("resume")


def test_scanner_paused_around_connect() -> None:
    radio = Radio()
    scanner = FakeScanner()
    radio.attach_scanner(scanner)

    async def scenario() -> None:
        async with radio.connection_slot():
            scanner.events.append("connect")

    asyncio.run(scenario())

    assert scanner.events == ["pause", "connect", "resume"]


def test_scanner_left_stopped_when_configured() -> None:
    radio = Radio(resume_scan_after_connect=False)
    scanner = FakeScanner()
    radio.attach_scanner(scanner)

    async def scenario() -> None:
        async with radio.connection_slot():
            pass

    asyncio.run(scenario())

    assert scanner.events == ["pause"]


def test_overlapping_slots_pause_once() -> None:
    radio = Radio(max_concurrent_connects=2)
    scanner = FakeScanner()
    radio.attach_scanner(scanner)
    inside = 0
    peak = 0

    async def connect() -> None:
        nonlocal inside, peak
        async with radio.connection_slot():
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0.01)
            inside -= 1

    async def scenario() -> None:
        await asyncio.gather(connect(), connect(), connect())

    asyncio.run(scenario())

    assert peak == 2
    assert scanner.events.count("pause") <= 2
    assert scanner.events[-1] == "resume"


def test_slot_released_when_connect_fails() -> None:
    radio = Radio()

    async def scenario() -> None:
        with pytest.raises(RuntimeError):
            async with radio.connection_slot():
                raise RuntimeError("connect failed")
        async with radio.connection_slot():
            pass

    asyncio.run(asyncio.wait_for(scenario(), timeout=1.0))


def test_invalid_slot_count_rejected() -> None:
    with pytest.raises(ValueError):
        Radio(max_concurrent_connects=0)


class FailingScanner(FakeScanner):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    async def pause(self) -> None:
        self.events.append("pause")
        if self.failures:
            self.failures -= 1
            raise BleakError("org.bluez.Error.InProgress")


def test_failed_pause_does_not_leave_scanner_paused() -> None:
    radio = Radio()
    scanner = FailingScanner(failures=1)
    radio.attach_scanner(scanner)

    async def scenario() -> None:
        with pytest.raises(BleakError):
            async with radio.connection_slot():
                scanner.events.append("connect")
        async with radio.connection_slot():
            scanner.events.append("connect")

    asyncio.run(asyncio.wait_for(scenario(), timeout=1.0))

    assert scanner.events == ["pause", "pause", "connect", "resume"]
