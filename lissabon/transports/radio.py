"""Coordination of the single shared BLE adapter."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class Pausable(Protocol):
    async def pause(self) -> None:
        """Stop scanning temporarily."""

    async def resume(self) -> None:
        """Restart scanning if it was active before ``pause``."""


class Radio:
    """Bounds concurrent connects and keeps the scanner quiet while connecting."""

    def __init__(self, *, max_concurrent_connects: int = 1, resume_scan_after_connect: bool = True) -> None:
        if max_concurrent_connects < 1:
            raise ValueError("max_concurrent_connects must be at least 1")
        self._slots = asyncio.Semaphore(max_concurrent_connects)
        self._resume = resume_scan_after_connect
        self._scanner: Pausable | None = None
        self._paused = 0

    def attach_scanner(self, scanner: Pausable | None) -> None:
        self._scanner = scanner

    @asynccontextmanager
    async def connection_slot(self) -> AsyncIterator[None]:
        async with self._slots:
            await self._pause_scanning()
            try:
                yield
            finally:
                await self._resume_scanning()

    async def _pause_scanning(self) -> None:
        self._paused += 1
        if self._scanner is None or self._paused > 1:
            return
        LOGGER.debug("Pausing scan before connect")
        try:
            await self._scanner.pause()
        except BaseException:
            self._paused -= 1
            raise

    async def _resume_scanning(self) -> None:
        self._paused -= 1
        if self._scanner is None or self._paused > 0 or not self._resume:
            return
        LOGGER.debug("Resuming scan after connect")
        try:
            await self._scanner.resume()
        except Exception as exc:
            LOGGER.warning("Could not resume scanning: %s", exc)
