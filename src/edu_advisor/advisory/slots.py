"""Per-feature slots: at most one active advisory session each."""

from __future__ import annotations

import asyncio
import logging

from edu_advisor.advisory.session import AdvisorySession
from edu_advisor.types import AdvisoryOutcome

logger = logging.getLogger(__name__)

SLOTS = ("analysis", "recommendations", "cost_estimate", "flashcards")


class AdvisorySlots:
    """Runs advisory sessions as tasks, one per feature slot.

    Starting a session in a busy slot aborts the running one first, so a
    slot never shows output from two requests. Sessions in different slots
    run concurrently and share nothing mutable.
    """

    def __init__(self, slots: tuple[str, ...] = SLOTS) -> None:
        self.slots = slots
        self._sessions: dict[str, AdvisorySession] = {}
        self._tasks: dict[str, asyncio.Task[AdvisoryOutcome]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _check(self, slot: str) -> None:
        if slot not in self.slots:
            raise KeyError(f"Unknown advisory slot: {slot}")

    def _lock(self, slot: str) -> asyncio.Lock:
        # At most one start/cancel per slot at a time.
        lock = self._locks.get(slot)
        if lock is None:
            lock = self._locks[slot] = asyncio.Lock()
        return lock

    async def start(self, session: AdvisorySession) -> AdvisorySession:
        self._check(session.slot)
        async with self._lock(session.slot):
            await self._cancel_running(session.slot)
            self._sessions[session.slot] = session
            self._tasks[session.slot] = asyncio.create_task(
                session.run(), name=f"advisory-{session.slot}-{session.id}"
            )
        logger.info("Started advisory session %s in slot %s", session.id, session.slot)
        return session

    def active(self, slot: str) -> AdvisorySession | None:
        self._check(slot)
        session = self._sessions.get(slot)
        if session is None or session.state.terminal:
            return None
        return session

    def session(self, slot: str) -> AdvisorySession | None:
        """Most recent session of a slot, finished or not."""
        self._check(slot)
        return self._sessions.get(slot)

    def task(self, slot: str) -> asyncio.Task[AdvisoryOutcome] | None:
        self._check(slot)
        return self._tasks.get(slot)

    async def wait(self, slot: str) -> AdvisoryOutcome | None:
        self._check(slot)
        task = self._tasks.get(slot)
        if task is None:
            return None
        return await task

    async def cancel(self, slot: str) -> bool:
        """Cancel the running session of `slot`; returns False if idle."""
        self._check(slot)
        async with self._lock(slot):
            return await self._cancel_running(slot)

    async def _cancel_running(self, slot: str) -> bool:
        session = self._sessions.get(slot)
        if session is None or session.state.terminal:
            return False
        await session.cancel()
        logger.info("Cancelled advisory session %s in slot %s", session.id, slot)
        return True

    async def cancel_all(self) -> None:
        for slot in self.slots:
            await self.cancel(slot)
