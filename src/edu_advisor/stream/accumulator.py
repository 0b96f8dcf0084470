"""Append-only text buffer with push notifications for live display."""

from __future__ import annotations

import logging
from collections.abc import Callable

from edu_advisor.types import AccumulatedBuffer, StreamFragment

logger = logging.getLogger(__name__)

BufferObserver = Callable[[AccumulatedBuffer], None]


class ContentAccumulator:
    """Owns the single growing text buffer of one advisory session.

    `append` is the only mutation. Fragments must arrive with strictly
    increasing sequence numbers; anything else, and anything after the final
    fragment, is discarded. Observers receive a snapshot after every accepted
    fragment and are detached by `close()`.
    """

    def __init__(self) -> None:
        self._text = ""
        self._fragment_count = 0
        self._complete = False
        self._last_sequence: int | None = None
        self._observers: list[BufferObserver] = []
        self._closed = False

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, observer: BufferObserver) -> None:
        if self._closed:
            raise RuntimeError("Accumulator is closed")
        self._observers.append(observer)

    def append(self, fragment: StreamFragment) -> bool:
        """Apply one fragment; returns False when it was rejected."""
        if self._closed:
            return False
        if self._complete:
            logger.warning("Dropping fragment %d received after completion", fragment.sequence)
            return False
        if self._last_sequence is not None and fragment.sequence <= self._last_sequence:
            logger.warning(
                "Dropping out-of-order fragment %d (last accepted %d)",
                fragment.sequence,
                self._last_sequence,
            )
            return False

        self._text += fragment.text
        self._fragment_count += 1
        self._last_sequence = fragment.sequence
        self._complete = fragment.is_final

        snapshot = self.snapshot()
        for observer in list(self._observers):
            observer(snapshot)
        return True

    def snapshot(self) -> AccumulatedBuffer:
        return AccumulatedBuffer(
            text=self._text,
            fragment_count=self._fragment_count,
            complete=self._complete,
        )

    def final_text(self) -> str:
        if not self._complete:
            raise RuntimeError("Buffer is still streaming; final text is not available")
        return self._text

    def close(self) -> None:
        """Detach observers; later appends are ignored."""
        self._closed = True
        self._observers.clear()
