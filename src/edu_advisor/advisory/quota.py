"""Quota/entitlement gate consulted after successful advisory sessions."""

from __future__ import annotations

from typing import Protocol

from edu_advisor.types import QuotaDecision


class QuotaGate(Protocol):
    """External entitlement service contract."""

    async def consume(self, session_id: str, slot: str) -> QuotaDecision:
        """Record one advisory response; deny with a user-facing message."""


class UnlimitedQuotaGate:
    """Gate that allows everything; used when no entitlement service is wired."""

    def __init__(self) -> None:
        self.consumed: list[tuple[str, str]] = []

    async def consume(self, session_id: str, slot: str) -> QuotaDecision:
        self.consumed.append((session_id, slot))
        return QuotaDecision(allowed=True)


class CountingQuotaGate:
    """In-memory allowance of advisory responses.

    One counter is shared by every session that consults this gate; wire one
    gate per user for per-user allowances. Each successful session uses one
    response, and once the allowance is spent further sessions are denied
    with an upgrade message.
    """

    def __init__(self, responses: int) -> None:
        self.remaining = responses
        self.consumed: list[tuple[str, str]] = []

    async def consume(self, session_id: str, slot: str) -> QuotaDecision:
        if self.remaining <= 0:
            return QuotaDecision(
                allowed=False,
                message="No responses left. Please buy additional responses.",
            )
        self.remaining -= 1
        self.consumed.append((session_id, slot))
        return QuotaDecision(allowed=True)
