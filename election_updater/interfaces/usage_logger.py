"""Abstract base class for token-usage accounting."""

from __future__ import annotations

from abc import ABC, abstractmethod

from election_updater.models.update import TokenUsage


class IUsageLogger(ABC):
    """Contract for recording how many tokens each component spends.

    Callers treat usage logging as fire-and-forget: a failing logger must
    never fail the research call it is accounting for.
    """

    @abstractmethod
    async def log_usage(self, component: str, usage: TokenUsage, model: str) -> None:
        """Add *usage* to today's totals for *component* and *model*.

        Parameters
        ----------
        component:
            Which part of the pipeline made the call, e.g. ``"updater"``,
            ``"balance-correction"``, ``"tone-refresh"``.
        usage:
            Input/output token counts for the call.
        model:
            Model identifier the call was billed against.
        """
