"""Abstract base class for AI research services with web search.

The research service is treated as a black box: a prompt goes in, and free
text, token usage and citation URLs come out.  Everything about parsing
that text lives in :mod:`election_updater.services.extraction`, so
providers stay thin adapters over their SDKs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from election_updater.models.update import ResearchResponse


class IResearchProvider(ABC):
    """Contract for research-service adapters.

    Implementations must translate every transport or HTTP failure into a
    :class:`~election_updater.utils.errors.ResearchServiceError` whose
    ``status`` tells the caller whether the failure is retryable
    (rate limit, overload), fatal for the run (auth) or fatal only for the
    current call (everything else).  Implementations must not retry on
    their own; retrying is the caller's :class:`RetryPolicy`'s job.
    """

    @abstractmethod
    async def research(
        self,
        prompt: str,
        system_prompt: str = "",
        max_search_uses: int | None = None,
        max_tokens: int = 4096,
    ) -> ResearchResponse:
        """Run one research call.

        Parameters
        ----------
        prompt:
            The user prompt.
        system_prompt:
            Optional system instructions.
        max_search_uses:
            Upper bound on web searches the service may run for this call.
            ``None`` or ``0`` disables the search tool entirely (used for
            the repair and tone-rewrite calls).
        max_tokens:
            Output token budget.

        Returns
        -------
        ResearchResponse
            Text segments, citations and token usage.  A response with no
            text segments is returned as-is; callers decide what that means.

        Raises
        ------
        ResearchServiceError
            On any failed call.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Short identifier used in logs and usage records, e.g. ``"anthropic"``."""

    @abstractmethod
    def get_model_name(self) -> str:
        """The model identifier sent with each call."""
