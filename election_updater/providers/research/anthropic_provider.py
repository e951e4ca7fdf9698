"""Anthropic research provider adapter.

Wraps the ``anthropic`` async client to implement :class:`IResearchProvider`
using Claude's server-side ``web_search`` tool.

Key behaviours:
    - The SDK's own retry loop is disabled (``max_retries=0``); retries are
      owned by :class:`~election_updater.utils.retry.RetryPolicy` so the
      schedule is explicit and testable.
    - Responses with web search interleave text blocks with
      ``server_tool_use`` and ``web_search_tool_result`` blocks.  Text blocks
      are kept in order; result blocks and text-block citations are
      harvested as sources.
    - SDK exceptions become :class:`ResearchServiceError` with a
      :class:`ServiceStatus` derived from the HTTP status code.
"""

from __future__ import annotations

from typing import Any

import anthropic
import httpx
import structlog

from election_updater.config.settings import Settings
from election_updater.interfaces.research_provider import IResearchProvider
from election_updater.models.ballot import Source
from election_updater.models.update import ResearchResponse, TokenUsage
from election_updater.utils.errors import ResearchServiceError, ServiceStatus, classify_status

logger = structlog.get_logger(logger_name=__name__)

_WEB_SEARCH_TOOL_TYPE = "web_search_20250305"


def _harvest_sources(content: list[Any]) -> list[Source]:
    """Collect cited URLs from search-result blocks and text citations, first wins."""
    seen: set[str] = set()
    sources: list[Source] = []

    def _add(url: str | None, title: str | None) -> None:
        if not url or url in seen:
            return
        seen.add(url)
        sources.append(Source(url=url, title=title or url))

    for block in content:
        block_type = getattr(block, "type", None)
        if block_type == "web_search_tool_result":
            results = getattr(block, "content", None)
            # On tool failure ``content`` is an error object, not a list.
            if isinstance(results, list):
                for item in results:
                    if getattr(item, "type", None) == "web_search_result":
                        _add(getattr(item, "url", None), getattr(item, "title", None))
        elif block_type == "text":
            for citation in getattr(block, "citations", None) or []:
                _add(getattr(citation, "url", None), getattr(citation, "title", None))
    return sources


class AnthropicResearchProvider(IResearchProvider):
    """Research provider backed by the Anthropic Messages API with web search."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.anthropic_api_key
        self._model = settings.research_model
        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key,
            max_retries=0,
            timeout=httpx.Timeout(settings.research_timeout_seconds, connect=10.0),
        )

    # ------------------------------------------------------------------
    # IResearchProvider implementation
    # ------------------------------------------------------------------

    async def research(
        self,
        prompt: str,
        system_prompt: str = "",
        max_search_uses: int | None = None,
        max_tokens: int = 4096,
    ) -> ResearchResponse:
        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            request["system"] = system_prompt
        if max_search_uses:
            request["tools"] = [
                {"type": _WEB_SEARCH_TOOL_TYPE, "name": "web_search", "max_uses": max_search_uses}
            ]

        try:
            response = await self._client.messages.create(**request)
        except anthropic.APIStatusError as exc:
            status = classify_status(exc.status_code)
            raise ResearchServiceError(
                message=f"Research service returned {exc.status_code}",
                provider_name=self.get_provider_name(),
                status=status,
                status_code=exc.status_code,
            ) from exc
        except anthropic.APIConnectionError as exc:
            raise ResearchServiceError(
                message=f"Research service unreachable: {exc}",
                provider_name=self.get_provider_name(),
                status=ServiceStatus.NETWORK,
            ) from exc
        except anthropic.APIError as exc:
            raise ResearchServiceError(
                message=f"Research service error: {exc}",
                provider_name=self.get_provider_name(),
                status=ServiceStatus.OTHER,
            ) from exc

        content = list(response.content or [])
        text_blocks = [block.text for block in content if getattr(block, "type", None) == "text"]
        usage = TokenUsage(
            input_tokens=getattr(response.usage, "input_tokens", 0) or 0,
            output_tokens=getattr(response.usage, "output_tokens", 0) or 0,
        )
        citations = _harvest_sources(content)

        logger.info(
            "anthropic_research_call",
            model=self._model,
            search_budget=max_search_uses or 0,
            text_blocks=len(text_blocks),
            citations=len(citations),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
        return ResearchResponse(
            text_blocks=text_blocks,
            citations=citations,
            usage=usage,
            model=self._model,
        )

    def is_available(self) -> bool:
        """Return ``True`` if an Anthropic API key is configured."""
        return bool(self._api_key)

    def get_provider_name(self) -> str:
        return "anthropic"

    def get_model_name(self) -> str:
        return self._model
