"""Research client: prompts, retries, extraction and the one-shot repair call.

Architecture: LLM-as-Parser with a single repair pass
------------------------------------------------------
The research prompt asks for a strict JSON object in which every candidate
field is either an update or ``null``.  Responses with web search are long
and chatty, so the text goes through the extraction chain in
:mod:`election_updater.services.extraction`.  If nothing parses, exactly one
follow-up call is made *without* the search tool and with a small token
budget, asking the service to turn its own output back into the JSON
object.  The same chain is applied to that answer; if it also fails the
race is recorded as ``json_parse_failure``.

Every service call goes through the :class:`RetryPolicy` and reports its
token usage to the usage logger.  Usage logging is fire-and-forget: a
broken logger is logged and ignored.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from election_updater.config.election import ElectionConfig
from election_updater.interfaces.research_provider import IResearchProvider
from election_updater.interfaces.usage_logger import IUsageLogger
from election_updater.models.ballot import Race, Source
from election_updater.models.update import RaceUpdate, ResearchResponse
from election_updater.services.extraction import extract_structured
from election_updater.utils.errors import EmptyResponseError, ExtractionError
from election_updater.utils.logging import get_logger
from election_updater.utils.retry import RetryPolicy

Sleeper = Callable[[float], Awaitable[None]]

_REPAIR_INPUT_LIMIT = 12_000

_RESEARCH_SYSTEM_PROMPT = """\
You are a nonpartisan election data researcher. Use web_search to find \
verified, factual updates about candidates. Return ONLY valid JSON. Never \
fabricate information: if you cannot verify something, use null.

SOURCE PRIORITY: When evaluating web_search results, prefer sources in this order:
1. State Secretary of State filings
2. County election offices
3. Official campaign websites
4. Nonpartisan references (ballotpedia.org, votesmart.org)
5. Established regional news outlets
6. National wire services (apnews.com, reuters.com)
7. AVOID: blogs, social media, opinion sites, unverified sources

CONFLICT RESOLUTION: If sources disagree, trust official filings over \
campaign claims, and campaign claims over news reporting."""

_REPAIR_SYSTEM_PROMPT = (
    "You convert text into a single valid JSON object. Output ONLY the JSON "
    "object, with no markdown fences and no commentary."
)

_RACE_PROMPT_TEMPLATE = """\
Research the latest updates for this {party} race in the {election_name}:

RACE: {label}

CURRENT DATA:
  {candidates}

Search for updates since {since}. Look for:
1. New endorsements
2. New polling data
3. Updated fundraising numbers
4. Significant news or position changes

Return a JSON object with this exact structure (use null for any field with no update):
{{
  "candidates": [
    {{
      "name": "exact candidate name",
      "polling": "updated polling string or null",
      "fundraising": "updated fundraising string or null",
      "endorsements": [{{"name": "Endorser Name", "type": "labor union|editorial board|advocacy group|business group|elected official|political organization|professional association|community organization|public figure"}}] or null,
      "keyPositions": ["full updated list"] or null,
      "pros": ["full updated list"] or null,
      "cons": ["full updated list"] or null,
      "summary": "updated summary or null",
      "background": "updated background or null",
      "sources": [{{"url": "https://...", "title": "Article title"}}] or null
    }}
  ]
}}

BALANCE REQUIREMENTS:
- Every candidate MUST have at least 2 pros AND at least 2 cons
- Pros and cons counts should be within 1 of each other
- Each pro and con should be 30-80 characters long
- Even lesser-known candidates deserve equal analytical treatment

IMPORTANT:
- Return ONLY valid JSON, no markdown or explanation
- Use null for any field where you found no new information
- Candidate names must match exactly as provided
- For endorsements, keyPositions, pros, and cons: return the FULL updated list (existing + new), not just additions
- Only update fields where you found verifiable new information
- For sources: include URLs of articles and official pages you referenced for THIS candidate"""

_REPAIR_PROMPT_TEMPLATE = """\
The text below was supposed to be a single JSON object but could not be parsed.
Reconstruct that JSON object. Keep every value exactly as written; do not add,
research or invent anything. Use null where a value is unclear.

TEXT:
{text}"""


def _describe_candidate(candidate: Any) -> str:
    parts = [f"Name: {candidate.name}"]
    if candidate.is_incumbent:
        parts.append("(incumbent)")
    if candidate.withdrawn:
        parts.append("(withdrawn)")
    if candidate.polling:
        parts.append(f"Polling: {candidate.polling}")
    if candidate.fundraising:
        parts.append(f"Fundraising: {candidate.fundraising}")
    if candidate.endorsements:
        rendered = "; ".join(
            f"{e.name} ({e.type})" if e.type else e.name for e in candidate.endorsements
        )
        parts.append(f"Endorsements: {rendered}")
    if candidate.key_positions:
        parts.append(f"Key positions: {'; '.join(candidate.key_positions)}")
    return "\n    ".join(parts)


@dataclass
class StructuredResult:
    """A JSON object recovered from a research call."""

    data: dict[str, Any]
    response: ResearchResponse
    strategy: str
    repaired: bool = False


@dataclass
class RaceResearch:
    """Outcome of researching one race.

    ``update`` is ``None`` when the service returned no text at all.
    """

    update: RaceUpdate | None
    citations: list[Source] = field(default_factory=list)
    repaired: bool = False

    @property
    def empty(self) -> bool:
        return self.update is None


class ResearchClient:
    """Talks to the research service on behalf of every pipeline component."""

    def __init__(
        self,
        provider: IResearchProvider,
        config: ElectionConfig,
        usage_logger: IUsageLogger | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._config = config
        self._usage_logger = usage_logger
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_race_prompt(self, race: Race, party: str, today: date) -> str:
        since = today - timedelta(days=self._config.lookback_days)
        return _RACE_PROMPT_TEMPLATE.format(
            party=party,
            election_name=self._config.election_name,
            label=race.label,
            candidates="\n\n  ".join(_describe_candidate(c) for c in race.candidates),
            since=since.strftime("%B %d, %Y"),
        )

    async def research_race(
        self,
        race: Race,
        party: str,
        today: date,
        max_search_uses: int,
        context: str = "",
    ) -> RaceResearch:
        """Research one race and parse the result into a :class:`RaceUpdate`.

        Raises
        ------
        ExtractionError
            If no JSON object could be recovered even after the repair call,
            or the object does not have the expected shape.
        ResearchServiceError, RateLimitExhaustedError
            If a service call failed.
        """
        try:
            result = await self.complete_structured(
                prompt=self.build_race_prompt(race, party, today),
                system_prompt=_RESEARCH_SYSTEM_PROMPT,
                max_search_uses=max_search_uses,
                max_tokens=self._config.research_max_tokens,
                component="updater",
                context=context,
            )
        except EmptyResponseError:
            self._logger.warning("research_empty_response", context=context)
            return RaceResearch(update=None)

        try:
            update = RaceUpdate.model_validate(result.data)
        except ValidationError as exc:
            raise ExtractionError(
                message=f"Research result has an unexpected shape: {exc.error_count()} error(s)",
                provider_name=self._provider.get_provider_name(),
                raw_excerpt=json.dumps(result.data)[:200],
            ) from exc

        return RaceResearch(
            update=update,
            citations=list(result.response.citations),
            repaired=result.repaired,
        )

    async def complete_structured(
        self,
        prompt: str,
        system_prompt: str = "",
        max_search_uses: int | None = None,
        max_tokens: int = 4096,
        component: str = "updater",
        context: str = "",
    ) -> StructuredResult:
        """One research call plus extraction, with a single repair fallback.

        Raises
        ------
        EmptyResponseError
            If the primary call returned no text segments.
        ExtractionError
            If neither the primary nor the repair output yields a JSON object.
        """
        response = await self._call(prompt, system_prompt, max_search_uses, max_tokens,
                                    component, context)
        if not response.has_text:
            raise EmptyResponseError(provider_name=self._provider.get_provider_name())

        extracted = extract_structured(response.text)
        if extracted.ok:
            return StructuredResult(data=extracted.data, response=response,
                                    strategy=extracted.strategy or "")

        self._logger.warning(
            "extraction_failed_attempting_repair",
            context=context,
            reason=extracted.error,
        )
        repair = await self._call(
            _REPAIR_PROMPT_TEMPLATE.format(text=response.text[:_REPAIR_INPUT_LIMIT]),
            _REPAIR_SYSTEM_PROMPT,
            None,
            self._config.repair_max_tokens,
            f"{component}-repair",
            context,
        )
        repaired = extract_structured(repair.text) if repair.has_text else None
        if repaired is None or not repaired.ok:
            raise ExtractionError(
                message="Failed to parse research response as JSON, even after repair",
                provider_name=self._provider.get_provider_name(),
                raw_excerpt=response.text.strip()[:100],
            )
        self._logger.info("extraction_repaired", context=context, strategy=repaired.strategy)
        # Citations belong to the primary call; the repair call never searches.
        return StructuredResult(data=repaired.data, response=response,
                                strategy=repaired.strategy or "", repaired=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call(
        self,
        prompt: str,
        system_prompt: str,
        max_search_uses: int | None,
        max_tokens: int,
        component: str,
        context: str,
    ) -> ResearchResponse:
        async def _attempt() -> ResearchResponse:
            return await self._provider.research(
                prompt,
                system_prompt=system_prompt,
                max_search_uses=max_search_uses,
                max_tokens=max_tokens,
            )

        response = await self._retry.run(_attempt, sleep=self._sleep, context=context)
        await self._log_usage(component, response)
        return response

    async def _log_usage(self, component: str, response: ResearchResponse) -> None:
        if self._usage_logger is None:
            return
        try:
            await self._usage_logger.log_usage(
                component, response.usage, response.model or self._provider.get_model_name()
            )
        except Exception as exc:
            self._logger.warning("usage_logging_failed", component=component, error=str(exc))
