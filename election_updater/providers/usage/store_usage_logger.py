"""Token-usage logger that accumulates daily totals in the key-value store.

Record layout under ``usage_log:{YYYY-MM-DD}`` (30-day TTL)::

    {
      "updater": {"input": 1200, "output": 800, "calls": 3,
                  "models": {"claude-sonnet-4-20250514": {"input": ..., "output": ..., "calls": 3}},
                  "lastCall": "2026-10-19T06:00:12+00:00"},
      "balance-correction": {...}
    }
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.interfaces.usage_logger import IUsageLogger
from election_updater.models.update import TokenUsage

logger = structlog.get_logger(logger_name=__name__)

USAGE_LOG_PREFIX = "usage_log:"
USAGE_LOG_TTL = 30 * 24 * 60 * 60

# (substring of model id, $ per million input tokens, $ per million output tokens)
_MODEL_RATES: tuple[tuple[str, float, float], ...] = (
    ("haiku", 0.25, 1.25),
    ("gpt-4o", 2.5, 10.0),
    ("gemini", 0.15, 0.60),
    ("grok", 3.0, 15.0),
)
_DEFAULT_RATES = (3.0, 15.0)  # Sonnet pricing


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def _rates_for(model: str) -> tuple[float, float]:
    for needle, input_rate, output_rate in _MODEL_RATES:
        if needle in model:
            return input_rate, output_rate
    return _DEFAULT_RATES


def estimate_cost(usage_log: dict[str, Any]) -> dict[str, float]:
    """Estimate dollar cost per component plus a ``_total``, rounded to 4 places."""
    costs: dict[str, float] = {}
    total = 0.0
    for component, data in usage_log.items():
        component_cost = 0.0
        models = data.get("models") or {}
        if models:
            for model, model_data in models.items():
                input_rate, output_rate = _rates_for(model)
                component_cost += (
                    model_data.get("input", 0) * input_rate
                    + model_data.get("output", 0) * output_rate
                ) / 1_000_000
        else:
            input_rate, output_rate = _DEFAULT_RATES
            component_cost = (
                data.get("input", 0) * input_rate + data.get("output", 0) * output_rate
            ) / 1_000_000
        costs[component] = round(component_cost, 4)
        total += component_cost
    costs["_total"] = round(total, 4)
    return costs


class StoreUsageLogger(IUsageLogger):
    """Accumulates per-component, per-model token counts in the store."""

    def __init__(
        self,
        store: IStoreProvider,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def log_usage(self, component: str, usage: TokenUsage, model: str) -> None:
        now = self._clock()
        key = f"{USAGE_LOG_PREFIX}{now.date().isoformat()}"
        raw = await self._store.get(key)
        log: dict[str, Any] = json.loads(raw) if raw else {}

        entry = log.setdefault(component, {"input": 0, "output": 0, "calls": 0, "models": {}})
        entry["input"] += usage.input_tokens
        entry["output"] += usage.output_tokens
        entry["calls"] += 1
        if model:
            per_model = entry.setdefault("models", {}).setdefault(
                model, {"input": 0, "output": 0, "calls": 0}
            )
            per_model["input"] += usage.input_tokens
            per_model["output"] += usage.output_tokens
            per_model["calls"] += 1
        entry["lastCall"] = now.isoformat()

        await self._store.put(key, json.dumps(log), ttl=USAGE_LOG_TTL)
        logger.debug(
            "token_usage_logged",
            component=component,
            model=model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )

    async def get_usage_log(self, day: str | None = None) -> dict[str, Any]:
        """Return the usage log for *day* (``YYYY-MM-DD``), defaulting to today."""
        day = day or self._clock().date().isoformat()
        raw = await self._store.get(f"{USAGE_LOG_PREFIX}{day}")
        return json.loads(raw) if raw else {}
