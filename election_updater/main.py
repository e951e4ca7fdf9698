"""Application wiring for the election updater.

Builds every provider and pipeline from :class:`Settings` and the election
config, the one place that knows which concrete adapter backs which
interface.  The CLI and any scheduler entry point call
:func:`build_application` and then invoke operations on the returned
:class:`Application`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

import structlog

from election_updater.config.election import ElectionConfig
from election_updater.config.loader import load_election_config
from election_updater.config.settings import Settings
from election_updater.interfaces.research_provider import IResearchProvider
from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.pipeline.county_refresh import CountyRefreshPipeline
from election_updater.pipeline.orchestrator import DailyUpdatePipeline
from election_updater.pipeline.run_log import RunLogWriter
from election_updater.providers.balance.heuristic_scorer import HeuristicBalanceScorer
from election_updater.providers.research.anthropic_provider import AnthropicResearchProvider
from election_updater.providers.store.memory_store import MemoryStoreProvider
from election_updater.providers.store.sqlite_store import SQLiteStoreProvider
from election_updater.providers.usage.store_usage_logger import StoreUsageLogger
from election_updater.services.research_client import ResearchClient
from election_updater.services.tone_refresher import ToneRefresher
from election_updater.utils.errors import ConfigurationError
from election_updater.utils.logging import configure_logging, get_logger

Sleeper = Callable[[float], Awaitable[None]]

_logger: structlog.BoundLogger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


async def build_store(app_settings: Settings) -> IStoreProvider:
    """Return the configured key-value store, initialized and ready."""
    backend = app_settings.store_backend.lower()
    if backend == "memory":
        return MemoryStoreProvider()
    if backend == "sqlite":
        store = SQLiteStoreProvider(db_path=app_settings.store_db_path)
        await store.initialize()
        return store
    raise ConfigurationError(message=f"Unknown store backend: {app_settings.store_backend!r}")


def build_research_provider(app_settings: Settings) -> IResearchProvider:
    if not app_settings.has_research_credentials():
        raise ConfigurationError(
            message="ANTHROPIC_API_KEY is not set", provider_name="anthropic"
        )
    return AnthropicResearchProvider(settings=app_settings)


# ---------------------------------------------------------------------------
# Application container
# ---------------------------------------------------------------------------


@dataclass
class Application:
    settings: Settings
    config: ElectionConfig
    store: IStoreProvider
    daily: DailyUpdatePipeline
    county: CountyRefreshPipeline
    run_log: RunLogWriter


def assemble(
    app_settings: Settings,
    config: ElectionConfig,
    store: IStoreProvider,
    provider: IResearchProvider,
    clock: Callable[[], datetime] = _utc_now,
    sleep: Sleeper = asyncio.sleep,
) -> Application:
    """Wire pipelines from already-built collaborators."""
    client = ResearchClient(
        provider,
        config,
        usage_logger=StoreUsageLogger(store, clock=clock),
        sleep=sleep,
    )
    county = CountyRefreshPipeline(store, client, config, clock=clock, sleep=sleep)
    daily = DailyUpdatePipeline(
        store,
        client,
        HeuristicBalanceScorer(),
        config,
        county_refresh=county,
        tone_refresher=ToneRefresher(store, client, config, sleep=sleep),
        skip_county_refresh=app_settings.skip_county_refresh,
        clock=clock,
        sleep=sleep,
    )
    return Application(
        settings=app_settings,
        config=config,
        store=store,
        daily=daily,
        county=county,
        run_log=RunLogWriter(store, retention_days=config.log_retention_days),
    )


async def build_application(app_settings: Settings | None = None) -> Application:
    """Load configuration, configure logging and build every component."""
    app_settings = app_settings or Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )
    config = load_election_config(app_settings.config_path, app_settings)
    store = await build_store(app_settings)
    provider = build_research_provider(app_settings)
    _logger.info(
        "application_built",
        store=store.get_provider_name(),
        research=provider.get_provider_name(),
        model=provider.get_model_name(),
        election=config.election_cycle,
    )
    return assemble(app_settings, config, store, provider)
