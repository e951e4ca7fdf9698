"""Interfaces for every external collaborator of the update pipeline.

Business logic only ever talks to these abstract base classes; concrete
adapters live in ``election_updater/providers/`` and are wired together in
``election_updater/main.py``.  Tests inject mocks built from these specs.

CONCRETE PROVIDER MAP:
    Interface            ->  Concrete implementations
    ---------------------------------------------------------------
    IStoreProvider       ->  MemoryStoreProvider, SQLiteStoreProvider
    IResearchProvider    ->  AnthropicResearchProvider
    IBalanceScorer       ->  HeuristicBalanceScorer
    IUsageLogger         ->  StoreUsageLogger
"""

from election_updater.interfaces.balance_scorer import IBalanceScorer
from election_updater.interfaces.research_provider import IResearchProvider
from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.interfaces.usage_logger import IUsageLogger

__all__ = [
    "IBalanceScorer",
    "IResearchProvider",
    "IStoreProvider",
    "IUsageLogger",
]
