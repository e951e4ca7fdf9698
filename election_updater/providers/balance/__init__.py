"""Balance scorer providers."""

from election_updater.providers.balance.heuristic_scorer import HeuristicBalanceScorer

__all__ = ["HeuristicBalanceScorer"]
