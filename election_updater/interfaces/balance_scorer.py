"""Abstract base class for candidate fairness scoring."""

from __future__ import annotations

from abc import ABC, abstractmethod

from election_updater.models.ballot import Candidate
from election_updater.models.diagnostics import BalanceScore


class IBalanceScorer(ABC):
    """Contract for scoring how evenly a candidate's pros and cons are presented.

    A score carries a list of flags; flags with ``CRITICAL`` severity
    (missing pros, missing cons, or both) are what the balance corrector
    acts on.
    """

    @abstractmethod
    def score(self, candidate: Candidate) -> BalanceScore:
        """Score one candidate.

        Parameters
        ----------
        candidate:
            The candidate as it will be persisted.

        Returns
        -------
        BalanceScore
            Flags plus a 0-100 score (100 = no issues).
        """
