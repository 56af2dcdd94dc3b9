"""Exception types raised by matchup-lab."""

from __future__ import annotations

from typing import Sequence


class MatchupLabError(Exception):
    """Base for errors that abort a run."""


class EngineError(MatchupLabError):
    """The external battle engine bridge failed or answered nonsense."""


class SetValidationError(MatchupLabError):
    def __init__(self, species: str, problems: Sequence[str]):
        super().__init__(
            f"Pokemon Set Validation Error: {len(problems)} problem(s) found about {species}"
        )
        self.species = species
        self.problems = list(problems)


class InconsistentDecisionError(MatchupLabError):
    """The decision tree did not have the expected two-ply minimax shape."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class StepLimitExceeded(MatchupLabError):
    def __init__(self, limit: int):
        super().__init__(f"battle did not finish within {limit} steps")
        self.limit = limit
