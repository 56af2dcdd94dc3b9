"""Aggregation of trial outcomes and evaluation samples."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .battle import TrialResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GameEndSummary:
    """Win/loss counts for one team-vs-team matchup played to the end."""

    n_trials: int
    p1_wins: int
    p2_wins: int
    ties: int
    avg_steps: Optional[float]


def summarize_trials(results: Sequence[TrialResult]) -> GameEndSummary:
    p1_wins = sum(1 for r in results if r.winner == "p1")
    p2_wins = sum(1 for r in results if r.winner == "p2")
    ties = len(results) - p1_wins - p2_wins

    avg_steps: Optional[float]
    if results:
        avg_steps = float(np.mean([r.steps for r in results]))
    else:
        avg_steps = None

    return GameEndSummary(
        n_trials=len(results),
        p1_wins=p1_wins,
        p2_wins=p2_wins,
        ties=ties,
        avg_steps=avg_steps,
    )


def swapped_sample(value_as_p1: float, value_as_p2: float) -> float:
    """
    One strength sample from a pair of mirrored battles.

    `value_as_p1` is the root value with the evaluated creature on p1, and
    `value_as_p2` the root value with the sides swapped. Halving the
    difference cancels whatever the engine gives p1 for free.
    """
    return (value_as_p1 - value_as_p2) / 2


@dataclass(frozen=True)
class MatchupStatistic:
    mean: float
    stddev: float
    cv: float  # NaN when mean == 0
    n_samples: int


def matchup_statistic(samples: Sequence[float]) -> MatchupStatistic:
    """
    Mean, population standard deviation and coefficient of variation.

    Raises:
        ValueError: If `samples` is empty.
    """
    if len(samples) == 0:
        raise ValueError("Cannot summarize an empty list of samples")

    values = np.asarray(samples, dtype=float)
    mean = float(values.mean())
    stddev = float(values.std(ddof=0))

    if mean == 0.0:
        logger.warning("mean evaluation value is 0; coefficient of variation is undefined (NaN)")
        cv = math.nan
    else:
        cv = stddev / abs(mean)

    return MatchupStatistic(mean=mean, stddev=stddev, cv=cv, n_samples=len(values))
