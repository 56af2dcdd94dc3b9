"""matchup-lab: minimax-driven battle simulations on top of Pokemon Showdown."""

from .core import (
    make_strength_table,
    prepare_rosters,
    simulate_game_end,
    validate_rosters,
)

# Re-export key types for convenience
from .battle import TrialResult, play_to_end, resolve_step, run_trial
from .config import SimulationConfig
from .engine import CreatureSet, Decision, DecisionNode, FormatRules
from .errors import (
    EngineError,
    InconsistentDecisionError,
    MatchupLabError,
    SetValidationError,
    StepLimitExceeded,
)
from .stats import GameEndSummary, MatchupStatistic

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Pipelines
    "simulate_game_end",
    "make_strength_table",
    "validate_rosters",
    "prepare_rosters",
    # Battle driver
    "play_to_end",
    "resolve_step",
    "run_trial",
    # Key types
    "SimulationConfig",
    "CreatureSet",
    "Decision",
    "DecisionNode",
    "FormatRules",
    "TrialResult",
    "GameEndSummary",
    "MatchupStatistic",
    # Errors
    "MatchupLabError",
    "EngineError",
    "SetValidationError",
    "InconsistentDecisionError",
    "StepLimitExceeded",
]
