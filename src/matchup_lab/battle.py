"""Battle session driver: steps one battle to its end with minimax on both sides.

Each step asks the search once, from the perspective of the side that has to
move (p1 whenever it is not waiting). When both sides move, p2's reply is read
off the tree: the child of the root that holds the root's value is the branch
p1's best action expects, and its action is p2's best answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple, Union

from .config import DEFAULT_STEP_LIMIT, P1_NAME, P2_NAME
from .engine import (
    BattleSession,
    CreatureSet,
    Decision,
    DecisionSearch,
    Engine,
    FormatRules,
    SIDES,
    SideId,
)
from .errors import InconsistentDecisionError, StepLimitExceeded

logger = logging.getLogger(__name__)


# ============================================================================
# Step outcomes
# ============================================================================


@dataclass(frozen=True)
class BothMoved:
    p1_action: Any
    p2_action: Any


@dataclass(frozen=True)
class OneWaited:
    waiting_side: SideId
    acting_side: SideId
    action: Any


@dataclass(frozen=True)
class Inconsistent:
    reason: str


StepOutcome = Union[BothMoved, OneWaited, Inconsistent]


def resolve_step(decision: Decision, p1_waiting: bool, p2_waiting: bool) -> StepOutcome:
    """
    Turn a decision tree into the actions to submit this step.

    Args:
        decision: Search result, taken from p1's perspective unless p1 waits.
        p1_waiting: Whether p1 holds a wait request.
        p2_waiting: Whether p2 holds a wait request.

    Returns:
        BothMoved, OneWaited, or Inconsistent with the assumption that broke.
    """
    tree = decision.tree

    if p1_waiting and p2_waiting:
        return Inconsistent("both sides hold a wait request; nobody can move this step")
    if p1_waiting:
        return OneWaited(waiting_side="p1", acting_side="p2", action=tree.action)
    if p2_waiting:
        return OneWaited(waiting_side="p2", acting_side="p1", action=tree.action)

    if tree.type != "max":
        return Inconsistent(
            "Root of the decision tree is not a maximum tree. "
            "This is likely caused because this turn p1 has a wait request"
        )
    best_branch = tree.child_with_value(tree.value)
    if best_branch is None:
        return Inconsistent(
            f"No child of the decision tree root has the root value {tree.value}"
        )
    if best_branch.type != "min":
        return Inconsistent(
            "Child tree of p1 best choice is not a minimum tree. "
            "This is likely caused because this turn p2 has a wait request"
        )
    return BothMoved(p1_action=tree.action, p2_action=best_branch.action)


# ============================================================================
# Trials
# ============================================================================


@dataclass(frozen=True)
class TrialResult:
    """Outcome of one battle played to the end."""

    winner: Optional[SideId]  # None on a tie
    winner_name: Optional[str]
    steps: int


def _winner_side(winner_name: Optional[str], names: Tuple[str, str]) -> Optional[SideId]:
    if winner_name == names[0]:
        return "p1"
    if winner_name == names[1]:
        return "p2"
    return None


def show_both_side_hp(battle: BattleSession) -> None:
    for side in SIDES:
        health = ", ".join(str(mon) for mon in battle.side_health(side))
        logger.debug("%s: %s", side, health)


def decide_step(battle: BattleSession, search: DecisionSearch, depth: int) -> Tuple[Decision, StepOutcome]:
    """Run the search on a snapshot of `battle` and resolve what each side does."""
    p1_waiting = battle.is_waiting("p1")
    p2_waiting = battle.is_waiting("p2")
    acting: SideId = "p2" if p1_waiting else "p1"

    choices = battle.legal_choices(acting)
    with battle.snapshot() as snapshot:
        decision = search.decide(snapshot, choices, depth)
    return decision, resolve_step(decision, p1_waiting, p2_waiting)


def apply_step(battle: BattleSession, outcome: StepOutcome) -> None:
    """
    Submit the resolved actions.

    Raises:
        InconsistentDecisionError: If the outcome is Inconsistent.
    """
    if isinstance(outcome, Inconsistent):
        raise InconsistentDecisionError(outcome.reason)

    if isinstance(outcome, OneWaited):
        battle.choose(outcome.acting_side, outcome.action)
        logger.debug("%s action: %s", outcome.acting_side, outcome.action)
        logger.debug("%s action: (wait)", outcome.waiting_side)
        return

    battle.choose("p1", outcome.p1_action)
    battle.choose("p2", outcome.p2_action)
    logger.debug("p1 action: %s", outcome.p1_action)
    logger.debug("p2 action: %s", outcome.p2_action)


def play_to_end(
    battle: BattleSession,
    search: DecisionSearch,
    depth: int,
    *,
    step_limit: int = DEFAULT_STEP_LIMIT,
    names: Tuple[str, str] = (P1_NAME, P2_NAME),
) -> TrialResult:
    """
    Step an already started battle until it ends.

    Args:
        battle: Started session with requests made.
        search: Decision search used for both sides.
        depth: Search depth.
        step_limit: Hard cap on steps.
        names: Player names of p1 and p2, to map the winner to a side.

    Returns:
        TrialResult with 1 <= steps <= step_limit.

    Raises:
        InconsistentDecisionError: If a tree doesn't match the wait state.
        StepLimitExceeded: If the battle is still running after `step_limit` steps.
    """
    for step in range(1, step_limit + 1):
        logger.debug("Step: %d, Turn: %d", step, battle.turn)

        _, outcome = decide_step(battle, search, depth)
        apply_step(battle, outcome)
        show_both_side_hp(battle)

        if battle.ended:
            winner_name = battle.winner
            logger.debug("battle ended! winner: %s", winner_name)
            return TrialResult(
                winner=_winner_side(winner_name, names),
                winner_name=winner_name,
                steps=step,
            )

    raise StepLimitExceeded(step_limit)


def run_trial(
    engine: Engine,
    rules: FormatRules,
    p1_team: Sequence[CreatureSet],
    p2_team: Sequence[CreatureSet],
    search: DecisionSearch,
    depth: int,
    *,
    step_limit: int = DEFAULT_STEP_LIMIT,
) -> TrialResult:
    """Create a fresh battle, play it out, and dispose of it."""
    with engine.new_battle(rules, (P1_NAME, p1_team), (P2_NAME, p2_team)) as battle:
        battle.start()
        battle.make_request()
        return play_to_end(battle, search, depth, step_limit=step_limit)


def evaluate_opening(
    engine: Engine,
    rules: FormatRules,
    p1_team: Sequence[CreatureSet],
    p2_team: Sequence[CreatureSet],
    search: DecisionSearch,
    depth: int,
) -> Decision:
    """Search the first decision of a fresh battle from p1's point of view."""
    with engine.new_battle(rules, (P1_NAME, p1_team), (P2_NAME, p2_team)) as battle:
        battle.start()
        battle.make_request()
        choices = battle.legal_choices("p1")
        with battle.snapshot() as snapshot:
            return search.decide(snapshot, choices, depth)
