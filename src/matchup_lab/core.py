"""High-level pipeline functions for matchup-lab workflows."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from .battle import TrialResult, evaluate_opening, run_trial
from .config import SimulationConfig, ensure_paths
from .engine import CreatureSet, DecisionSearch, Engine, FormatRules, Team
from .reports import (
    EvalTableWriter,
    decision_log_path,
    render_table,
    save_decision,
    table_path,
)
from .roster import load_creature_sets, team_combinations, team_label, validate_creature_sets
from .showdown import open_engine
from .stats import (
    GameEndSummary,
    MatchupStatistic,
    matchup_statistic,
    summarize_trials,
    swapped_sample,
)

logger = logging.getLogger(__name__)

EngineFactory = Callable[[SimulationConfig], Engine]
ExecutorFactory = Callable[..., Executor]

T = TypeVar("T")
R = TypeVar("R")


# ============================================================================
# Shared setup
# ============================================================================


@dataclass(frozen=True)
class Rosters:
    rules: FormatRules
    team_pokemons: List[CreatureSet]
    target_pokemons: List[CreatureSet]


def format_rules(config: SimulationConfig) -> FormatRules:
    return FormatRules(
        name=config.format_name,
        removed_rules=tuple(config.removed_rules),
        forced_level=config.forced_level,
    )


def prepare_rosters(config: SimulationConfig, engine: Engine) -> Rosters:
    """
    Set up the format, then load and validate both rosters.

    Raises:
        FileNotFoundError: If a roster directory is missing.
        SetValidationError: If any set breaks the format's rules.
    """
    rules = engine.get_format(format_rules(config))

    target_pokemons = load_creature_sets(config.target_dir, engine)
    team_pokemons = load_creature_sets(config.team_dir, engine)
    validate_creature_sets(engine, rules, target_pokemons)
    validate_creature_sets(engine, rules, team_pokemons)

    logger.info("%d team pokemons are loaded.", len(team_pokemons))
    logger.info("%d target pokemons are loaded.", len(target_pokemons))
    return Rosters(rules=rules, team_pokemons=team_pokemons, target_pokemons=target_pokemons)


def _new_search(config: SimulationConfig, engine: Engine) -> DecisionSearch:
    return engine.new_search(config.search_repetitions, config.weights)


# ============================================================================
# Worker processes (--usechildprocess)
# ============================================================================

_worker_engine: Optional[Engine] = None
_worker_rules: Optional[FormatRules] = None
_worker_search: Optional[DecisionSearch] = None


def _init_worker(config: SimulationConfig, engine_factory: EngineFactory) -> None:
    """Give each worker process its own engine bridge."""
    global _worker_engine, _worker_rules, _worker_search
    _worker_engine = engine_factory(config)
    # Never closed explicitly; the Node bridge exits on stdin EOF when this worker dies.
    _worker_rules = _worker_engine.get_format(format_rules(config))
    _worker_search = _new_search(config, _worker_engine)


def _worker_context() -> Tuple[Engine, FormatRules, DecisionSearch]:
    if _worker_engine is None or _worker_rules is None or _worker_search is None:
        raise RuntimeError("worker engine is not initialized")
    return _worker_engine, _worker_rules, _worker_search


def _map_cells(
    config: SimulationConfig,
    cells: Sequence[T],
    local_fn: Callable[[T], R],
    worker_fn: Callable[[T], R],
    engine_factory: EngineFactory,
    executor_factory: ExecutorFactory,
) -> Iterator[R]:
    """Evaluate cells in order, either here or in a pool of worker processes."""
    if not config.use_child_process:
        for cell in cells:
            yield local_fn(cell)
        return

    with executor_factory(
        max_workers=config.workers,
        initializer=_init_worker,
        initargs=(config, engine_factory),
    ) as pool:
        yield from pool.map(worker_fn, cells)


def _rows(values: Iterable[T], n_rows: int, size: int) -> Iterator[List[T]]:
    """Split row-major cell results into `n_rows` rows of `size` (possibly empty) cells."""
    it = iter(values)
    for _ in range(n_rows):
        yield list(islice(it, size))


# ============================================================================
# Game end simulation
# ============================================================================


@dataclass
class GameEndReport:
    row_labels: List[str]
    column_labels: List[str]
    summaries: List[List[GameEndSummary]]
    csv_path: Path


def play_matchup(
    config: SimulationConfig,
    engine: Engine,
    rules: FormatRules,
    search: DecisionSearch,
    my_team: Team,
    opp_team: Team,
) -> GameEndSummary:
    """Play `config.repetitions` battles of my_team (p1) vs opp_team (p2) to the end."""
    logger.info("Simulate about %s vs %s", team_label(my_team), team_label(opp_team))

    results: List[TrialResult] = []
    for _ in range(config.repetitions):
        results.append(
            run_trial(
                engine,
                rules,
                my_team,
                opp_team,
                search,
                config.depth,
                step_limit=config.step_limit,
            )
        )

    summary = summarize_trials(results)
    logger.info("botPlayerWins: %d", summary.p1_wins)
    logger.info("humanPlayerWins: %d", summary.p2_wins)
    if summary.ties:
        logger.info("ties: %d", summary.ties)
    logger.info("average steps: %s", summary.avg_steps)
    return summary


def _game_end_cell_in_worker(cell: Tuple[SimulationConfig, Team, Team]) -> GameEndSummary:
    config, my_team, opp_team = cell
    engine, rules, search = _worker_context()
    return play_matchup(config, engine, rules, search, my_team, opp_team)


def simulate_game_end(
    config: SimulationConfig,
    engine: Optional[Engine] = None,
    *,
    engine_factory: EngineFactory = open_engine,
    executor_factory: ExecutorFactory = ProcessPoolExecutor,
) -> GameEndReport:
    """
    Play every 3-member team against every 3-member target team to the end.

    Writes a matrix of p1 (team side) win counts to Outputs/ and prints the
    per-matchup summary.
    """
    config.validate()
    ensure_paths(config)

    own_engine = engine is None
    active_engine = engine_factory(config) if engine is None else engine
    try:
        rosters = prepare_rosters(config, active_engine)
        team_selections = team_combinations(rosters.team_pokemons, limit=config.team_limit)
        target_selections = team_combinations(rosters.target_pokemons, limit=config.team_limit)

        row_labels = [team_label(team) for team in team_selections]
        column_labels = [team_label(team) for team in target_selections]

        logger.info("start evaluating game end win/lose...")
        search = _new_search(config, active_engine)
        cells = [(config, my, opp) for my in team_selections for opp in target_selections]

        def local_fn(cell: Tuple[SimulationConfig, Team, Team]) -> GameEndSummary:
            return play_matchup(config, active_engine, rosters.rules, search, cell[1], cell[2])

        summaries: List[List[GameEndSummary]] = []
        csv_path = table_path(
            config.output_dir, "game_end", config.repetitions, config.depth, config.search_repetitions
        )
        with EvalTableWriter(csv_path, column_labels) as writer:
            results = _map_cells(
                config, cells, local_fn, _game_end_cell_in_worker, engine_factory, executor_factory
            )
            for label, row in zip(row_labels, _rows(results, len(row_labels), len(column_labels))):
                summaries.append(row)
                writer.write_row(label, [s.p1_wins for s in row])
    finally:
        if own_engine:
            active_engine.close()

    print("calculation finished")
    for label, row in zip(row_labels, summaries):
        for opp_label, summary in zip(column_labels, row):
            avg = f"{summary.avg_steps:.2f}" if summary.avg_steps is not None else "n/a"
            print(
                f"{label} vs {opp_label}: botPlayer wins {summary.p1_wins}, "
                f"humanPlayer wins {summary.p2_wins}, ties {summary.ties}, average steps {avg}"
            )
    print(f"Win table written to {csv_path}")

    return GameEndReport(
        row_labels=row_labels,
        column_labels=column_labels,
        summaries=summaries,
        csv_path=csv_path,
    )


# ============================================================================
# One-on-one strength table
# ============================================================================


@dataclass
class StrengthTableReport:
    row_labels: List[str]
    column_labels: List[str]
    statistics: List[List[MatchupStatistic]]
    csv_path: Path

    @property
    def means(self) -> List[List[float]]:
        return [[stat.mean for stat in row] for row in self.statistics]


StrengthCell = Tuple[SimulationConfig, int, CreatureSet, int, CreatureSet]


def evaluate_strength(
    config: SimulationConfig,
    engine: Engine,
    rules: FormatRules,
    search: DecisionSearch,
    row_index: int,
    my_poke: CreatureSet,
    col_index: int,
    opp_poke: CreatureSet,
) -> MatchupStatistic:
    """
    One-on-one strength of my_poke against opp_poke.

    Each repetition evaluates the opening decision twice, once with my_poke on
    p1 and once with the sides swapped, and keeps half the difference.
    """
    logger.info("evaluate about %s vs %s", my_poke.species, opp_poke.species)

    samples: List[float] = []
    for k in range(config.repetitions):
        values: List[float] = []
        for swap in (0, 1):
            p1_team = [my_poke] if swap == 0 else [opp_poke]
            p2_team = [opp_poke] if swap == 0 else [my_poke]
            decision = evaluate_opening(engine, rules, p1_team, p2_team, search, config.depth)
            save_decision(
                decision,
                decision_log_path(
                    config.decision_log_dir,
                    row_index,
                    my_poke.species,
                    col_index,
                    opp_poke.species,
                    k,
                    swap,
                ),
            )
            values.append(decision.tree.value)
        samples.append(swapped_sample(values[0], values[1]))

    stat = matchup_statistic(samples)
    logger.info(
        "One-on-one strength: %s (stddev: %s, C.V.: %s)", stat.mean, stat.stddev, stat.cv
    )
    return stat


def _strength_cell_in_worker(cell: StrengthCell) -> MatchupStatistic:
    config, i, my_poke, j, opp_poke = cell
    engine, rules, search = _worker_context()
    return evaluate_strength(config, engine, rules, search, i, my_poke, j, opp_poke)


def make_strength_table(
    config: SimulationConfig,
    engine: Optional[Engine] = None,
    *,
    engine_factory: EngineFactory = open_engine,
    executor_factory: ExecutorFactory = ProcessPoolExecutor,
) -> StrengthTableReport:
    """
    Evaluate every team pokemon (rows) against every target pokemon (columns).

    Writes Outputs/str_table_<reps>_<depth>_<searchReps>_<timestamp>.csv row by
    row and prints the table.
    """
    config.validate()
    ensure_paths(config)

    own_engine = engine is None
    active_engine = engine_factory(config) if engine is None else engine
    try:
        rosters = prepare_rosters(config, active_engine)
        targets_vertical = list(rosters.team_pokemons)
        targets_horizontal = list(rosters.target_pokemons)
        row_labels = [mon.species for mon in targets_vertical]
        column_labels = [mon.species for mon in targets_horizontal]

        logger.info("start evaluating One-On-One strength...")
        search = _new_search(config, active_engine)
        cells: List[StrengthCell] = [
            (config, i, my_poke, j, opp_poke)
            for i, my_poke in enumerate(targets_vertical)
            for j, opp_poke in enumerate(targets_horizontal)
        ]

        def local_fn(cell: StrengthCell) -> MatchupStatistic:
            _, i, my_poke, j, opp_poke = cell
            return evaluate_strength(
                config, active_engine, rosters.rules, search, i, my_poke, j, opp_poke
            )

        statistics: List[List[MatchupStatistic]] = []
        csv_path = table_path(
            config.output_dir, "str_table", config.repetitions, config.depth, config.search_repetitions
        )
        with EvalTableWriter(csv_path, column_labels) as writer:
            results = _map_cells(
                config, cells, local_fn, _strength_cell_in_worker, engine_factory, executor_factory
            )
            for label, row in zip(row_labels, _rows(results, len(row_labels), len(column_labels))):
                statistics.append(row)
                writer.write_row(label, [stat.mean for stat in row])
    finally:
        if own_engine:
            active_engine.close()

    report = StrengthTableReport(
        row_labels=row_labels,
        column_labels=column_labels,
        statistics=statistics,
        csv_path=csv_path,
    )
    logger.info("evaluation value table is below: ")
    print(render_table(report.means, row_labels, column_labels))
    print(f"Strength table written to {csv_path}")
    return report


# ============================================================================
# Tools
# ============================================================================


def validate_rosters(
    config: SimulationConfig,
    engine: Optional[Engine] = None,
    *,
    engine_factory: EngineFactory = open_engine,
) -> Rosters:
    """Load and validate both rosters without running any battle."""
    own_engine = engine is None
    active_engine = engine_factory(config) if engine is None else engine
    try:
        rosters = prepare_rosters(config, active_engine)
    finally:
        if own_engine:
            active_engine.close()

    print(f"Format: {rosters.rules.name}")
    print(f"Team pokemons: {', '.join(m.species for m in rosters.team_pokemons) or '(none)'}")
    print(f"Target pokemons: {', '.join(m.species for m in rosters.target_pokemons) or '(none)'}")
    print("All sets are valid.")
    return rosters
