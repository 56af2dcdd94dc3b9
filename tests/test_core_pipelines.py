"""End-to-end pipeline tests against the in-memory engine."""

import csv
import math
from concurrent.futures import ThreadPoolExecutor

import pytest

from fake_engine import FakeEngine, FakeSearch, write_set
from matchup_lab import core
from matchup_lab.config import SimulationConfig
from matchup_lab.errors import SetValidationError

STRENGTH = {
    "Dragapult": 30.0,
    "Rotom-Wash": 10.0,
    "Excadrill": 20.0,
    "Corviknight": 15.0,
    "Toxapex": 5.0,
}
# Whatever the engine hands p1 just for being p1
FIRST_MOVER_BIAS = 7.0


def strength_value(snapshot):
    p1 = snapshot.teams["p1"][0].species
    p2 = snapshot.teams["p2"][0].species
    return STRENGTH[p1] - STRENGTH[p2] + FIRST_MOVER_BIAS


@pytest.fixture
def config(tmp_path):
    team_dir = tmp_path / "Team Pokemons"
    target_dir = tmp_path / "Target Pokemons"
    for name in ("Dragapult", "Rotom-Wash", "Excadrill"):
        write_set(team_dir, f"{name.lower()}.txt", name)
    for name in ("Corviknight", "Toxapex", "Dragapult"):
        write_set(target_dir, f"{name.lower()}.txt", name)

    return SimulationConfig(
        repetitions=2,
        team_dir=team_dir,
        target_dir=target_dir,
        decision_log_dir=tmp_path / "Decision Logs",
        output_dir=tmp_path / "Outputs",
        log_dir=tmp_path / "logs",
        nolog=True,
    )


def _read_csv(path):
    with path.open(newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


# ============================================================================
# Strength table
# ============================================================================


def test_strength_table_cancels_first_mover_bias(config, capsys):
    engine = FakeEngine(search=FakeSearch(value_fn=strength_value))

    report = core.make_strength_table(config, engine)

    # sorted file order: dragapult, excadrill, rotom-wash / corviknight, dragapult, toxapex
    assert report.row_labels == ["Dragapult", "Excadrill", "Rotom-Wash"]
    assert report.column_labels == ["Corviknight", "Dragapult", "Toxapex"]
    for i, row_species in enumerate(report.row_labels):
        for j, col_species in enumerate(report.column_labels):
            stat = report.statistics[i][j]
            assert stat.mean == pytest.approx(STRENGTH[row_species] - STRENGTH[col_species])
            assert stat.stddev == pytest.approx(0.0)
            assert stat.n_samples == config.repetitions

    # mirror matchup
    assert report.statistics[0][1].mean == 0.0
    assert math.isnan(report.statistics[0][1].cv)

    assert "Dragapult,15,0,25" in capsys.readouterr().out
    assert not engine.closed


def test_strength_table_writes_csv_and_decision_logs(config):
    engine = FakeEngine(search=FakeSearch(value_fn=strength_value))

    report = core.make_strength_table(config, engine)

    rows = _read_csv(report.csv_path)
    assert report.csv_path.parent == config.output_dir
    assert report.csv_path.name.startswith("str_table_2_1_1_")
    assert rows[0] == ["", "Corviknight", "Dragapult", "Toxapex"]
    assert rows[1] == ["Dragapult", "15", "0", "25"]
    assert len(rows) == 1 + 3
    assert all(len(row) == 1 + 3 for row in rows)

    logs = sorted(p.name for p in config.decision_log_dir.iterdir())
    assert len(logs) == 3 * 3 * config.repetitions * 2
    assert "(0)Dragapult-(2)Toxapex_1_1.json" in logs


def test_strength_table_uses_configured_search(config):
    engine = FakeEngine(search=FakeSearch(value_fn=strength_value))
    config = config.with_overrides(search_repetitions=3, depth=2, repetitions=1)

    core.make_strength_table(config, engine)

    assert engine.search_args == (3, {"p1_hp": 1024, "p2_hp": -1024})
    assert {depth for _, _, depth in engine.search.calls} == {2}
    # every battle is a fresh one-on-one, disposed after its single search
    assert len(engine.battles) == 3 * 3 * 2
    assert all(b.closed and b.chosen == [] for b in engine.battles)
    assert all(len(b.teams["p1"]) == 1 and len(b.teams["p2"]) == 1 for b in engine.battles)


def test_strength_table_in_workers(config):
    engines = []

    def engine_factory(cfg):
        engine = FakeEngine(search=FakeSearch(value_fn=strength_value))
        engines.append(engine)
        return engine

    config = config.with_overrides(use_child_process=True, workers=1)
    report = core.make_strength_table(
        config, engine_factory=engine_factory, executor_factory=ThreadPoolExecutor
    )

    assert report.statistics[2][0].mean == pytest.approx(STRENGTH["Rotom-Wash"] - STRENGTH["Corviknight"])
    # one engine for the roster work, one for the worker
    assert len(engines) == 2
    assert engines[0].closed
    assert engines[0].battles == []
    assert len(engines[1].battles) == 3 * 3 * config.repetitions * 2
    # the worker bridge is left to exit with its process
    assert not engines[1].closed


def test_validation_failure_runs_no_battles(config):
    engine = FakeEngine(banned={"Toxapex": ["Toxapex is banned."]})

    with pytest.raises(SetValidationError):
        core.make_strength_table(config, engine)

    assert engine.battles == []
    assert not list(config.output_dir.iterdir())


def test_engine_from_factory_is_closed_on_failure(config):
    engine = FakeEngine(banned={"Toxapex": ["Toxapex is banned."]})

    with pytest.raises(SetValidationError):
        core.make_strength_table(config, engine_factory=lambda cfg: engine)

    assert engine.closed


def test_invalid_config_is_rejected_before_engine_starts(config):
    calls = []
    with pytest.raises(ValueError):
        core.make_strength_table(
            config.with_overrides(algorithm="random"),
            engine_factory=lambda cfg: calls.append(cfg),
        )
    assert calls == []


# ============================================================================
# Game end
# ============================================================================


def test_game_end_counts_wins(config, capsys):
    write_set(config.team_dir, "zz-toxapex.txt", "Toxapex")
    engine = FakeEngine(battle_kwargs={"end_after": 3})

    report = core.simulate_game_end(config.with_overrides(repetitions=3), engine)

    assert len(report.row_labels) == 4  # C(4, 3)
    assert report.row_labels[0] == "[Dragapult, Excadrill, Rotom-Wash]"
    assert report.column_labels == ["[Corviknight, Dragapult, Toxapex]"]
    assert len(engine.battles) == 4 * 1 * 3
    assert all(b.closed and b.steps_resolved == 3 for b in engine.battles)
    for row in report.summaries:
        assert [s.p1_wins for s in row] == [3]
        assert [s.avg_steps for s in row] == [3.0]

    rows = _read_csv(report.csv_path)
    assert report.csv_path.name.startswith("game_end_3_1_1_")
    assert rows[0] == ["", "[Corviknight, Dragapult, Toxapex]"]
    assert [r[1] for r in rows[1:]] == ["3", "3", "3", "3"]

    out = capsys.readouterr().out
    assert "calculation finished" in out
    assert "botPlayer wins 3" in out


def test_game_end_team_limit_and_p2_wins(config):
    engine = FakeEngine(battle_kwargs={"end_after": 2, "winner_name": "humanPlayer"})

    report = core.simulate_game_end(config.with_overrides(team_limit=1, repetitions=2), engine)

    assert len(report.summaries) == 1
    summary = report.summaries[0][0]
    assert (summary.p1_wins, summary.p2_wins, summary.ties) == (0, 2, 0)


def test_game_end_with_too_few_pokemons(config, tmp_path):
    small = tmp_path / "small"
    write_set(small, "a.txt", "Dragapult")
    engine = FakeEngine()

    report = core.simulate_game_end(config.with_overrides(target_dir=small), engine)

    assert report.column_labels == []
    assert report.summaries == [[]]
    assert engine.battles == []
    assert _read_csv(report.csv_path) == [[""], ["[Dragapult, Excadrill, Rotom-Wash]"]]


def test_strength_table_with_empty_target_roster(config, tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    engine = FakeEngine()

    report = core.make_strength_table(config.with_overrides(target_dir=empty), engine)

    assert report.statistics == [[], [], []]
    assert engine.battles == []
    rows = _read_csv(report.csv_path)
    assert rows == [[""], ["Dragapult"], ["Excadrill"], ["Rotom-Wash"]]


# ============================================================================
# validate_rosters
# ============================================================================


def test_validate_rosters(config, capsys):
    engine = FakeEngine()

    rosters = core.validate_rosters(config, engine_factory=lambda cfg: engine)

    assert [m.species for m in rosters.target_pokemons] == ["Corviknight", "Dragapult", "Toxapex"]
    assert rosters.rules.removed_rules == ("Team Preview",)
    assert rosters.rules.forced_level == 50
    assert engine.closed
    assert "All sets are valid." in capsys.readouterr().out
