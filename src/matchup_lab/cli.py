"""Unified CLI entrypoint for matchup-lab."""

import argparse
import sys
from pathlib import Path

from . import core
from .config import ALGORITHMS, SimulationConfig
from .errors import MatchupLabError
from .logging_config import setup_logging


def _build_config(args) -> SimulationConfig:
    """Defaults, then the --config YAML file, then command-line flags."""
    if args.config:
        base = SimulationConfig.from_yaml(Path(args.config))
    else:
        base = SimulationConfig()

    config = base.with_overrides(
        algorithm=args.algorithm,
        depth=args.depth,
        repetitions=getattr(args, "repetitions", None),
        search_repetitions=getattr(args, "search_repetitions", None),
        team_limit=getattr(args, "team_limit", None),
        team_dir=Path(args.team_dir).resolve() if args.team_dir else None,
        target_dir=Path(args.target_dir).resolve() if args.target_dir else None,
        workers=args.workers,
        # store_true flags only ever switch things on
        nolog=True if args.nolog else None,
        onlyinfo=True if args.onlyinfo else None,
        use_child_process=True if args.usechildprocess else None,
    )
    setup_logging(nolog=config.nolog, onlyinfo=config.onlyinfo, log_dir=config.log_dir)
    return config


def _parse_game_end(args):
    """Parse arguments for game-end command."""
    core.simulate_game_end(_build_config(args))


def _parse_strength_table(args):
    """Parse arguments for strength-table command."""
    core.make_strength_table(_build_config(args))


def _parse_validate_rosters(args):
    """Parse arguments for validate-rosters command."""
    core.validate_rosters(_build_config(args))


def main(argv: list[str] | None = None) -> None:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="matchup-lab",
        description="Minimax-driven Pokemon Showdown battle simulations: game-end win rates and one-on-one strength tables",
    )

    # ========================================================================
    # Options shared by every command
    # ========================================================================
    parser.add_argument(
        "--algorithm",
        type=str,
        choices=ALGORITHMS,
        help="Decision search algorithm. Only 'minimax' can drive simulations. [minimax]",
    )
    parser.add_argument(
        "--depth", type=int, help="Minimax searches to this depth from the current state. [1]"
    )
    parser.add_argument("--nolog", action="store_true", help="Don't append to log files.")
    parser.add_argument(
        "--onlyinfo",
        action="store_true",
        help="Hide debug messages (per-step battle traces).",
    )
    parser.add_argument(
        "--usechildprocess",
        action="store_true",
        help="Evaluate matchups in child processes, each with its own engine bridge.",
    )
    parser.add_argument(
        "--workers", type=int, help="Number of child processes (default: CPU count)"
    )
    parser.add_argument("--config", type=str, help="YAML file with configuration overrides")
    parser.add_argument("--team-dir", type=str, help="Directory of team pokemon texts")
    parser.add_argument("--target-dir", type=str, help="Directory of target pokemon texts")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    subparsers.required = True

    # game-end
    parser_game_end = subparsers.add_parser(
        "game-end", help="Play 3v3 battles to the end and count wins"
    )
    parser_game_end.add_argument(
        "--repetitions", "-n", type=int, help="Battles per matchup"
    )
    parser_game_end.add_argument(
        "--search-repetitions", type=int, help="Repetitions inside each minimax search"
    )
    parser_game_end.add_argument(
        "--team-limit",
        type=int,
        help="Only use the first N 3-member teams from each roster",
    )
    parser_game_end.set_defaults(func=_parse_game_end)

    # strength-table
    parser_strength = subparsers.add_parser(
        "strength-table", help="Build the one-on-one strength table CSV"
    )
    parser_strength.add_argument(
        "--repetitions", "-n", type=int, help="Swapped evaluation pairs per matchup"
    )
    parser_strength.add_argument(
        "--search-repetitions", type=int, help="Repetitions inside each minimax search"
    )
    parser_strength.set_defaults(func=_parse_strength_table)

    # validate-rosters
    parser_validate = subparsers.add_parser(
        "validate-rosters", help="Load and validate both rosters"
    )
    parser_validate.set_defaults(func=_parse_validate_rosters)

    args = parser.parse_args(argv)
    try:
        args.func(args)
    except (MatchupLabError, FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
