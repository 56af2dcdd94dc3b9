#!/usr/bin/env python3
"""CLI: Build the one-on-one strength table (team pokemons x target pokemons)."""

from __future__ import annotations

from pathlib import Path

import typer

# Add src to PYTHONPATH
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from matchup_lab.config import SimulationConfig
from matchup_lab.core import make_strength_table
from matchup_lab.errors import MatchupLabError
from matchup_lab.logging_config import setup_logging

app = typer.Typer()


@app.command()
def main(
    repetitions: int = typer.Option(
        10,
        "--repetitions",
        "-n",
        help="Swapped evaluation pairs per matchup.",
    ),
    depth: int = typer.Option(
        1,
        "--depth",
        "-d",
        help="Minimax search depth.",
    ),
    search_repetitions: int = typer.Option(
        1,
        "--search-repetitions",
        help="Repetitions inside each minimax search.",
    ),
    nolog: bool = typer.Option(False, "--nolog", help="Don't append to log files."),
    onlyinfo: bool = typer.Option(False, "--onlyinfo", help="Hide debug messages."),
):
    """Evaluate every team pokemon against every target pokemon."""
    config = SimulationConfig(
        repetitions=repetitions,
        depth=depth,
        search_repetitions=search_repetitions,
        nolog=nolog,
        onlyinfo=onlyinfo,
    )
    try:
        setup_logging(nolog=config.nolog, onlyinfo=config.onlyinfo, log_dir=config.log_dir)
        report = make_strength_table(config)
        typer.echo(f"Rows: {len(report.row_labels)}, columns: {len(report.column_labels)}")
    except (MatchupLabError, FileNotFoundError, ValueError) as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
