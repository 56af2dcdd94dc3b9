#!/usr/bin/env python3
"""CLI: Play 3v3 battles to the end with minimax on both sides and count wins."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

# Add src to PYTHONPATH
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from matchup_lab.config import SimulationConfig
from matchup_lab.core import simulate_game_end
from matchup_lab.errors import MatchupLabError
from matchup_lab.logging_config import setup_logging

app = typer.Typer()


@app.command()
def main(
    repetitions: int = typer.Option(
        100,
        "--repetitions",
        "-n",
        help="Battles per matchup.",
    ),
    depth: int = typer.Option(
        1,
        "--depth",
        "-d",
        help="Minimax search depth.",
    ),
    team_limit: Optional[int] = typer.Option(
        1,
        "--team-limit",
        help="Only use the first N 3-member teams from each roster.",
    ),
    step_limit: int = typer.Option(
        20,
        "--step-limit",
        help="Abort a battle that hasn't ended after this many steps.",
    ),
    nolog: bool = typer.Option(False, "--nolog", help="Don't append to log files."),
    onlyinfo: bool = typer.Option(False, "--onlyinfo", help="Hide per-step battle traces."),
):
    """Simulate team vs target team battles to the end."""
    config = SimulationConfig(
        repetitions=repetitions,
        depth=depth,
        team_limit=team_limit,
        step_limit=step_limit,
        nolog=nolog,
        onlyinfo=onlyinfo,
    )
    try:
        setup_logging(nolog=config.nolog, onlyinfo=config.onlyinfo, log_dir=config.log_dir)
        report = simulate_game_end(config)
        total = sum(s.n_trials for row in report.summaries for s in row)
        typer.echo(f"Battles played: {total}")
    except (MatchupLabError, FileNotFoundError, ValueError) as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
