#!/usr/bin/env python3
"""
Validate the team and target pokemon rosters against the custom game format.

Usage:
    python scripts/validate_rosters_cli.py
    python scripts/validate_rosters_cli.py --team-dir my_team --target-dir targets
"""

import sys
from pathlib import Path

import typer

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from matchup_lab.config import SimulationConfig, TARGET_POKEMON_DIR, TEAM_POKEMON_DIR
from matchup_lab.core import validate_rosters
from matchup_lab.errors import EngineError, SetValidationError
from matchup_lab.logging_config import setup_logging

app = typer.Typer(help="Validate pokemon rosters")


@app.command()
def main(
    team_dir: Path = typer.Option(TEAM_POKEMON_DIR, "--team-dir", help="Team pokemon directory"),
    target_dir: Path = typer.Option(TARGET_POKEMON_DIR, "--target-dir", help="Target pokemon directory"),
):
    """Load both rosters and validate every set; exit 1 on the first invalid set."""
    try:
        setup_logging(nolog=True, onlyinfo=True)
        validate_rosters(SimulationConfig(team_dir=team_dir.resolve(), target_dir=target_dir.resolve()))
    except SetValidationError as e:
        typer.echo("Validation FAILED:", err=True)
        for problem in e.problems:
            typer.echo(f"  {problem}", err=True)
        raise typer.Exit(1)
    except EngineError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
