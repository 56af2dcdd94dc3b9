"""Rosters: loading Pokémon sets from text files, validating them, building teams."""

from __future__ import annotations

import logging
from itertools import combinations
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from .engine import CreatureSet, Engine, FormatRules, Team
from .errors import EngineError, SetValidationError

logger = logging.getLogger(__name__)

TEAM_SIZE = 3


def load_creature_sets(directory: Path, engine: Engine) -> List[CreatureSet]:
    """
    Read one Pokémon set per file in `directory`.

    Files are read in sorted name order. A file that can't be read, can't be
    imported, or imports to nothing is skipped with a warning; there is never
    a placeholder entry for it. Only the first set of a multi-set file is kept.

    Args:
        directory: Directory of Showdown export texts.
        engine: Engine providing the team importer.

    Returns:
        The successfully imported sets.

    Raises:
        FileNotFoundError: If the directory doesn't exist.
    """
    if not directory.is_dir():
        raise FileNotFoundError(f"Pokemon directory not found: {directory}")

    creatures: List[CreatureSet] = []
    for path in sorted(directory.iterdir()):
        if not path.is_file():
            continue
        creature = _load_one(path, engine)
        if creature is not None:
            creatures.append(creature)
    return creatures


def _load_one(path: Path, engine: Engine) -> Optional[CreatureSet]:
    filename = path.name
    try:
        raw_text = path.read_text(encoding="utf-8")
        sets = engine.import_team(raw_text)
        if not sets:
            logger.warning(
                "'%s' doesn't contain a valid pokemon expression. We will just ignore this file.",
                filename,
            )
            return None
        if len(sets) > 1:
            logger.warning(
                "'%s' seems to have more than one pokemon expression. Subsequent ones are ignored.",
                filename,
            )
        return CreatureSet.model_validate(sets[0])
    except (OSError, UnicodeDecodeError, ValidationError, EngineError) as e:
        logger.warning("Failed to import '%s'. Is this a text of a target pokemon? (%s)", filename, e)
        return None


def validate_creature_sets(engine: Engine, rules: FormatRules, creatures: Sequence[CreatureSet]) -> None:
    """
    Validate every set against the format; stop at the first bad one.

    Raises:
        SetValidationError: For the first set with problems, after logging all of them.
    """
    for creature in creatures:
        problems = engine.validate_set(rules, creature)
        if problems:
            logger.error(
                "%d problem(s) is found about %s during the validation.",
                len(problems),
                creature.species,
            )
            for problem in problems:
                logger.error(problem)
            raise SetValidationError(creature.species, problems)


def team_combinations(
    creatures: Sequence[CreatureSet],
    size: int = TEAM_SIZE,
    limit: Optional[int] = None,
) -> List[Team]:
    """
    All `size`-member teams from a roster, in lexicographic index order.

    Args:
        creatures: The roster.
        size: Team size (3 unless told otherwise).
        limit: Keep only the first `limit` teams.

    Returns:
        C(len(creatures), size) teams (or fewer with `limit`).
    """
    teams = [tuple(team) for team in combinations(creatures, size)]
    if limit is not None:
        teams = teams[:limit]
    return teams


def team_label(team: Sequence[CreatureSet]) -> str:
    """'[Species1, Species2, Species3]' for logs and table headers."""
    return "[" + ", ".join(mon.species for mon in team) + "]"
