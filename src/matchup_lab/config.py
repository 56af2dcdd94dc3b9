"""Configuration and path management for matchup-lab."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Final, List, Optional

import yaml

# Project root: the directory containing pyproject.toml
PROJECT_ROOT: Final[Path] = Path(__file__).parent.parent.parent.resolve()

# Node bridge wrapping the percymon battle engine and minimax search
BRIDGE_SCRIPT: Final[Path] = PROJECT_ROOT / "js" / "percymon_bridge.js"

# Format (gen 8 custom game with Team Preview removed and a forced level)
DEFAULT_FORMAT: Final[str] = "gen8customgame"
DEFAULT_REMOVED_RULES: Final[tuple[str, ...]] = ("Team Preview",)
DEFAULT_FORCED_LEVEL: Final[int] = 50

# Side names as the engine sees them
P1_NAME: Final[str] = "botPlayer"
P2_NAME: Final[str] = "humanPlayer"

# A battle that has not ended after this many steps is a bug somewhere
DEFAULT_STEP_LIMIT: Final[int] = 20

DEFAULT_WEIGHTS: Final[Dict[str, float]] = {
    "p1_hp": 1024,
    "p2_hp": -1024,
}

ALGORITHMS: Final[tuple[str, ...]] = ("minimax", "greedy", "random")

# Data directories (names kept compatible with existing rosters)
TEAM_POKEMON_DIR: Final[Path] = PROJECT_ROOT / "Team Pokemons"
TARGET_POKEMON_DIR: Final[Path] = PROJECT_ROOT / "Target Pokemons"
DECISION_LOGS_DIR: Final[Path] = PROJECT_ROOT / "Decision Logs"
OUTPUTS_DIR: Final[Path] = PROJECT_ROOT / "Outputs"
LOGS_DIR: Final[Path] = PROJECT_ROOT / "logs"


@dataclass(frozen=True)
class SimulationConfig:
    """
    Everything a run needs, built once at startup and passed down explicitly.

    CLI flags override values from an optional YAML file, which override the
    defaults below.
    """

    algorithm: str = "minimax"
    depth: int = 1
    repetitions: int = 10
    search_repetitions: int = 1
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    format_name: str = DEFAULT_FORMAT
    removed_rules: List[str] = field(default_factory=lambda: list(DEFAULT_REMOVED_RULES))
    forced_level: int = DEFAULT_FORCED_LEVEL
    step_limit: int = DEFAULT_STEP_LIMIT
    team_limit: Optional[int] = None
    team_dir: Path = TEAM_POKEMON_DIR
    target_dir: Path = TARGET_POKEMON_DIR
    decision_log_dir: Path = DECISION_LOGS_DIR
    output_dir: Path = OUTPUTS_DIR
    log_dir: Path = LOGS_DIR
    nolog: bool = False
    onlyinfo: bool = False
    use_child_process: bool = False
    workers: Optional[int] = None
    bridge_script: Path = BRIDGE_SCRIPT

    def validate(self) -> "SimulationConfig":
        """
        Check value ranges; return self so calls can be chained.

        Raises:
            ValueError: On an unknown algorithm or a non-positive count.
        """
        if self.algorithm not in ALGORITHMS:
            raise ValueError(
                f"Unknown algorithm {self.algorithm!r}; expected one of {', '.join(ALGORITHMS)}"
            )
        if self.algorithm != "minimax":
            # The driver reads the opponent's reply out of a two-ply minimax tree.
            raise ValueError(
                f"Algorithm {self.algorithm!r} cannot drive simulations; use 'minimax'"
            )
        for name in ("depth", "repetitions", "search_repetitions", "step_limit"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.team_limit is not None and self.team_limit < 1:
            raise ValueError(f"team_limit must be >= 1, got {self.team_limit}")
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        return self

    def with_overrides(self, **overrides: Any) -> "SimulationConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **_coerce(changes))

    @classmethod
    def from_yaml(cls, path: Path) -> "SimulationConfig":
        """
        Load a config from a YAML mapping of field names to values.

        Args:
            path: Path to the YAML file.

        Returns:
            SimulationConfig with the file's values over the defaults.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValueError: If the YAML root is not a mapping or has unknown keys.
        """
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected YAML root to be a mapping, got {type(data)}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys in {path}: {', '.join(unknown)}")

        return cls(**_coerce(data))


_PATH_FIELDS = ("team_dir", "target_dir", "decision_log_dir", "output_dir", "log_dir", "bridge_script")


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    """Turn string paths into PROJECT_ROOT-relative Paths."""
    out = dict(values)
    for name in _PATH_FIELDS:
        if name in out and out[name] is not None:
            path = Path(out[name])
            out[name] = path if path.is_absolute() else PROJECT_ROOT / path
    if "removed_rules" in out:
        out["removed_rules"] = list(out["removed_rules"])
    if "weights" in out:
        out["weights"] = dict(out["weights"])
    return out


def ensure_paths(config: SimulationConfig) -> None:
    """
    Create the output directories (Decision Logs, Outputs, logs) if they don't exist.

    This should be called at the start of pipelines that write data.
    """
    config.decision_log_dir.mkdir(parents=True, exist_ok=True)
    config.output_dir.mkdir(parents=True, exist_ok=True)
    if not config.nolog:
        config.log_dir.mkdir(parents=True, exist_ok=True)
