"""Contracts for the external battle engine and decision search.

The engine (battle rules, turn resolution) and the search (minimax over the
engine's state) are black boxes. This module pins down what matchup-lab needs
from them, plus the data shapes that cross the boundary.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Protocol, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

SideId = Literal["p1", "p2"]
SIDES: Tuple[SideId, SideId] = ("p1", "p2")


class CreatureSet(BaseModel):
    """A single Pokémon set as produced by the team importer."""

    model_config = ConfigDict(frozen=True, extra="allow")

    species: str = Field(..., description="Species name, e.g., 'Rotom-Wash'")
    name: str = Field("", description="Nickname (defaults to species)")
    item: str = ""
    ability: str = ""
    moves: Tuple[str, ...] = ()
    nature: str = ""
    gender: str = ""
    evs: Optional[Dict[str, int]] = None
    ivs: Optional[Dict[str, int]] = None
    level: Optional[int] = None

    def to_engine(self) -> Dict[str, Any]:
        """Dict in the importer's own shape, for handing back to the engine."""
        data = self.model_dump(exclude_none=True)
        data["moves"] = list(self.moves)
        if not data.get("name"):
            data["name"] = self.species
        return data


Team = Tuple[CreatureSet, ...]


class DecisionNode(BaseModel):
    """One node of a minimax decision tree."""

    model_config = ConfigDict(extra="allow")

    type: Literal["max", "min"]
    action: Any = None
    value: Union[int, float]
    children: List["DecisionNode"] = Field(default_factory=list)

    def child_with_value(self, value: float) -> Optional["DecisionNode"]:
        """First child whose value equals `value` (the branch the parent picked)."""
        for child in self.children:
            if child.value == value:
                return child
        return None


DecisionNode.model_rebuild()


class Decision(BaseModel):
    """Result of one decision search: the root of the tree (and whatever else the search reports)."""

    model_config = ConfigDict(extra="allow")

    tree: DecisionNode


class HealthSnapshot(BaseModel):
    species: str
    hp: int
    maxhp: int

    def __str__(self) -> str:
        return f"{self.species}: {self.hp}/{self.maxhp}"


class FormatRules(BaseModel):
    """A named ruleset, customised once per run and shared read-only."""

    model_config = ConfigDict(frozen=True)

    name: str
    removed_rules: Tuple[str, ...] = ()
    forced_level: Optional[int] = None


class BattleSession(Protocol):
    """An in-progress battle between p1 and p2, owned by one trial."""

    def start(self) -> None: ...

    def make_request(self) -> None: ...

    def request(self, side: SideId) -> Dict[str, Any]: ...

    def is_waiting(self, side: SideId) -> bool: ...

    def legal_choices(self, side: SideId) -> List[Any]: ...

    def choose(self, side: SideId, action: Any) -> None: ...

    def snapshot(self) -> "BattleSession":
        """Deep copy: mutating the copy never touches this session and vice versa."""
        ...

    @property
    def ended(self) -> bool: ...

    @property
    def winner(self) -> Optional[str]:
        """Winning player name, or None while running or on a tie."""
        ...

    @property
    def turn(self) -> int: ...

    def side_health(self, side: SideId) -> List[HealthSnapshot]: ...

    def close(self) -> None: ...

    def __enter__(self) -> "BattleSession": ...

    def __exit__(self, *exc_info: Any) -> None: ...


class DecisionSearch(Protocol):
    def decide(self, snapshot: BattleSession, choices: Sequence[Any], depth: int) -> Decision: ...


class Engine(Protocol):
    """Factory for everything the external engine provides."""

    def get_format(self, rules: FormatRules) -> FormatRules: ...

    def import_team(self, text: str) -> Optional[List[Dict[str, Any]]]: ...

    def validate_set(self, rules: FormatRules, creature: CreatureSet) -> Optional[List[str]]: ...

    def new_battle(
        self,
        rules: FormatRules,
        p1: Tuple[str, Sequence[CreatureSet]],
        p2: Tuple[str, Sequence[CreatureSet]],
    ) -> BattleSession: ...

    def new_search(self, repetitions: int, weights: Dict[str, float]) -> DecisionSearch: ...

    def close(self) -> None: ...
