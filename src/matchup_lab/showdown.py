"""Showdown bridge: drives the percymon battle engine and minimax search through Node.

A single `node js/percymon_bridge.js` process holds every battle, snapshot and
search object. Python talks to it with newline-delimited JSON:

    -> {"id": 7, "cmd": "choose", "battleId": 3, "side": "p1", "action": {...}}
    <- {"id": 7, "ok": true, "result": {...battle state...}}
    <- {"id": 7, "ok": false, "error": "message"}

Battles are referenced by the integer id the bridge hands out.
"""

from __future__ import annotations

import copy
import json
import logging
import subprocess
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .config import BRIDGE_SCRIPT, PROJECT_ROOT, SimulationConfig
from .engine import (
    BattleSession,
    CreatureSet,
    Decision,
    FormatRules,
    HealthSnapshot,
    SideId,
)
from .errors import EngineError

logger = logging.getLogger(__name__)


# ============================================================================
# Process bridge
# ============================================================================


class ShowdownBridge:
    """Owns the Node process and the request/response bookkeeping."""

    def __init__(
        self,
        script: Path = BRIDGE_SCRIPT,
        *,
        node: str = "node",
        cwd: Path = PROJECT_ROOT,
    ) -> None:
        self.script = script
        self.node = node
        self.cwd = cwd
        self._proc: Optional[subprocess.Popen] = None
        self._next_id = 0

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self) -> "ShowdownBridge":
        """
        Launch the Node bridge.

        Raises:
            FileNotFoundError: If the bridge script doesn't exist.
            EngineError: If `node` is not installed.
        """
        if self._proc is not None:
            return self
        if not self.script.exists():
            raise FileNotFoundError(f"Bridge script not found at {self.script}")

        cmd = [self.node, str(self.script)]
        logger.debug("launching engine bridge: %s", " ".join(cmd))
        try:
            self._proc = subprocess.Popen(
                cmd,
                cwd=str(self.cwd),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,  # line buffered
            )
        except FileNotFoundError as e:
            raise EngineError(
                "Node.js not found. Please install Node.js 16+ from https://nodejs.org/"
            ) from e

        _spawn_stderr_drain_thread(self._proc)
        return self

    def call(self, cmd: str, **payload: Any) -> Any:
        """
        Send one command and wait for its reply.

        Returns:
            The reply's `result` field.

        Raises:
            EngineError: If the bridge is down, exits, or reports an error.
        """
        if self._proc is None:
            self.start()
        proc = self._proc
        assert proc is not None
        if proc.stdin is None or proc.stdout is None:
            raise EngineError("Engine bridge started without proper pipes")

        self._next_id += 1
        request_id = self._next_id
        message = {"id": request_id, "cmd": cmd, **payload}

        try:
            proc.stdin.write(json.dumps(message) + "\n")
            proc.stdin.flush()
        except (BrokenPipeError, OSError) as e:
            raise EngineError(f"Engine bridge is not accepting commands ({cmd}): {e}") from e

        while True:
            raw_line = proc.stdout.readline()
            if not raw_line:
                raise EngineError(
                    f"Engine bridge exited while waiting for {cmd!r} "
                    f"(returncode={proc.poll()})"
                )

            line = raw_line.strip()
            if not line:
                continue

            try:
                reply = json.loads(line)
            except json.JSONDecodeError:
                # engine chatter (console.log inside the search) is not ours
                logger.debug("[node-stdout] %s", line)
                continue

            if not isinstance(reply, dict) or reply.get("id") != request_id:
                logger.debug("ignoring bridge message: %s", line)
                continue

            if not reply.get("ok", False):
                raise EngineError(f"Engine command {cmd!r} failed: {reply.get('error', 'unknown error')}")
            return reply.get("result")

    def close(self) -> None:
        """Stop the Node process; safe to call more than once."""
        proc = self._proc
        self._proc = None
        if proc is None:
            return
        try:
            if proc.stdin is not None:
                proc.stdin.close()
        except OSError:
            pass
        if proc.poll() is None:
            try:
                proc.terminate()
                proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
        if proc.stdout is not None:
            proc.stdout.close()

    def __enter__(self) -> "ShowdownBridge":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _spawn_stderr_drain_thread(proc: subprocess.Popen) -> None:
    """Continuously mirror Node's stderr lines into the log.

    This runs in a daemon thread so it won't block process shutdown.
    """
    if proc.stderr is None:
        return

    def _drain() -> None:
        for line in proc.stderr:
            logger.debug("[node-stderr] %s", line.rstrip())

    thread = threading.Thread(target=_drain, daemon=True)
    thread.start()


def _reply_id(result: Any, key: str, cmd: str) -> int:
    """Integer handle (battleId, searchId) out of a bridge reply."""
    try:
        return int(result[key])
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise EngineError(f"Engine bridge reply to {cmd!r} has no usable {key}: {result!r}") from e


# ============================================================================
# Engine adapters
# ============================================================================


class ShowdownBattle:
    """BattleSession backed by a PcmBattle living inside the bridge."""

    def __init__(self, bridge: ShowdownBridge, battle_id: int, state: Optional[Dict[str, Any]] = None):
        self._bridge = bridge
        self.battle_id = battle_id
        self._state: Dict[str, Any] = state or {}
        self._closed = False

    def _update(self, state: Any) -> None:
        if not isinstance(state, dict):
            raise EngineError(f"Expected battle state object from bridge, got {type(state).__name__}")
        self._state = state

    def start(self) -> None:
        self._update(self._bridge.call("start", battleId=self.battle_id))

    def make_request(self) -> None:
        self._update(self._bridge.call("makeRequest", battleId=self.battle_id))

    def request(self, side: SideId) -> Dict[str, Any]:
        return (self._state.get("requests") or {}).get(side) or {}

    def is_waiting(self, side: SideId) -> bool:
        return bool(self.request(side).get("wait"))

    def legal_choices(self, side: SideId) -> List[Any]:
        choices = self._bridge.call("choices", battleId=self.battle_id, side=side)
        return list(choices or [])

    def choose(self, side: SideId, action: Any) -> None:
        self._update(
            self._bridge.call("choose", battleId=self.battle_id, side=side, action=action)
        )

    def snapshot(self) -> "ShowdownBattle":
        result = self._bridge.call("clone", battleId=self.battle_id)
        return ShowdownBattle(self._bridge, _reply_id(result, "battleId", "clone"), copy.deepcopy(self._state))

    @property
    def ended(self) -> bool:
        return bool(self._state.get("ended"))

    @property
    def winner(self) -> Optional[str]:
        return self._state.get("winner") or None

    @property
    def turn(self) -> int:
        return int(self._state.get("turn") or 0)

    def side_health(self, side: SideId) -> List[HealthSnapshot]:
        health = self._state.get("health") or {}
        try:
            return [HealthSnapshot.model_validate(mon) for mon in health.get(side) or []]
        except (ValidationError, TypeError, AttributeError) as e:
            raise EngineError(f"Malformed {side} health in battle state: {health!r}") from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._bridge.running:
            self._bridge.call("dispose", battleId=self.battle_id)

    def __enter__(self) -> "ShowdownBattle":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class ShowdownMinimax:
    """DecisionSearch backed by percymon's Minimax."""

    def __init__(self, bridge: ShowdownBridge, search_id: int):
        self._bridge = bridge
        self.search_id = search_id

    def decide(self, snapshot: BattleSession, choices: Sequence[Any], depth: int) -> Decision:
        if not isinstance(snapshot, ShowdownBattle):
            raise TypeError(f"Expected a ShowdownBattle snapshot, got {type(snapshot).__name__}")
        result = self._bridge.call(
            "decide",
            searchId=self.search_id,
            battleId=snapshot.battle_id,
            choices=list(choices),
            depth=depth,
        )
        try:
            return Decision.model_validate(result)
        except ValidationError as e:
            raise EngineError(f"Malformed decision from engine bridge: {e}") from e


class ShowdownEngine:
    """Engine implementation on top of one ShowdownBridge."""

    def __init__(self, bridge: Optional[ShowdownBridge] = None):
        self._bridge = bridge or ShowdownBridge()

    def get_format(self, rules: FormatRules) -> FormatRules:
        result = self._bridge.call(
            "format",
            name=rules.name,
            removeRules=list(rules.removed_rules),
            forcedLevel=rules.forced_level,
        )
        logger.debug("format ready: %s", result)
        return rules

    def import_team(self, text: str) -> Optional[List[Dict[str, Any]]]:
        return self._bridge.call("importTeam", text=text)

    def validate_set(self, rules: FormatRules, creature: CreatureSet) -> Optional[List[str]]:
        problems = self._bridge.call("validateSet", format=rules.name, set=creature.to_engine())
        return list(problems) if problems else None

    def new_battle(
        self,
        rules: FormatRules,
        p1: Tuple[str, Sequence[CreatureSet]],
        p2: Tuple[str, Sequence[CreatureSet]],
    ) -> ShowdownBattle:
        result = self._bridge.call(
            "newBattle",
            format=rules.name,
            p1={"name": p1[0], "team": [mon.to_engine() for mon in p1[1]]},
            p2={"name": p2[0], "team": [mon.to_engine() for mon in p2[1]]},
        )
        battle = ShowdownBattle(self._bridge, _reply_id(result, "battleId", "newBattle"))
        state = result.get("state")
        if state is not None:
            battle._update(state)
        return battle

    def new_search(self, repetitions: int, weights: Dict[str, float]) -> ShowdownMinimax:
        result = self._bridge.call("newSearch", repetitions=repetitions, weights=dict(weights))
        return ShowdownMinimax(self._bridge, _reply_id(result, "searchId", "newSearch"))

    def close(self) -> None:
        self._bridge.close()

    def __enter__(self) -> "ShowdownEngine":
        self._bridge.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def open_engine(config: SimulationConfig) -> ShowdownEngine:
    """Engine for one run (or one worker process)."""
    return ShowdownEngine(ShowdownBridge(config.bridge_script))
