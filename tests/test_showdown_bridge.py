"""Tests for the Node bridge protocol, with the Node process mocked out."""

import io
import json
from unittest.mock import patch

import pytest

from matchup_lab.engine import CreatureSet, FormatRules
from matchup_lab.errors import EngineError, MatchupLabError
from matchup_lab.showdown import ShowdownBattle, ShowdownBridge, ShowdownEngine

RULES = FormatRules(name="gen8customgame", removed_rules=("Team Preview",), forced_level=50)

STATE = {
    "ended": False,
    "winner": None,
    "turn": 1,
    "requests": {"p1": {"active": [{}]}, "p2": {"wait": True}},
    "health": {
        "p1": [{"species": "Dragapult", "hp": 120, "maxhp": 163}],
        "p2": [{"species": "Toxapex", "hp": 111, "maxhp": 111}],
    },
}


class _Stdin:
    def __init__(self, proc):
        self.proc = proc
        self.closed = False

    def write(self, data):
        for line in data.splitlines():
            message = json.loads(line)
            self.proc.sent.append(message)
            self.proc.stdout_lines.extend(self.proc.respond(message))

    def flush(self):
        pass

    def close(self):
        self.closed = True


class _Stdout:
    def __init__(self, proc):
        self.proc = proc

    def readline(self):
        if not self.proc.stdout_lines:
            return ""
        return self.proc.stdout_lines.pop(0)

    def close(self):
        pass


class FakeProcess:
    """Stands in for the Node process; `respond(message)` returns raw stdout lines."""

    def __init__(self, respond):
        self.respond = respond
        self.sent = []
        self.stdout_lines = []
        self.stdin = _Stdin(self)
        self.stdout = _Stdout(self)
        self.stderr = io.StringIO("")
        self.returncode = None

    def poll(self):
        return self.returncode

    def terminate(self):
        self.returncode = -15

    def kill(self):
        self.returncode = -9

    def wait(self, timeout=None):
        return self.returncode


def ok(message, result):
    return [json.dumps({"id": message["id"], "ok": True, "result": result}) + "\n"]


def engine_responder(message):
    cmd = message["cmd"]
    if cmd == "format":
        return ok(message, {"name": message["name"]})
    if cmd == "newBattle":
        return ok(message, {"battleId": 1, "state": STATE})
    if cmd in ("start", "makeRequest", "choose"):
        return ok(message, STATE)
    if cmd == "choices":
        return ok(message, [{"type": "move", "id": "dracometeor"}])
    if cmd == "clone":
        return ok(message, {"battleId": 2})
    if cmd == "newSearch":
        return ok(message, {"searchId": 5})
    if cmd == "decide":
        return ok(message, {"tree": {"type": "max", "action": message["choices"][0], "value": 3, "children": []}})
    if cmd == "dispose":
        return ok(message, None)
    raise AssertionError(f"unexpected command {cmd}")


@pytest.fixture
def bridge_script(tmp_path):
    script = tmp_path / "bridge.js"
    script.write_text("// bridge\n", encoding="utf-8")
    return script


def _bridge(bridge_script, respond):
    proc = FakeProcess(respond)
    with patch("matchup_lab.showdown.subprocess.Popen", return_value=proc) as popen:
        bridge = ShowdownBridge(bridge_script).start()
    return bridge, proc, popen


def test_call_returns_result_and_skips_noise(bridge_script):
    def respond(message):
        return [
            "percymon says hi\n",
            "\n",
            json.dumps({"id": message["id"] + 100, "ok": True, "result": "stale"}) + "\n",
            *ok(message, {"answer": 42}),
        ]

    bridge, proc, popen = _bridge(bridge_script, respond)

    assert bridge.call("ping", x=1) == {"answer": 42}
    assert proc.sent == [{"id": 1, "cmd": "ping", "x": 1}]
    assert popen.call_args[0][0] == ["node", str(bridge_script)]


def test_call_ids_increase(bridge_script):
    bridge, proc, _ = _bridge(bridge_script, lambda m: ok(m, None))
    bridge.call("a")
    bridge.call("b")
    assert [m["id"] for m in proc.sent] == [1, 2]


def test_call_error_reply_raises(bridge_script):
    bridge, _, _ = _bridge(
        bridge_script,
        lambda m: [json.dumps({"id": m["id"], "ok": False, "error": "no such battle"}) + "\n"],
    )
    with pytest.raises(EngineError, match="no such battle"):
        bridge.call("choose")


def test_call_eof_raises(bridge_script):
    bridge, _, _ = _bridge(bridge_script, lambda m: [])
    with pytest.raises(EngineError, match="exited"):
        bridge.call("format")


def test_start_missing_script(tmp_path):
    with pytest.raises(FileNotFoundError):
        ShowdownBridge(tmp_path / "missing.js").start()


def test_start_without_node(bridge_script):
    with patch("matchup_lab.showdown.subprocess.Popen", side_effect=FileNotFoundError("node")):
        with pytest.raises(EngineError, match="Node.js not found"):
            ShowdownBridge(bridge_script).start()


def test_close_terminates_process(bridge_script):
    bridge, proc, _ = _bridge(bridge_script, lambda m: ok(m, None))
    bridge.close()
    bridge.close()
    assert proc.stdin.closed
    assert proc.returncode is not None
    assert not bridge.running


def test_engine_battle_round_trip(bridge_script):
    bridge, proc, _ = _bridge(bridge_script, engine_responder)
    engine = ShowdownEngine(bridge)

    assert engine.get_format(RULES) == RULES
    team = [CreatureSet(species="Dragapult", moves=("Draco Meteor",))]
    battle = engine.new_battle(RULES, ("botPlayer", team), ("humanPlayer", team))

    assert isinstance(battle, ShowdownBattle)
    assert battle.battle_id == 1
    assert battle.is_waiting("p2") and not battle.is_waiting("p1")
    assert str(battle.side_health("p1")[0]) == "Dragapult: 120/163"
    assert battle.turn == 1 and not battle.ended and battle.winner is None

    new_battle = proc.sent[-1]
    assert new_battle["p1"] == {
        "name": "botPlayer",
        "team": [{"species": "Dragapult", "name": "Dragapult", "item": "", "ability": "",
                  "moves": ["Draco Meteor"], "nature": "", "gender": ""}],
    }

    search = engine.new_search(1, {"p1_hp": 1024, "p2_hp": -1024})
    choices = battle.legal_choices("p1")
    with battle.snapshot() as snapshot:
        assert snapshot.battle_id == 2
        assert snapshot.is_waiting("p2")
        decision = search.decide(snapshot, choices, 1)

    assert decision.tree.value == 3
    assert decision.tree.action == {"type": "move", "id": "dracometeor"}
    decide = next(m for m in proc.sent if m["cmd"] == "decide")
    assert (decide["searchId"], decide["battleId"], decide["depth"]) == (5, 2, 1)
    assert proc.sent[-1] == {"id": proc.sent[-1]["id"], "cmd": "dispose", "battleId": 2}

    battle.choose("p1", choices[0])
    battle.close()
    battle.close()
    assert [m["cmd"] for m in proc.sent].count("dispose") == 2


def test_format_request_payload(bridge_script):
    bridge, proc, _ = _bridge(bridge_script, engine_responder)
    ShowdownEngine(bridge).get_format(RULES)
    assert proc.sent[0] == {
        "id": 1,
        "cmd": "format",
        "name": "gen8customgame",
        "removeRules": ["Team Preview"],
        "forcedLevel": 50,
    }


def test_decide_rejects_foreign_snapshot(bridge_script):
    bridge, _, _ = _bridge(bridge_script, engine_responder)
    search = ShowdownEngine(bridge).new_search(1, {})
    with pytest.raises(TypeError):
        search.decide(object(), [], 1)


def _engine_with(bridge_script, overrides):
    def respond(message):
        if message["cmd"] in overrides:
            return ok(message, overrides[message["cmd"]])
        return engine_responder(message)

    bridge, _, _ = _bridge(bridge_script, respond)
    return ShowdownEngine(bridge)


def test_decide_with_null_value_raises_engine_error(bridge_script):
    engine = _engine_with(
        bridge_script,
        {"decide": {"tree": {"type": "max", "action": "x", "value": None, "children": []}}},
    )
    battle = engine.new_battle(RULES, ("botPlayer", []), ("humanPlayer", []))
    search = engine.new_search(1, {})

    with pytest.raises(MatchupLabError, match="Malformed decision"):
        search.decide(battle.snapshot(), ["x"], 1)


@pytest.mark.parametrize("cmd", ["newBattle", "newSearch"])
def test_reply_without_id_raises_engine_error(bridge_script, cmd):
    engine = _engine_with(bridge_script, {cmd: {"state": STATE}})

    with pytest.raises(EngineError, match="no usable"):
        if cmd == "newBattle":
            engine.new_battle(RULES, ("botPlayer", []), ("humanPlayer", []))
        else:
            engine.new_search(1, {})


def test_snapshot_reply_without_id_raises_engine_error(bridge_script):
    engine = _engine_with(bridge_script, {"clone": None})
    battle = engine.new_battle(RULES, ("botPlayer", []), ("humanPlayer", []))

    with pytest.raises(EngineError):
        battle.snapshot()


@pytest.mark.parametrize("health", [{"p1": [{"species": "Dragapult"}]}, {"p1": [7]}, ["p1"]])
def test_malformed_health_raises_engine_error(bridge_script, health):
    engine = _engine_with(bridge_script, {"newBattle": {"battleId": 1, "state": {**STATE, "health": health}}})
    battle = engine.new_battle(RULES, ("botPlayer", []), ("humanPlayer", []))

    with pytest.raises(EngineError, match="Malformed p1 health"):
        battle.side_health("p1")


def test_non_object_battle_state_raises_engine_error(bridge_script):
    engine = _engine_with(bridge_script, {"newBattle": {"battleId": 1, "state": "ready"}})

    with pytest.raises(EngineError, match="battle state"):
        engine.new_battle(RULES, ("botPlayer", []), ("humanPlayer", []))
