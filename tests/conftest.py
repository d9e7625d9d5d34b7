from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

from nirvol.control import VolumeControl
from nirvol.util.config import VolumeConfig
from nirvol.util.events import MemorySink

# A cooperative stand-in for the real tool. It speaks the same argv protocol and
# keeps its volume/mute state in a JSON file so successive calls see each other.
FAKE_TOOL_BODY = r'''
import json
import os
import sys
import time

calls = os.environ.get("NIRVOL_FAKE_CALLS")
if calls:
    with open(calls, "a", encoding="utf-8") as f:
        f.write(json.dumps(sys.argv[1:]) + "\n")

flood = int(os.environ.get("NIRVOL_FAKE_FLOOD", "0"))
if flood:
    line = "x" * 99 + "\n"
    for _ in range(flood // 100):
        sys.stdout.write(line)
    sys.stdout.flush()
    for _ in range(flood // 100):
        sys.stderr.write(line)
    sys.stderr.flush()

time.sleep(float(os.environ.get("NIRVOL_FAKE_SLEEP", "0")))

sys.stderr.write("fake tool diagnostics\n")
code = int(os.environ.get("NIRVOL_FAKE_EXIT", "0"))
if code:
    sys.exit(code)

state_path = os.environ["NIRVOL_FAKE_STATE"]
try:
    with open(state_path, encoding="utf-8") as f:
        state = json.load(f)
except FileNotFoundError:
    state = {"volume": 0, "muted": 0}

cmd, device, *rest = sys.argv[1:]
state["device"] = device
reply = os.environ.get("NIRVOL_FAKE_REPLY")
if cmd == "setsysvolume":
    state["volume"] = max(0, min(65535, int(rest[0])))
elif cmd == "changesysvolume":
    state["volume"] = max(0, min(65535, state["volume"] + int(rest[0])))
elif cmd == "mutesysvolume":
    action = int(rest[0])
    state["muted"] = (1 - state["muted"]) if action == 2 else action
elif cmd == "getsysvolume":
    print(reply if reply is not None else state["volume"])
    print("trailing line that callers must ignore")
elif cmd == "getmutesysvolume":
    print(reply if reply is not None else state["muted"])
else:
    sys.stderr.write("unknown command\n")
    sys.exit(3)

with open(state_path, "w", encoding="utf-8") as f:
    json.dump(state, f)
'''


@dataclass
class FakeTool:
    resource: Path
    state_path: Path
    calls_path: Path
    extract_dir: Path

    def state(self) -> dict:
        return json.loads(self.state_path.read_text(encoding="utf-8"))

    def calls(self) -> list[list[str]]:
        if not self.calls_path.exists():
            return []
        return [json.loads(x) for x in self.calls_path.read_text(encoding="utf-8").splitlines() if x]

    def config(self, **kw) -> VolumeConfig:
        return VolumeConfig(temp_dir=str(self.extract_dir), **kw)


@pytest.fixture
def fake_tool(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeTool:
    if sys.platform == "win32":
        pytest.skip("fake tool relies on a shebang script")
    resource = tmp_path / "fake_nircmd"
    resource.write_text(f"#!{sys.executable}\n{FAKE_TOOL_BODY}", encoding="utf-8")
    ft = FakeTool(
        resource=resource,
        state_path=tmp_path / "state.json",
        calls_path=tmp_path / "calls.jsonl",
        extract_dir=tmp_path / "extract",
    )
    monkeypatch.setenv("NIRVOL_FAKE_STATE", str(ft.state_path))
    monkeypatch.setenv("NIRVOL_FAKE_CALLS", str(ft.calls_path))
    for var in ("NIRVOL_FAKE_EXIT", "NIRVOL_FAKE_FLOOD", "NIRVOL_FAKE_REPLY", "NIRVOL_FAKE_SLEEP", "NIRVOL_TOOL"):
        monkeypatch.delenv(var, raising=False)
    return ft


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def vc(fake_tool: FakeTool, sink: MemorySink):
    with VolumeControl.open(fake_tool.config(), resource=fake_tool.resource, sink=sink) as v:
        yield v
