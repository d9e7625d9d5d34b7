from __future__ import annotations

from pathlib import Path

import pytest

from nirvol.control import VOLUME_UNKNOWN, Lifecycle, VolumeControl
from nirvol.errors import InvalidArgument, NotReady, ResourceMissing, ToolExecutionFailed, ToolTimedOut
from nirvol.tool.protocol import TargetDevice
from nirvol.util.config import VolumeConfig
from nirvol.util.events import MemorySink


def test_set_then_get_round_trips_every_percentage(vc: VolumeControl) -> None:
    for p in (0, 1, 7, 33, 50, 66, 99, 100):
        assert vc.set_volume(p).ok
        assert abs(vc.get_volume() - p) <= 1


def test_increase_and_decrease(vc: VolumeControl, fake_tool) -> None:
    vc.set_volume(50)
    assert vc.increase_volume(10).ok
    assert vc.get_volume() == 60
    assert vc.decrease_volume(25).ok
    assert vc.get_volume() == 35
    assert fake_tool.calls()[-2][0] == "changesysvolume"


@pytest.mark.parametrize("bad", [-1, 101])
def test_out_of_range_volume_fails_without_calling_the_tool(vc: VolumeControl, fake_tool, bad) -> None:
    with pytest.raises(InvalidArgument):
        vc.set_volume(bad)
    assert fake_tool.calls() == []


def test_negative_steps_fail(vc: VolumeControl, fake_tool) -> None:
    with pytest.raises(InvalidArgument):
        vc.increase_volume(-5)
    with pytest.raises(InvalidArgument):
        vc.decrease_volume(-5)
    assert fake_tool.calls() == []


def test_mute_is_idempotent(vc: VolumeControl) -> None:
    assert vc.mute().ok
    assert vc.mute().ok
    assert vc.is_muted() is True
    assert vc.unmute().ok
    assert vc.is_muted() is False


@pytest.mark.parametrize("start_muted", [True, False])
def test_toggle_twice_restores_state(vc: VolumeControl, start_muted: bool) -> None:
    (vc.mute if start_muted else vc.unmute)()
    assert vc.toggle_mute().ok
    assert vc.is_muted() is (not start_muted)
    assert vc.toggle_mute().ok
    assert vc.is_muted() is start_muted


def test_tool_failure_is_reported_not_raised(vc: VolumeControl, sink: MemorySink, monkeypatch) -> None:
    monkeypatch.setenv("NIRVOL_FAKE_EXIT", "2")

    for op in (
        lambda: vc.set_volume(10),
        vc.mute,
        vc.unmute,
        vc.toggle_mute,
        lambda: vc.increase_volume(5),
        lambda: vc.decrease_volume(5),
    ):
        res = op()
        assert not res.ok
        assert isinstance(res.error, ToolExecutionFailed)
        assert res.error.exit_code == 2

    assert vc.get_volume() == VOLUME_UNKNOWN
    assert vc.is_muted() is None
    assert "get_volume failed" in sink.messages("error")
    assert "is_muted failed" in sink.messages("error")

    # A failed call leaves the facade usable.
    monkeypatch.delenv("NIRVOL_FAKE_EXIT")
    assert vc.mute().ok
    assert vc.is_muted() is True


def test_unparseable_reply_yields_sentinels(vc: VolumeControl, monkeypatch) -> None:
    monkeypatch.setenv("NIRVOL_FAKE_REPLY", "not-a-number")
    assert vc.get_volume() == VOLUME_UNKNOWN
    monkeypatch.setenv("NIRVOL_FAKE_REPLY", "")
    assert vc.is_muted() is None


def test_flooding_tool_does_not_hang(fake_tool, sink: MemorySink, monkeypatch) -> None:
    monkeypatch.setenv("NIRVOL_FAKE_FLOOD", str(100 * 1024))
    cfg = fake_tool.config(timeout_s=60, logging_enabled=False)
    with VolumeControl.open(cfg, resource=fake_tool.resource, sink=sink) as vc:
        res = vc.set_volume(20)
        assert res.ok, res.error
    assert fake_tool.state()["volume"] == 13107


def test_timeout_is_reported_as_tool_failure(fake_tool, sink: MemorySink, monkeypatch) -> None:
    monkeypatch.setenv("NIRVOL_FAKE_SLEEP", "30")
    with VolumeControl.open(fake_tool.config(timeout_s=0.5), resource=fake_tool.resource, sink=sink) as vc:
        res = vc.mute()
        assert isinstance(res.error, ToolTimedOut)
        assert vc.get_volume() == VOLUME_UNKNOWN


def test_target_device_selection(vc: VolumeControl, fake_tool) -> None:
    assert vc.get_target_device() is TargetDevice.DEFAULT_RENDER
    vc.set_target_device(TargetDevice.HEADPHONES)
    vc.mute()
    assert fake_tool.state()["device"] == "Headphones"
    vc.set_target_device("speakers")
    assert vc.get_target_device() is TargetDevice.SPEAKERS
    with pytest.raises(InvalidArgument):
        vc.set_target_device("hdmi")
    with pytest.raises(InvalidArgument):
        vc.set_target_device(3)  # type: ignore[arg-type]
    assert vc.get_target_device() is TargetDevice.SPEAKERS


def test_device_from_config(fake_tool, sink: MemorySink) -> None:
    cfg = fake_tool.config(device="headphones")
    with VolumeControl.open(cfg, resource=fake_tool.resource, sink=sink) as vc:
        assert vc.get_target_device() is TargetDevice.HEADPHONES


def test_logging_toggle_gates_info_but_not_errors(vc: VolumeControl, sink: MemorySink, monkeypatch) -> None:
    vc.disable_logging()
    sink.events.clear()
    vc.set_volume(30)
    assert sink.events == []

    monkeypatch.setenv("NIRVOL_FAKE_EXIT", "2")
    vc.set_volume(30)
    assert "set_volume failed" in sink.messages("error")

    monkeypatch.delenv("NIRVOL_FAKE_EXIT")
    vc.enable_logging()
    vc.set_volume(30)
    assert "volume set to 30%" in sink.messages("info")


def test_missing_resource_gives_failed_facade(tmp_path: Path) -> None:
    sink = MemorySink()
    vc = VolumeControl.create(VolumeConfig(temp_dir=str(tmp_path)), resource=tmp_path / "missing.exe", sink=sink)
    assert vc.state is Lifecycle.FAILED
    assert not vc.ready
    assert isinstance(vc.init_error, ResourceMissing)
    assert sink.messages("error")

    for op in (
        lambda: vc.set_volume(10),
        vc.mute,
        vc.toggle_mute,
        vc.get_volume,
        vc.is_muted,
        vc.get_target_device,
        lambda: vc.set_target_device(TargetDevice.SPEAKERS),
    ):
        with pytest.raises(NotReady):
            op()
    vc.close()


def test_open_raises_resource_missing(tmp_path: Path) -> None:
    with pytest.raises(ResourceMissing):
        VolumeControl.open(resource=tmp_path / "missing.exe", sink=MemorySink())


def test_close_removes_extracted_tool(fake_tool, sink: MemorySink) -> None:
    vc = VolumeControl.open(fake_tool.config(), resource=fake_tool.resource, sink=sink)
    p = Path(vc.tool_path or "")
    assert p.exists()
    vc.close()
    vc.close()
    assert not p.exists()


def test_events_log_config_writes_jsonl(fake_tool, sink: MemorySink, tmp_path: Path) -> None:
    log = tmp_path / "events.jsonl"
    with VolumeControl.open(fake_tool.config(events_log=str(log)), resource=fake_tool.resource, sink=sink) as vc:
        vc.mute()
    lines = log.read_text(encoding="utf-8").splitlines()
    assert any('"message": "muted"' in x for x in lines)
    assert "muted" in sink.messages("info")


def test_facades_share_one_extracted_file(fake_tool, sink: MemorySink) -> None:
    a = VolumeControl.open(fake_tool.config(), resource=fake_tool.resource, sink=sink)
    b = VolumeControl.open(fake_tool.config(), resource=fake_tool.resource, sink=sink)
    live = list(fake_tool.extract_dir.iterdir())
    assert len(live) == 1
    assert a.tool_path == b.tool_path
    assert Path(a.tool_path or "").name == live[0].name

    a.close()
    assert live[0].exists()
    assert b.mute().ok

    b.close()
    assert list(fake_tool.extract_dir.iterdir()) == []


def test_closed_facade_raises_not_ready(fake_tool, sink: MemorySink) -> None:
    vc = VolumeControl.open(fake_tool.config(), resource=fake_tool.resource, sink=sink)
    assert vc.ready and not vc.closed
    vc.close()
    assert vc.closed
    assert not vc.ready
    for op in (vc.mute, vc.get_volume, lambda: vc.set_volume(10)):
        with pytest.raises(NotReady):
            op()
    assert fake_tool.calls() == []
