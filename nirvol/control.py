from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from nirvol.errors import InvalidArgument, NotReady, OutputUnparseable, ResourceMissing, ToolExecutionFailed
from nirvol.tool import commands
from nirvol.tool.commands import CommandRequest
from nirvol.tool.executor import CommandResult, ProcessExecutor
from nirvol.tool.protocol import TargetDevice
from nirvol.util.config import VolumeConfig
from nirvol.util.events import EventLog, EventSink, FanoutSink, JsonlSink, LoggerSink
from nirvol.util.resources import ToolLease, acquire_tool, find_tool_resource

# Returned by get_volume() when the tool fails or its reply cannot be parsed.
VOLUME_UNKNOWN = -1


class Lifecycle(Enum):
    READY = "ready"
    FAILED = "failed"


@dataclass
class OpResult:
    """Outcome of a mutating operation. Tool failures land here instead of raising."""

    ok: bool
    operation: str
    argv: list[str] = field(default_factory=list)
    error: Exception | None = None

    def __bool__(self) -> bool:
        return self.ok


def _make_sink(cfg: VolumeConfig, sink: EventSink | None) -> EventSink:
    base = sink or LoggerSink()
    if cfg.events_log:
        return FanoutSink(base, JsonlSink(Path(cfg.events_log).expanduser()))
    return base


class VolumeControl:
    """Audio output control backed by the bundled volume tool.

    Build instances with create() or open(). The tool binary is extracted at
    construction and shared by every facade in the process; when extraction
    fails the instance is FAILED for good and every operation raises NotReady.
    After close() operations raise NotReady as well.

    Mutating operations raise InvalidArgument for bad input and report tool
    failures through the returned OpResult. Queries return VOLUME_UNKNOWN /
    None instead of raising when the tool fails.
    """

    def __init__(
        self,
        *,
        events: EventLog,
        lease: ToolLease | None,
        device: TargetDevice = TargetDevice.DEFAULT_RENDER,
        timeout_s: float | None = None,
        init_error: Exception | None = None,
    ) -> None:
        self.events = events
        self._lease = lease
        self._device = device
        self._executor = ProcessExecutor(events, timeout_s=timeout_s)
        self.init_error = init_error
        self.state = Lifecycle.READY if lease is not None else Lifecycle.FAILED

    @classmethod
    def create(
        cls,
        config: VolumeConfig | None = None,
        *,
        resource: str | Path | None = None,
        sink: EventSink | None = None,
    ) -> "VolumeControl":
        """Extract the tool and return a READY facade, or a FAILED one if that is impossible."""
        cfg = config or VolumeConfig()
        events = EventLog(_make_sink(cfg, sink), enabled=cfg.logging_enabled)
        try:
            device = TargetDevice.parse(cfg.device)
        except ValueError:
            events.warning("unknown device in config, using default", device=cfg.device)
            device = TargetDevice.DEFAULT_RENDER

        try:
            res = find_tool_resource(resource)
            lease = acquire_tool(res, events, temp_dir=cfg.temp_dir)
        except (ResourceMissing, OSError) as e:
            events.error("failed to extract volume tool; volume control will not work", error=str(e))
            err = e if isinstance(e, ResourceMissing) else ResourceMissing(f"could not extract tool: {e}")
            return cls(events=events, lease=None, device=device, init_error=err)

        return cls(events=events, lease=lease, device=device, timeout_s=cfg.timeout_s)

    @classmethod
    def open(
        cls,
        config: VolumeConfig | None = None,
        *,
        resource: str | Path | None = None,
        sink: EventSink | None = None,
    ) -> "VolumeControl":
        """Like create(), but raise ResourceMissing instead of returning a FAILED facade."""
        vc = cls.create(config, resource=resource, sink=sink)
        if vc.init_error is not None:
            raise vc.init_error
        return vc

    # lifecycle

    @property
    def closed(self) -> bool:
        return self._lease is not None and self._lease.released

    @property
    def ready(self) -> bool:
        return self.state is Lifecycle.READY and not self.closed

    @property
    def tool_path(self) -> str | None:
        return self._lease.tool.path if self._lease is not None else None

    def require_ready(self) -> str:
        if self._lease is None:
            raise NotReady("volume tool is not available; initialization failed") from self.init_error
        if self._lease.released:
            raise NotReady("volume control is closed")
        return self._lease.tool.path

    def close(self) -> None:
        """Give up this facade's hold on the tool. The file goes with the last holder."""
        if self._lease is not None:
            self._lease.release()

    def __enter__(self) -> "VolumeControl":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # configuration

    def set_target_device(self, device: TargetDevice | str) -> None:
        self.require_ready()
        if isinstance(device, TargetDevice):
            self._device = device
        elif isinstance(device, str):
            try:
                self._device = TargetDevice.parse(device)
            except ValueError as e:
                raise InvalidArgument(str(e)) from e
        else:
            raise InvalidArgument(f"device must be a TargetDevice, got {device!r}")
        self.events.info("target device set", device=self._device.token)

    def get_target_device(self) -> TargetDevice:
        self.require_ready()
        return self._device

    def enable_logging(self) -> None:
        self.events.enabled = True

    def disable_logging(self) -> None:
        self.events.enabled = False

    # mutating operations

    def set_volume(self, percentage: float) -> OpResult:
        tool = self.require_ready()
        req = commands.build_set_volume(tool, self._device, percentage)
        return self._mutate("set_volume", req, f"volume set to {percentage}%")

    def increase_volume(self, step: float) -> OpResult:
        tool = self.require_ready()
        req = commands.build_increase_volume(tool, self._device, step)
        return self._mutate("increase_volume", req, f"volume increased by {step}%")

    def decrease_volume(self, step: float) -> OpResult:
        tool = self.require_ready()
        req = commands.build_decrease_volume(tool, self._device, step)
        return self._mutate("decrease_volume", req, f"volume decreased by {step}%")

    def mute(self) -> OpResult:
        tool = self.require_ready()
        return self._mutate("mute", commands.build_mute(tool, self._device), "muted")

    def unmute(self) -> OpResult:
        tool = self.require_ready()
        return self._mutate("unmute", commands.build_unmute(tool, self._device), "unmuted")

    def toggle_mute(self) -> OpResult:
        tool = self.require_ready()
        return self._mutate("toggle_mute", commands.build_toggle_mute(tool, self._device), "mute toggled")

    # queries

    def get_volume(self) -> int:
        """Current volume as 0..100, or VOLUME_UNKNOWN if it could not be read."""
        tool = self.require_ready()
        req = commands.build_get_volume(tool, self._device)
        v = self._query("get_volume", req, commands.parse_volume_line)
        return VOLUME_UNKNOWN if v is None else int(v)

    def is_muted(self) -> bool | None:
        """True/False, or None when the mute state could not be read."""
        tool = self.require_ready()
        req = commands.build_get_mute(tool, self._device)
        return self._query("is_muted", req, commands.parse_mute_line)

    # internals

    def _run(self, req: CommandRequest) -> CommandResult:
        return self._executor.run(req)

    def _mutate(self, operation: str, req: CommandRequest, done_msg: str) -> OpResult:
        argv = list(req.argv)
        try:
            self._run(req)
        except (ToolExecutionFailed, OSError) as e:
            self.events.error(f"{operation} failed", error=str(e), device=self._device.token)
            return OpResult(ok=False, operation=operation, argv=argv, error=e)
        self.events.info(done_msg, device=self._device.token, command=req.command_line)
        return OpResult(ok=True, operation=operation, argv=argv)

    def _query(self, operation: str, req: CommandRequest, parse: Callable[[str | None], object]):
        try:
            res = self._run(req)
            value = parse(res.captured_line)
        except (ToolExecutionFailed, OutputUnparseable, OSError) as e:
            self.events.error(f"{operation} failed", error=str(e), device=self._device.token)
            return None
        self.events.debug(f"{operation} read", value=value, device=self._device.token)
        return value


__all__ = ["Lifecycle", "OpResult", "VOLUME_UNKNOWN", "VolumeControl"]
