from __future__ import annotations

import math
from dataclasses import dataclass

from nirvol.errors import InvalidArgument, OutputUnparseable
from nirvol.tool.protocol import (
    CHANGE_CMD,
    MUTE,
    MUTE_CMD,
    QUERY_CMD,
    QUERY_MUTE_CMD,
    SET_CMD,
    TOGGLE,
    TRUE_TOKEN,
    UNMUTE,
    TargetDevice,
    native_to_percentage,
    scaled_value,
)


@dataclass(frozen=True)
class CommandRequest:
    """One tool invocation: full argv (tool path first) and whether stdout is captured."""

    argv: tuple[str, ...]
    capture_output: bool = False

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)


def _number(v: object, what: str) -> float:
    # bool is an int subclass; reject it explicitly.
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise InvalidArgument(f"{what} must be a number, got {v!r}")
    f = float(v)
    if math.isnan(f) or math.isinf(f):
        raise InvalidArgument(f"{what} must be finite, got {v!r}")
    return f


def validate_percentage(p: object) -> float:
    f = _number(p, "percentage")
    if not (0.0 <= f <= 100.0):
        raise InvalidArgument(f"percentage must be between 0 and 100, got {p!r}")
    return f


def validate_step(s: object) -> float:
    f = _number(s, "step")
    if f < 0:
        raise InvalidArgument(f"step must be non-negative, got {s!r}")
    return f


def build_set_volume(tool: str, device: TargetDevice, percentage: object) -> CommandRequest:
    p = validate_percentage(percentage)
    return CommandRequest((tool, SET_CMD, device.token, str(scaled_value(p))))


def build_increase_volume(tool: str, device: TargetDevice, step: object) -> CommandRequest:
    s = validate_step(step)
    return CommandRequest((tool, CHANGE_CMD, device.token, f"+{scaled_value(s)}"))


def build_decrease_volume(tool: str, device: TargetDevice, step: object) -> CommandRequest:
    s = validate_step(step)
    return CommandRequest((tool, CHANGE_CMD, device.token, f"-{scaled_value(s)}"))


def build_mute(tool: str, device: TargetDevice) -> CommandRequest:
    return CommandRequest((tool, MUTE_CMD, device.token, str(MUTE)))


def build_unmute(tool: str, device: TargetDevice) -> CommandRequest:
    return CommandRequest((tool, MUTE_CMD, device.token, str(UNMUTE)))


def build_toggle_mute(tool: str, device: TargetDevice) -> CommandRequest:
    return CommandRequest((tool, MUTE_CMD, device.token, str(TOGGLE)))


def build_get_volume(tool: str, device: TargetDevice) -> CommandRequest:
    return CommandRequest((tool, QUERY_CMD, device.token), capture_output=True)


def build_get_mute(tool: str, device: TargetDevice) -> CommandRequest:
    return CommandRequest((tool, QUERY_MUTE_CMD, device.token), capture_output=True)


def parse_volume_line(line: str | None) -> int:
    """Parse the tool's native volume reply into a clamped 0..100 percentage."""
    if line is None or not line.strip():
        raise OutputUnparseable(line, "a native volume number")
    try:
        native = float(line.strip())
    except ValueError as e:
        raise OutputUnparseable(line, "a native volume number") from e
    if not math.isfinite(native):
        raise OutputUnparseable(line, "a native volume number")
    return native_to_percentage(native)


def parse_mute_line(line: str | None) -> bool:
    if line is None or not line.strip():
        raise OutputUnparseable(line, f"a mute token ({TRUE_TOKEN!r} means muted)")
    return line.strip().lower() == TRUE_TOKEN.lower()
