from __future__ import annotations

"""Fixed vocabulary of the wrapped volume tool.

The command names, device tokens and the native volume range are the tool's
own protocol. None of these are user-configurable.
"""

from enum import Enum

SET_CMD = "setsysvolume"
CHANGE_CMD = "changesysvolume"
MUTE_CMD = "mutesysvolume"
QUERY_CMD = "getsysvolume"
QUERY_MUTE_CMD = "getmutesysvolume"

# Native full-scale volume. Verify against the shipped binary when upgrading it.
MAX_NATIVE_VOLUME = 65535

TRUE_TOKEN = "1"

UNMUTE = 0
MUTE = 1
TOGGLE = 2


class TargetDevice(Enum):
    DEFAULT_RENDER = "default_render"
    SPEAKERS = "Speakers"
    HEADPHONES = "Headphones"

    @property
    def token(self) -> str:
        return self.value

    @staticmethod
    def parse(s: str) -> "TargetDevice":
        """Resolve a member name or protocol token, case-insensitively."""
        key = str(s).strip().lower().replace("-", "_")
        for d in TargetDevice:
            if key in {d.name.lower(), d.value.lower()}:
                return d
        # convenience aliases
        if key in {"default", "render"}:
            return TargetDevice.DEFAULT_RENDER
        raise ValueError(f"unknown target device: {s!r}")


def scaled_value(percentage: float) -> int:
    """Convert a 0..100 percentage into the tool's native volume unit."""
    return int(round((float(percentage) / 100.0) * MAX_NATIVE_VOLUME))


def native_to_percentage(native: float) -> int:
    pct = int(round((float(native) / MAX_NATIVE_VOLUME) * 100.0))
    return max(0, min(100, pct))
