"""nirvol: control the system audio output through the bundled volume tool."""

from __future__ import annotations

from nirvol.control import VOLUME_UNKNOWN, Lifecycle, OpResult, VolumeControl
from nirvol.errors import (
    InvalidArgument,
    NotReady,
    OutputUnparseable,
    ResourceMissing,
    ToolExecutionFailed,
    ToolTimedOut,
    VolumeControlError,
)
from nirvol.tool.protocol import TargetDevice
from nirvol.util.config import VolumeConfig

__all__ = [
    "InvalidArgument",
    "Lifecycle",
    "NotReady",
    "OpResult",
    "OutputUnparseable",
    "ResourceMissing",
    "TargetDevice",
    "ToolExecutionFailed",
    "ToolTimedOut",
    "VOLUME_UNKNOWN",
    "VolumeConfig",
    "VolumeControl",
    "VolumeControlError",
]
