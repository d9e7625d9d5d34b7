from __future__ import annotations

from typing import Sequence


class VolumeControlError(Exception):
    """Base class for every error raised by nirvol."""


class ResourceMissing(VolumeControlError, FileNotFoundError):
    """The embedded tool binary could not be located."""


class InvalidArgument(VolumeControlError, ValueError):
    pass


class NotReady(VolumeControlError, RuntimeError):
    """The facade never finished initializing (terminal state)."""


class OutputUnparseable(VolumeControlError, ValueError):
    def __init__(self, line: str | None, expected: str) -> None:
        self.line = line
        self.expected = expected
        super().__init__(f"unparseable tool output {line!r} (expected {expected})")


class ToolExecutionFailed(VolumeControlError, RuntimeError):
    def __init__(self, exit_code: int | None, argv: Sequence[str], detail: str = "") -> None:
        self.exit_code = exit_code
        self.argv = list(argv)
        msg = f"tool exited with code {exit_code}: {' '.join(self.argv)}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class ToolTimedOut(ToolExecutionFailed):
    def __init__(self, argv: Sequence[str], timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(None, argv, detail=f"killed after {timeout_s:g}s")
