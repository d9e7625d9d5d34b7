from __future__ import annotations

"""Run the volume tool as a child process without deadlocking on its pipes.

The tool writes diagnostics to both stdout and stderr. Both pipes are drained
while we wait for exit; an unread pipe that fills up blocks the child forever.
"""

import subprocess
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import IO

from nirvol.errors import ToolExecutionFailed, ToolTimedOut
from nirvol.tool.commands import CommandRequest
from nirvol.util.events import EventLog


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    captured_line: str | None = None


def _drain(stream: IO[str], name: str, events: EventLog) -> int:
    """Read a pipe to EOF, logging each line at debug. Never raises."""
    n = 0
    try:
        for line in stream:
            n += 1
            events.debug("tool output", stream=name, line=line.rstrip("\r\n"))
    except (OSError, ValueError) as e:
        events.warning("error reading tool stream", stream=name, error=str(e))
    return n


def _read_first_line(stream: IO[str], events: EventLog) -> str | None:
    """Return the first stdout line and drain (log-only) the rest."""
    first: str | None = None
    try:
        raw = stream.readline()
        if raw:
            first = raw.rstrip("\r\n")
        _drain(stream, "stdout", events)
    except (OSError, ValueError) as e:
        events.warning("error reading tool stream", stream="stdout", error=str(e))
    return first


class ProcessExecutor:
    def __init__(self, events: EventLog, *, timeout_s: float | None = None) -> None:
        self.events = events
        self.timeout_s = timeout_s

    def run(self, request: CommandRequest) -> CommandResult:
        """Run one command, blocking until the child exits.

        Raises ToolExecutionFailed on a non-zero exit code, ToolTimedOut when the
        optional timeout expires, and OSError when the tool cannot be launched.
        """
        argv = list(request.argv)
        self.events.debug("executing", command=request.command_line)

        captured: str | None = None
        with subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        ) as proc, ThreadPoolExecutor(max_workers=2, thread_name_prefix="nirvol-drain") as pool:
            assert proc.stdout is not None and proc.stderr is not None
            drains: list[Future] = [pool.submit(_drain, proc.stderr, "stderr", self.events)]
            if request.capture_output:
                # Collected through a future so the optional timeout also covers a silent tool.
                first_line: Future[str | None] = pool.submit(_read_first_line, proc.stdout, self.events)
                drains.append(first_line)
            else:
                drains.append(pool.submit(_drain, proc.stdout, "stdout", self.events))
            try:
                exit_code = proc.wait(timeout=self.timeout_s)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
                self.events.error("tool timed out", command=request.command_line, timeout_s=self.timeout_s)
                raise ToolTimedOut(argv, float(self.timeout_s or 0)) from None
            except BaseException:
                # Interrupted while waiting: never leave a live child behind.
                proc.kill()
                proc.wait()
                raise
            finally:
                for f in drains:
                    f.result()
            if request.capture_output:
                captured = first_line.result()

        if exit_code != 0:
            self.events.warning("tool finished with non-zero exit code", exit_code=exit_code, command=request.command_line)
            raise ToolExecutionFailed(exit_code, argv)

        self.events.debug("tool finished", exit_code=exit_code)
        return CommandResult(exit_code=exit_code, captured_line=captured)
