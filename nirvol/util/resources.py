from __future__ import annotations

import os
import shutil
import stat
import tempfile
import threading
import time
import weakref
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING

from nirvol.errors import ResourceMissing
from nirvol.util.events import EventLog

if TYPE_CHECKING:
    from importlib.resources.abc import Traversable

TOOL_RESOURCE_NAME = "nircmd.exe"
TOOL_RESOURCE_PACKAGE = "nirvol.data"
ENV_TOOL = "NIRVOL_TOOL"


def find_tool_resource(explicit: str | Path | None = None) -> Traversable:
    """Locate the bundled tool binary.

    Lookup order: explicit path, $NIRVOL_TOOL, then package data.
    """
    cand = explicit or os.environ.get(ENV_TOOL)
    if cand:
        p = Path(cand).expanduser()
        if not p.is_file():
            raise ResourceMissing(f"tool resource not found: {p}")
        return p

    try:
        data = resources.files(TOOL_RESOURCE_PACKAGE).joinpath(TOOL_RESOURCE_NAME)
    except ModuleNotFoundError as e:
        raise ResourceMissing(f"resource package missing: {TOOL_RESOURCE_PACKAGE}") from e
    if not data.is_file():
        raise ResourceMissing(f"cannot find '{TOOL_RESOURCE_NAME}' in {TOOL_RESOURCE_PACKAGE} package data")
    return data


@dataclass(frozen=True)
class ExtractedTool:
    path: str
    created_at: float


def _copy_to_temp(resource: Traversable, *, temp_dir: str | None) -> ExtractedTool:
    if temp_dir:
        Path(temp_dir).mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix="nircmd-", suffix=".exe", dir=temp_dir)
    try:
        with os.fdopen(fd, "wb") as out, resource.open("rb") as src:
            shutil.copyfileobj(src, out)
    except FileNotFoundError as e:
        Path(name).unlink(missing_ok=True)
        raise ResourceMissing(f"tool resource disappeared: {resource}") from e
    except BaseException:
        Path(name).unlink(missing_ok=True)
        raise

    mode = os.stat(name).st_mode
    os.chmod(name, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return ExtractedTool(path=str(Path(name).resolve()), created_at=time.time())


def _delete_extracted(path: str, events: EventLog) -> None:
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        events.error("failed to delete extracted tool", path=path, error=str(e))
        return
    events.info("deleted extracted tool", path=path)


class ToolExtractor:
    """Owns the single on-disk copy of the tool for the lifetime of its holder.

    The copy is removed exactly once: on release(), when the extractor is
    garbage collected, or at interpreter exit, whichever comes first.
    """

    def __init__(self, resource: Traversable, events: EventLog, *, temp_dir: str | None = None) -> None:
        self.resource = resource
        self.events = events
        self.temp_dir = temp_dir
        self._lock = threading.Lock()
        self._tool: ExtractedTool | None = None
        self._finalizer: weakref.finalize | None = None

    def extract(self) -> ExtractedTool:
        with self._lock:
            if self._finalizer is not None and not self._finalizer.alive:
                raise ResourceMissing("extracted tool was already released")
            if self._tool is not None:
                return self._tool
            self.events.debug("extracting tool", resource=str(self.resource))
            tool = _copy_to_temp(self.resource, temp_dir=self.temp_dir)
            # The callback must not reference self, or the extractor never becomes collectable.
            self._finalizer = weakref.finalize(self, _delete_extracted, tool.path, self.events)
            self._tool = tool
            self.events.info("tool extracted", path=tool.path)
            return tool

    @property
    def released(self) -> bool:
        return self._finalizer is not None and not self._finalizer.alive

    def release(self) -> None:
        with self._lock:
            if self._finalizer is not None:
                self._finalizer()


@dataclass
class _SharedTool:
    extractor: ToolExtractor
    holders: int = 0


# One live extractor per (resource, temp_dir), shared by every holder in the process.
_shared_lock = threading.Lock()
_shared: dict[tuple[str, str | None], _SharedTool] = {}


def _drop_holder(key: tuple[str, str | None]) -> None:
    with _shared_lock:
        entry = _shared.get(key)
        if entry is None:
            return
        entry.holders -= 1
        if entry.holders > 0:
            return
        del _shared[key]
    entry.extractor.release()


class ToolLease:
    """A holder's claim on the shared extracted tool.

    The file is deleted when the last lease is released or collected.
    """

    def __init__(self, key: tuple[str, str | None], tool: ExtractedTool) -> None:
        self.tool = tool
        self._finalizer = weakref.finalize(self, _drop_holder, key)

    @property
    def released(self) -> bool:
        return not self._finalizer.alive

    def release(self) -> None:
        self._finalizer()


def acquire_tool(resource: Traversable, events: EventLog, *, temp_dir: str | None = None) -> ToolLease:
    """Extract the tool on first use, or join the copy already on disk."""
    key = (str(resource), temp_dir)
    with _shared_lock:
        entry = _shared.get(key)
        if entry is None or entry.extractor.released:
            extractor = ToolExtractor(resource, events, temp_dir=temp_dir)
            tool = extractor.extract()
            entry = _shared[key] = _SharedTool(extractor)
        else:
            tool = entry.extractor.extract()
        entry.holders += 1
        if entry.holders > 1:
            events.debug("reusing extracted tool", path=tool.path, holders=entry.holders)
    return ToolLease(key, tool)
