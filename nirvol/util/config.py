from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

YAML_SUFFIXES = {".yaml", ".yml"}
_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def default_config_dir() -> Path:
    return Path.home() / ".config" / "nirvol"


def default_config_path() -> Path:
    return default_config_dir() / "config.json"


@dataclass
class VolumeConfig:
    device: str = "default_render"
    logging_enabled: bool = True
    timeout_s: float | None = None  # None: wait for the tool indefinitely
    temp_dir: str | None = None  # where the tool is extracted; None uses the system temp dir
    events_log: str | None = None  # optional JSONL event log path

    def to_dict(self) -> dict[str, Any]:
        return {
            "device": self.device,
            "logging_enabled": self.logging_enabled,
            "timeout_s": self.timeout_s,
            "temp_dir": self.temp_dir,
            "events_log": self.events_log,
        }

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "VolumeConfig":
        timeout = d.get("timeout_s")
        logging_enabled = d.get("logging_enabled")
        return VolumeConfig(
            device=str(d.get("device") or "default_render"),
            logging_enabled=True if logging_enabled is None else _as_bool(logging_enabled, "logging_enabled"),
            timeout_s=float(timeout) if timeout is not None else None,
            temp_dir=d.get("temp_dir") or None,
            events_log=d.get("events_log") or None,
        )


def load_config(path: Path | None = None) -> VolumeConfig:
    p = path or default_config_path()
    if not p.exists():
        return VolumeConfig()
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in YAML_SUFFIXES:
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"config must be a mapping/object: {p}")
    return VolumeConfig.from_dict(data)


def save_config(cfg: VolumeConfig, path: Path | None = None) -> Path:
    p = path or default_config_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    if p.suffix.lower() in YAML_SUFFIXES:
        p.write_text(yaml.safe_dump(cfg.to_dict(), sort_keys=True), encoding="utf-8")
    else:
        p.write_text(json.dumps(cfg.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return p
