from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

import yaml

from nirvol.control import VOLUME_UNKNOWN, VolumeControl
from nirvol.errors import InvalidArgument, NotReady
from nirvol.tool.protocol import TargetDevice
from nirvol.util.config import default_config_path, load_config
from nirvol.util.events import events_log_path
from nirvol.util.resources import ENV_TOOL, find_tool_resource

EXIT_OK = 0
EXIT_TOOL_FAILED = 1
EXIT_USAGE = 2


@dataclass
class DoctorResult:
    ok: bool
    notes: list[str]


def _doctor(resource: str | None) -> DoctorResult:
    notes: list[str] = []
    ok = True

    try:
        res = find_tool_resource(resource)
        notes.append(f"tool resource: OK ({res})")
    except FileNotFoundError as e:
        ok = False
        notes.append(f"tool resource: MISSING ({e})")
        res = None

    if res is not None:
        with VolumeControl.create(resource=resource) as vc:
            if vc.ready:
                notes.append(f"extraction: OK ({vc.tool_path})")
            else:
                ok = False
                notes.append(f"extraction: FAILED ({vc.init_error})")

    if sys.platform != "win32":
        notes.append("platform: the bundled tool only runs on Windows")
    notes.append(f"python: {sys.version.split()[0]}")
    notes.append(f"platform: {sys.platform}")

    return DoctorResult(ok=ok, notes=notes)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="nirvol",
        add_help=True,
        formatter_class=argparse.RawTextHelpFormatter,
        description="nirvol: control the system audio output through the bundled volume tool\n",
    )

    p.add_argument("--version", action="store_true", help="Print version and exit.")
    p.add_argument("--config", default=None, help="Path to config file (.json or .yaml)")
    p.add_argument("--tool", default=None, help=f"Path to the tool binary (default: ${ENV_TOOL} or bundled copy)")
    p.add_argument(
        "--device",
        default=None,
        choices=[d.name.lower() for d in TargetDevice],
        help="Target output device (default: from config, else default_render)",
    )
    p.add_argument("--timeout", type=float, default=None, help="Kill the tool after this many seconds")
    p.add_argument("-v", "--verbose", action="store_true", help="Log tool activity to stderr.")

    sub = p.add_subparsers(dest="cmd")

    sp = sub.add_parser("set", help="Set volume to a percentage (0-100).")
    sp.add_argument("percentage", type=float)
    up = sub.add_parser("up", help="Increase volume by a percentage step.")
    up.add_argument("step", type=float)
    down = sub.add_parser("down", help="Decrease volume by a percentage step.")
    down.add_argument("step", type=float)

    sub.add_parser("mute", help="Mute the target device.")
    sub.add_parser("unmute", help="Unmute the target device.")
    sub.add_parser("toggle", help="Toggle mute on the target device.")
    sub.add_parser("get", help="Print the current volume (0-100).")
    sub.add_parser("muted", help="Print 'yes' or 'no'.")
    sub.add_parser("doctor", help="Check that the tool can be located and extracted.")
    sub.add_parser("paths", help="Print paths used by nirvol.")

    return p


def _run_volume_command(args: argparse.Namespace) -> int:
    try:
        cfg = load_config(Path(args.config).expanduser() if args.config else None)
    except (ValueError, yaml.YAMLError) as e:
        print(f"ERROR: bad config file: {e}", file=sys.stderr)
        return EXIT_USAGE
    if args.device:
        cfg.device = args.device
    if args.timeout is not None:
        cfg.timeout_s = args.timeout
    cfg.logging_enabled = bool(args.verbose)

    with VolumeControl.create(cfg, resource=args.tool) as vc:
        try:
            if args.cmd == "get":
                v = vc.get_volume()
                if v == VOLUME_UNKNOWN:
                    print("unknown")
                    return EXIT_TOOL_FAILED
                print(v)
                return EXIT_OK

            if args.cmd == "muted":
                m = vc.is_muted()
                if m is None:
                    print("unknown")
                    return EXIT_TOOL_FAILED
                print("yes" if m else "no")
                return EXIT_OK

            if args.cmd == "set":
                res = vc.set_volume(args.percentage)
            elif args.cmd == "up":
                res = vc.increase_volume(args.step)
            elif args.cmd == "down":
                res = vc.decrease_volume(args.step)
            elif args.cmd == "mute":
                res = vc.mute()
            elif args.cmd == "unmute":
                res = vc.unmute()
            else:
                res = vc.toggle_mute()
        except InvalidArgument as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_USAGE
        except NotReady as e:
            print(f"ERROR: {e.__cause__ or e}", file=sys.stderr)
            return EXIT_USAGE

    if not res.ok:
        print(f"ERROR: {res.operation} failed: {res.error}", file=sys.stderr)
        return EXIT_TOOL_FAILED
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    parser = build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "version", False):
        try:
            from importlib.metadata import version

            v = version("nirvol")
        except Exception:
            v = "0.0.0"
        print(f"nirvol {v}")
        return EXIT_OK

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.cmd == "doctor":
        res = _doctor(args.tool)
        status = "OK" if res.ok else "MISSING_DEPS"
        print(f"nirvol doctor: {status}")
        for n in res.notes:
            print(f"- {n}")
        return EXIT_OK if res.ok else EXIT_TOOL_FAILED

    if args.cmd == "paths":
        print(f"cwd: {os.getcwd()}")
        print(f"config: {default_config_path()}")
        print(f"events log: {events_log_path()}")
        return EXIT_OK

    if args.cmd is None:
        parser.print_help()
        return EXIT_OK

    return _run_volume_command(args)


if __name__ == "__main__":
    raise SystemExit(main())
