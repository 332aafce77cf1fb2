"""
Forward Supervisor 命令行入口

使用方式:
    forward-supervisor run <profile>
    forward-supervisor show-logs [-n 50]
    forward-supervisor profiles
    forward-supervisor status | stop
    或
    python -m forward_supervisor ...
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import httpx

from . import __version__
from .config import AppConfig, get_config, resolve_config_path
from .errors import ConfigError, SupervisorError
from .logs import setup_logging, tail_log
from .models import Profile, StatusSnapshot
from .preflight import check_cluster_connectivity, require_tool
from .reporter import render_snapshot
from .supervisor import Supervisor

logger = logging.getLogger("forward_supervisor")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forward-supervisor",
        description="Keep a profile of kubectl port-forwards alive.",
    )
    parser.add_argument("--config", help="config file (default: $FORWARD_SUPERVISOR_CONFIG or "
                                         "~/.forward-supervisor/config.yaml)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="start supervising a profile")
    run.add_argument("profile", help="profile name from the config file")

    logs = sub.add_parser("show-logs", help="print recent log entries")
    logs.add_argument("-n", "--lines", type=int, default=50, help="number of entries (default: 50)")

    sub.add_parser("profiles", help="list configured profiles")
    sub.add_parser("status", help="print the status of a running supervisor")
    sub.add_parser("stop", help="ask a running supervisor to shut down")
    sub.add_parser("help", help="show this message")
    return parser


async def run_supervisor(config: AppConfig, profile: Profile, kubectl: str):
    await check_cluster_connectivity(kubectl, profile.context, config.supervisor.connectivity_timeout)
    supervisor = Supervisor(profile, config, kubectl=kubectl)
    await supervisor.run()


def cmd_run(config: AppConfig, args) -> int:
    log_path = setup_logging(config.logging)
    if log_path:
        logger.info(f"Logging to {log_path}")

    try:
        profile = config.get_profile(args.profile)
        kubectl = require_tool(config.kubectl)
        asyncio.run(run_supervisor(config, profile, kubectl))
    except SupervisorError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
    return 0


def cmd_show_logs(config: AppConfig, args) -> int:
    for line in tail_log(config.logging.path, args.lines):
        print(line)
    return 0


def cmd_profiles(config: AppConfig, args) -> int:
    for name in config.profile_names():
        profile = config.profiles[name]
        line = f"{name}  (namespace={profile.namespace}, forwards={len(profile.forwards)})"
        try:
            config.get_profile(name)
        except ConfigError as e:
            line += f"  invalid: {e}"
        print(line)
    return 0


def _control_headers(config: AppConfig) -> dict:
    if config.control.token:
        return {"Authorization": f"Bearer {config.control.token}"}
    return {}


def cmd_status(config: AppConfig, args) -> int:
    url = f"{config.control.base_url}/v1/status"
    try:
        resp = httpx.get(url, headers=_control_headers(config), timeout=5)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        print(f"Error: cannot query supervisor at {url}: {e}", file=sys.stderr)
        return 1
    print(render_snapshot(StatusSnapshot(**resp.json())))
    return 0


def cmd_stop(config: AppConfig, args) -> int:
    url = f"{config.control.base_url}/v1/shutdown"
    try:
        resp = httpx.post(url, headers=_control_headers(config), timeout=5)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        print(f"Error: cannot reach supervisor at {url}: {e}", file=sys.stderr)
        return 1
    print(resp.json().get("message", "shutdown requested"))
    return 0


COMMANDS = {
    "run": cmd_run,
    "show-logs": cmd_show_logs,
    "profiles": cmd_profiles,
    "status": cmd_status,
    "stop": cmd_stop,
}


def main(argv: Optional[List[str]] = None) -> int:
    """主程序入口"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return 0

    try:
        config = get_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(f"Please create a config file at {resolve_config_path(args.config)}", file=sys.stderr)
        return 1

    return COMMANDS[args.command](config, args)


if __name__ == "__main__":
    sys.exit(main())
