from __future__ import annotations
import argparse
import sys
from pathlib import Path
from typing import List, Optional
import uvicorn
from pydantic import ValidationError
from .api import create_app
from .args import build_launch_args
from .bootstrap import InstallBootstrapper
from .errors import LauncherError, ToolNotFound
from .firewall import FirewallReconciler
from .fs_layout import build_layout
from .logging_setup import get_logger, setup_logging
from .models import (Command, PrefetchCommand, ServerConfig, SetupCommand, StartCommand, UpdateCommand,
                     parse_command, rules_for)
from .prefetch import PrefetchMonitor
from .settings import Settings
from .steamcmd import SteamCMD
from .supervisor import ProcessSupervisor

log = get_logger("asa.launcher.cli")


def _add_shared(p: argparse.ArgumentParser) -> None:
    p.add_argument("--root", type=Path, help="Server install directory (default: $ASA_ROOT)")
    p.add_argument("--no-firewall", action="store_true", help="Do not create firewall rules")
    p.add_argument("--bootstrap", action="store_true", help="Run the install bootstrap first if the server is missing")
    p.add_argument("--branch", help="Steam beta branch")
    p.add_argument("--branch-password", help="Steam beta branch password")


def _add_ports(p: argparse.ArgumentParser) -> None:
    p.add_argument("--port", type=int, default=7777, help="Game port (UDP)")
    p.add_argument("--query-port", type=int, default=27015, help="Query port (UDP)")
    p.add_argument("--rcon-port", type=int, default=None, help="RCON port (TCP); omitted when not given")


def _add_server(p: argparse.ArgumentParser) -> None:
    _add_ports(p)
    p.add_argument("--map", default="TheIsland_WP")
    p.add_argument("--session-name", default="ASA Server")
    p.add_argument("--max-players", type=int, default=70)
    p.add_argument("--server-password", default="")
    p.add_argument("--admin-password", default="")
    p.add_argument("--battleye", action="store_true", help="Enable BattlEye (disabled by default)")
    p.add_argument("--extra-arg", action="append", default=[], metavar="TOKEN",
                   help="Extra launch token, passed through as is; repeatable (use --extra-arg=-Flag)")
    p.add_argument("--mods", default="", help="Comma separated mod ids")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="asa-launcher")
    sub = parser.add_subparsers(dest="cmd", required=True)

    setup_p = sub.add_parser("setup", help="Install runtime, SteamCMD, server files and firewall rules")
    _add_shared(setup_p)
    _add_ports(setup_p)

    start_p = sub.add_parser("start", help="Run the server under the restart loop")
    _add_shared(start_p)
    _add_server(start_p)
    start_p.add_argument("--no-auto-restart", action="store_true", help="Stop after the first server exit")
    start_p.add_argument("--restart-delay", type=float, default=None, help="Seconds to wait before a restart")

    update_p = sub.add_parser("update", help="Update/validate server files via SteamCMD")
    _add_shared(update_p)
    update_p.add_argument("--steamcmd", type=Path, help="Path to the SteamCMD executable")
    update_p.add_argument("--install-dir", type=Path, help="Install directory (default: --root)")
    update_p.add_argument("--validate", action="store_true", help="Validate all files")
    update_p.add_argument("--login", default=None, help='SteamCMD login (default "anonymous")')

    prefetch_p = sub.add_parser("prefetch", help="Start headless, wait for mod downloads, then stop")
    _add_shared(prefetch_p)
    _add_server(prefetch_p)
    prefetch_p.add_argument("--timeout-minutes", type=float, default=None)

    api_p = sub.add_parser("api", help="Serve the read-only status/log API (FastAPI)")
    api_p.add_argument("--root", type=Path, help="Server install directory (default: $ASA_ROOT)")
    api_p.add_argument("--host", default="127.0.0.1")
    api_p.add_argument("--port", type=int, default=8000)
    return parser


def _server_from_args(args: argparse.Namespace) -> dict:
    data = {"port": args.port, "query_port": args.query_port, "rcon_port": args.rcon_port}
    if not hasattr(args, "map"):
        return data
    data.update(
        map_name=args.map,
        session_name=args.session_name,
        max_players=args.max_players,
        server_password=args.server_password,
        admin_password=args.admin_password,
        no_battleye=not args.battleye,
        extra_args=tuple(args.extra_arg),
        mods=args.mods,
    )
    return data


def to_command(args: argparse.Namespace, settings: Settings) -> Command:
    data = {
        "command": args.cmd,
        "root": settings.asa_root,
        "no_firewall": args.no_firewall,
        "bootstrap": args.bootstrap,
        "branch": args.branch,
        "branch_password": args.branch_password,
    }
    if args.cmd in ("setup", "start", "prefetch"):
        data["server"] = _server_from_args(args)
    if args.cmd == "start":
        data["auto_restart"] = not args.no_auto_restart
        data["restart_delay"] = settings.restart_delay if args.restart_delay is None else args.restart_delay
    elif args.cmd == "prefetch":
        data["timeout_minutes"] = (settings.prefetch_timeout_minutes if args.timeout_minutes is None
                                   else args.timeout_minutes)
    elif args.cmd == "update":
        data.update(
            steamcmd_path=args.steamcmd or settings.steamcmd_path,
            install_dir=args.install_dir,
            validate_files=args.validate,
            login=args.login or settings.steam_login,
        )
    return parse_command(data)


# --- command handlers -------------------------------------------------------

def _bootstrapper(command: Command, settings: Settings) -> InstallBootstrapper:
    return InstallBootstrapper(settings, build_layout(command.root))


def run_setup(command: SetupCommand, settings: Settings) -> int:
    _bootstrapper(command, settings).bootstrap(
        branch=command.branch,
        branch_password=command.branch_password,
        rules=rules_for(command.server),
        skip_firewall=command.no_firewall,
    )
    return 0


def _maybe_bootstrap(command: Command, settings: Settings, server: ServerConfig, *, firewall_mandatory: bool,
                     skip_firewall: bool) -> None:
    if not command.bootstrap:
        return
    _bootstrapper(command, settings).bootstrap_if_missing(
        branch=command.branch,
        branch_password=command.branch_password,
        rules=rules_for(server),
        skip_firewall=skip_firewall,
        firewall_mandatory=firewall_mandatory,
    )


def run_start(command: StartCommand, settings: Settings) -> int:
    # firewall is reconciled once below, in its non-mandatory form
    _maybe_bootstrap(command, settings, command.server, firewall_mandatory=False, skip_firewall=True)
    layout = build_layout(command.root)
    args = build_launch_args(command.server)
    if not command.no_firewall:
        FirewallReconciler().reconcile(rules_for(command.server), mandatory=False)

    supervisor = ProcessSupervisor(layout, args, auto_restart=command.auto_restart,
                                   restart_delay=command.restart_delay)
    restore = supervisor.install_signal_handlers()
    try:
        supervisor.run()
    finally:
        restore()
    return 0


def run_update(command: UpdateCommand, settings: Settings) -> int:
    _maybe_bootstrap(command, settings, ServerConfig(), firewall_mandatory=True, skip_firewall=command.no_firewall)
    tool = command.steamcmd_path or _bootstrapper(command, settings).find_steamcmd()
    if tool is None:
        raise ToolNotFound("SteamCMD not found. Pass --steamcmd, set STEAMCMD_PATH or run 'setup' first.")
    SteamCMD(tool).update_app(
        command.install_dir or command.root,
        settings.asa_app_id,
        login=command.login,
        validate=command.validate_files,
        branch=command.branch,
        branch_password=command.branch_password,
    )
    return 0


def run_prefetch(command: PrefetchCommand, settings: Settings) -> int:
    _maybe_bootstrap(command, settings, command.server, firewall_mandatory=True,
                     skip_firewall=command.no_firewall)
    monitor = PrefetchMonitor(
        build_layout(command.root),
        command.server,
        timeout=command.timeout_minutes * 60,
        poll_interval=settings.prefetch_poll_interval,
        progress_marker=settings.prefetch_progress_marker,
        complete_marker=settings.prefetch_complete_marker,
    )
    monitor.run()
    return 0


HANDLERS = {
    "setup": run_setup,
    "start": run_start,
    "update": run_update,
    "prefetch": run_prefetch,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings()
    if args.root is not None:
        settings = settings.model_copy(update={"asa_root": args.root})
    setup_logging(settings)

    if args.cmd == "api":
        app = create_app(settings)
        uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
        return 0

    try:
        command = to_command(args, settings)
    except ValidationError as e:
        print(f"error: invalid arguments:\n{e}", file=sys.stderr)
        return 1

    log.info("=== asa-launcher %s (%s) ===", command.command, command.root)
    try:
        return HANDLERS[command.command](command, settings)
    except LauncherError as e:
        log.debug("%s failed", command.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        log.warning("Interrupted.")
        return 130
