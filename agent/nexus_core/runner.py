"""
Entry point (CLI) and auto-restart wrapper.
"""

import argparse
import asyncio
import sys
import time

from .constants import AGENT_VERSION
from .config import (
    log, safe_print, default_paths, setup_logging, load_or_create_config,
)
from .app import FieldApp
from .auth import AuthStatus
from .credentials import LoadStatus


def build_parser():
    parser = argparse.ArgumentParser(prog="nexus-agent", description="Field tracking agent")
    parser.add_argument("--server", help="Server base URL (saved to config.json)")
    parser.add_argument("--version", action="version", version=AGENT_VERSION)
    sub = parser.add_subparsers(dest="command", required=True)

    p_login = sub.add_parser("login", help="Authenticate this device")
    p_login.add_argument("--token", required=True)
    p_login.add_argument("--code", required=True, help="Deployment code")

    p_logout = sub.add_parser("logout", help="Log out and wipe local data")
    p_logout.add_argument("--emergency", action="store_true",
                          help="Wipe credentials and secure store only")
    p_logout.add_argument("--force-offline", action="store_true")

    sub.add_parser("status", help="Show session and watchdog status")

    p_run = sub.add_parser("run", help="Run the background reporter")
    p_run.add_argument("--background", action="store_true",
                       help="Started by the task-removal hook")
    p_run.add_argument("--no-restart", action="store_true",
                       help="Do not restart after crashes")

    sub.add_parser("verify-purge", help="Report what is left after a logout")
    return parser


def _cmd_login(app, args):
    result = asyncio.run(app.login(args.token, args.code))
    if result.is_success:
        safe_print(result.message)
        return 0
    safe_print(f"Login failed: {result.message}")
    return 1


def _cmd_logout(app, args):
    result = app.logout(force_offline=args.force_offline, emergency=args.emergency)
    for warning in result.warnings:
        safe_print(f"warning: {warning}")
    safe_print(result.message)
    return 0 if result.success else 1


def _cmd_status(app, args):
    loaded = app.credentials.load()
    if loaded.status is LoadStatus.CORRUPTED:
        safe_print("Stored credentials were corrupted and have been cleared. Please login again.")
        return 1
    status = app.auth.check_authentication_status()
    safe_print(f"session: {status.value}")
    safe_print(f"token locked: {loaded.locked}")
    safe_print(f"watchdog: {app.watchdog.status()}")
    return 0 if status in (AuthStatus.AUTHENTICATED, AuthStatus.AUTHENTICATED_OFFLINE) else 1


def _cmd_run(app, args):
    report = app.cold_start()
    if report.warning:
        safe_print(report.warning)
    try:
        started = asyncio.run(app.run())
    except KeyboardInterrupt:
        safe_print("\nAgent stopped by user.")
        app.watchdog.mark_clean_exit()
        return 0
    return 0 if started else 1


def _cmd_verify_purge(app, args):
    report = app.purger.verify()
    safe_print(f"preferences cleared: {report.prefs_cleared}")
    safe_print("secure store cleared: assumed")
    for path, empty in report.dirs_empty.items():
        safe_print(f"{path}: {'empty' if empty else 'not empty'}")
    return 0 if report.all_cleared else 1


COMMANDS = {
    "login": _cmd_login,
    "logout": _cmd_logout,
    "status": _cmd_status,
    "run": _cmd_run,
    "verify-purge": _cmd_verify_purge,
}


def main(argv=None):
    """Primary agent entry point."""
    args = build_parser().parse_args(argv)
    paths = default_paths().ensure()
    setup_logging(paths, console=not getattr(args, "background", False))
    config = load_or_create_config(paths, args.server)

    if args.command == "run" and not args.no_restart:
        return run_with_auto_restart(lambda: _run_once(paths, config, args))
    return _run_once(paths, config, args)


def _run_once(paths, config, args):
    app = FieldApp(paths, config)
    try:
        return COMMANDS[args.command](app, args)
    finally:
        app.close()


def run_with_auto_restart(target, sleep=time.sleep, max_restarts=None):
    """
    Restart target() after crashes. Crash counter resets if it ran for 2+
    minutes (not a boot-loop). Returns target's exit code on a normal return.
    """
    crash_count = 0
    crash_window = 120
    max_rapid_crashes = 10
    restarts = 0

    while True:
        start_time = time.time()
        try:
            return target()
        except KeyboardInterrupt:
            safe_print("\nAgent stopped by user.")
            return 0
        except Exception as e:
            elapsed = time.time() - start_time
            log.error("Agent crashed after %.0fs: %s", elapsed, e, exc_info=True)

            if max_restarts is not None and restarts >= max_restarts:
                log.error("Giving up after %d restarts", restarts)
                return 1

            if elapsed > crash_window:
                crash_count = 0
            crash_count += 1
            restarts += 1

            if crash_count >= max_rapid_crashes:
                wait = 120
                log.warning("Many rapid crashes (%d). Waiting %ds...", crash_count, wait)
            else:
                wait = min(10 * crash_count, 60)

            log.info("Restarting in %ds (crash %d)...", wait, crash_count)
            sleep(wait)


if __name__ == "__main__":
    sys.exit(main())
