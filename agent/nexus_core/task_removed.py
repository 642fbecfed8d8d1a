"""
Task-removal hook — runs in its own short-lived process when the OS
reports that the app was swiped away from recent tasks.

Reads only the plaintext preferences file, decides with
restart_policy.should_restart, optionally spawns the background worker
and exits. Never raises.
"""

import os
import subprocess
import sys

from .config import log, default_paths, setup_logging
from .restart_policy import read_restart_inputs
from .storage import PreferencesStore


def start_background_process(paths):
    """Foreground-service start primitive: detached `run --background` process."""
    env = dict(os.environ)
    env["NEXUS_HOME"] = str(paths.base_dir)
    subprocess.Popen(
        [sys.executable, "-m", "nexus_core", "run", "--background"],
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def on_task_removed(prefs, start_service, now=None):
    """Returns True when the worker was (asked to be) restarted."""
    inputs = read_restart_inputs(prefs)
    if not inputs.decide(now=now):
        if not inputs.is_logged_in:
            log.info("TaskRemoved: user not logged in — NOT restarting service")
        else:
            log.info("TaskRemoved: service permanently disabled — NOT restarting")
        return False

    log.info("TaskRemoved: logged in and not disabled — restarting background service")
    try:
        start_service()
    except Exception as e:
        log.error("TaskRemoved: service restart failed: %s", e)
        return False
    return True


def main(argv=None):
    paths = default_paths()
    setup_logging(paths, console=False)
    prefs = PreferencesStore(paths.prefs_file)
    on_task_removed(prefs, lambda: start_background_process(paths))
    return 0


if __name__ == "__main__":
    sys.exit(main())
