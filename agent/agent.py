"""
Field Tracking Agent — launcher
===============================
Keeps a logged-in device reporting its location to the deployment server
and survives process death through the liveness watchdog and the
task-removal restart hook.

Usage:
    python agent.py login --token <TOKEN> --code <DEPLOYMENT_CODE>
    python agent.py run
    python agent.py logout [--emergency]
"""

import sys

from nexus_core.runner import main

if __name__ == "__main__":
    sys.exit(main())
