"""
Paths, logging setup, config load/save, safe_print.
"""

import os
import json
import sys
import logging
from dataclasses import dataclass
from pathlib import Path

from .constants import DEFAULT_SERVER_URL


# ─── Paths ───────────────────────────────────────────────────────
# One data directory per device. NEXUS_HOME overrides it (tests, kiosks).
_FOLDER_NAME = ".nexus_agent"


def default_base_dir():
    env_home = os.environ.get("NEXUS_HOME")
    if env_home:
        return Path(env_home)
    return Path.home() / _FOLDER_NAME


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path

    @property
    def config_file(self) -> Path:
        return self.base_dir / "config.json"

    @property
    def prefs_file(self) -> Path:
        return self.base_dir / "prefs.json"

    @property
    def secure_file(self) -> Path:
        return self.base_dir / "secure.json"

    @property
    def secure_key_file(self) -> Path:
        return self.base_dir / "secure.key"

    @property
    def log_file(self) -> Path:
        return self.base_dir / "svc.log"

    @property
    def offline_buffer_file(self) -> Path:
        return self.cache_dir / "pending.jsonl"

    @property
    def documents_dir(self) -> Path:
        return self.base_dir / "documents"

    @property
    def cache_dir(self) -> Path:
        return self.base_dir / "cache"

    @property
    def temp_dir(self) -> Path:
        return self.base_dir / "tmp"

    @property
    def app_dirs(self):
        """Directories swept on a full purge."""
        return (self.documents_dir, self.cache_dir, self.temp_dir)

    def ensure(self):
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for d in self.app_dirs:
            d.mkdir(parents=True, exist_ok=True)
        return self


def default_paths():
    return AppPaths(default_base_dir())


# ─── Safe print (no crash when stdout is gone) ───────────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except (OSError, ValueError):
        pass


# ─── Logging ─────────────────────────────────────────────────────

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

log = logging.getLogger("nexus")


def setup_logging(paths, level=logging.INFO, console=True):
    """File log (truncated past 1 MB) plus an optional console handler."""
    paths.base_dir.mkdir(parents=True, exist_ok=True)
    log_file = paths.log_file
    try:
        if log_file.exists() and log_file.stat().st_size > 1_000_000:
            log_file.write_text("")
    except OSError:
        pass

    logging.basicConfig(
        filename=str(log_file),
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        encoding="utf-8",
    )

    if console and not any(getattr(h, "_nexus_console", False) for h in log.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        console_handler._nexus_console = True
        log.addHandler(console_handler)
    return log


def mask_token(token):
    """First 8 characters only, for log lines."""
    if not token:
        return "<none>"
    return token[:8] + "..."


# ─── Config Management ──────────────────────────────────────────

def load_config(paths):
    """Load config from disk. Returns dict or None."""
    if paths.config_file.exists():
        try:
            with open(paths.config_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            return None
    return None


def save_config(paths, config):
    """Save config dict to disk."""
    paths.base_dir.mkdir(parents=True, exist_ok=True)
    with open(paths.config_file, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    log.info("Config saved to %s", paths.config_file)


def load_or_create_config(paths, server_url=None):
    """Existing config, updated with server_url when one is given."""
    config = load_config(paths) or {"serverUrl": DEFAULT_SERVER_URL}
    if server_url and server_url.rstrip("/") != config.get("serverUrl"):
        config["serverUrl"] = server_url.rstrip("/")
        save_config(paths, config)
    elif not paths.config_file.exists():
        save_config(paths, config)
    return config
