"""
Network utilities — connectivity probe and offline buffer.

Connectivity: socket-level check against the server host (interface
agnostic: WiFi, mobile data, LAN).

Offline buffer: JSON-lines file holding location reports that could not be
delivered; replayed in order once a report goes through again.
"""

import json
import socket
import time
from urllib.parse import urlsplit

from .config import log
from .constants import CONNECTIVITY_TIMEOUT_SEC


# ─── Connectivity check ──────────────────────────────────────────

def is_online(server_url):
    """True when a TCP connection to the server's host can be opened."""
    try:
        parts = urlsplit(server_url)
        host = parts.hostname
        if not host:
            return False
        port = parts.port or (443 if parts.scheme == "https" else 80)
        sock = socket.create_connection((host, port), timeout=CONNECTIVITY_TIMEOUT_SEC)
        sock.close()
        return True
    except (socket.timeout, OSError, ValueError):
        return False


# ─── Offline buffer ──────────────────────────────────────────────

def buffer_request(buffer_file, url, payload):
    """Append a failed report to disk for later replay."""
    entry = {"url": url, "payload": payload, "ts": time.time()}
    try:
        # Skip back-to-back duplicates of the same payload.
        if buffer_file.exists():
            lines = buffer_file.read_text(encoding="utf-8").strip().split("\n")
            if lines and lines[-1].strip():
                try:
                    last = json.loads(lines[-1])
                    if last.get("url") == url and last.get("payload") == payload:
                        return
                except json.JSONDecodeError:
                    pass
        buffer_file.parent.mkdir(parents=True, exist_ok=True)
        with open(buffer_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")
        log.info("Buffered offline report: %s", url.split("/")[-1])
    except OSError as e:
        log.warning("Failed to buffer report: %s", e)


def has_buffered_requests(buffer_file):
    try:
        return buffer_file.exists() and buffer_file.stat().st_size > 0
    except OSError:
        return False


def flush_buffer(buffer_file, send):
    """
    Replay buffered entries in order with send(url, payload) -> bool.
    Returns (flushed, remaining). Entries that still fail stay buffered.
    """
    if not has_buffered_requests(buffer_file):
        return 0, 0

    try:
        lines = buffer_file.read_text(encoding="utf-8").strip().split("\n")
    except OSError:
        return 0, 0

    lines = [l for l in lines if l.strip()]
    flushed = 0
    still_failed = []

    for line in lines:
        try:
            entry = json.loads(line)
            ok = send(entry["url"], entry["payload"])
        except (json.JSONDecodeError, KeyError):
            log.warning("Dropping malformed buffer entry")
            continue
        except Exception as e:
            log.warning("Buffered report replay error: %s", e)
            ok = False
        if ok:
            flushed += 1
        else:
            still_failed.append(line)

    try:
        if still_failed:
            buffer_file.write_text("\n".join(still_failed) + "\n", encoding="utf-8")
        else:
            buffer_file.unlink(missing_ok=True)
    except OSError as e:
        log.warning("Could not rewrite offline buffer: %s", e)

    if flushed:
        log.info("Flushed %d buffered reports (%d still pending)", flushed, len(still_failed))
    return flushed, len(still_failed)
