"""
Server API calls — unit login/logout, status check, location update.

All methods are blocking (run them via asyncio.to_thread from the event
loop). Network failures never raise: they come back as ApiResponse errors.
Every call refuses to send a token that is not header-safe.
"""

from dataclasses import dataclass
from typing import Optional
from datetime import datetime, timezone
import platform

import requests

from .config import log
from .constants import (
    AGENT_VERSION, API_TIMEOUT_STATUS, API_TIMEOUT_LOGIN,
    API_TIMEOUT_LOGOUT, API_TIMEOUT_UPDATE,
)
from .credentials import validate_token

INVALID_TOKEN_MESSAGE = "Invalid token format - contains illegal characters for HTTP headers"


@dataclass
class ApiResponse:
    success: bool
    message: str
    data: Optional[dict] = None
    status_code: int = 0

    @classmethod
    def error(cls, message, status_code=0):
        return cls(success=False, message=message, status_code=status_code)

    @classmethod
    def from_response(cls, resp):
        """Generic envelope: {success, message, ...}."""
        try:
            body = resp.json()
        except ValueError:
            return cls.error("Invalid response format from server", resp.status_code)
        if not isinstance(body, dict):
            return cls.error("Invalid response format from server", resp.status_code)
        return cls(
            success=resp.status_code == 200 and bool(body.get("success", False)),
            message=body.get("message") or "Request completed",
            data=body,
            status_code=resp.status_code,
        )


def _now_iso():
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def device_info():
    return {
        "deviceName": platform.node(),
        "os": f"{platform.system()} {platform.release()}",
        "agentVersion": AGENT_VERSION,
    }


class ApiClient:
    def __init__(self, server_url, session):
        self.server_url = server_url.rstrip("/")
        self.session = session

    def endpoint_url(self, endpoint):
        return f"{self.server_url}/{endpoint}"

    def _headers(self, token):
        return {"Authorization": f"Bearer {token}"}

    def _post(self, endpoint, token, payload, timeout):
        return self.session.post(
            self.endpoint_url(endpoint), json=payload,
            headers=self._headers(token), timeout=timeout,
        )

    # ─── Unit login / logout ──────────────────────────────────

    def login(self, token, deployment_code):
        if validate_token(token) is None:
            return ApiResponse.error(INVALID_TOKEN_MESSAGE)
        payload = {
            "deploymentCode": deployment_code,
            "action": "login",
            "timestamp": _now_iso(),
            "deviceInfo": device_info(),
        }
        try:
            resp = self._post("setUnit", token, payload, API_TIMEOUT_LOGIN)
        except requests.RequestException as e:
            log.warning("Login network error: %s", e)
            return ApiResponse.error(f"Network error during login: {e}")
        result = ApiResponse.from_response(resp)
        log.info("Login response: HTTP %d success=%s", resp.status_code, result.success)
        return result

    def logout(self, token, deployment_code, force_offline=False):
        if validate_token(token) is None:
            return ApiResponse.error(INVALID_TOKEN_MESSAGE)
        payload = {
            "deploymentCode": deployment_code,
            "action": "logout",
            "timestamp": _now_iso(),
            "forceOffline": force_offline,
            "deviceInfo": device_info(),
        }
        try:
            resp = self._post("setUnit", token, payload, API_TIMEOUT_LOGOUT)
        except requests.RequestException as e:
            log.warning("Logout network error: %s", e)
            return ApiResponse.error(f"Network error during logout: {e}")
        return ApiResponse.from_response(resp)

    # ─── Status check ─────────────────────────────────────────

    def check_status(self, token, deployment_code):
        """
        data = {"isLoggedIn": bool} on success. isLoggedIn=True means the code
        is active on some device. Non-200 answers are failures.
        """
        if validate_token(token) is None:
            return ApiResponse.error(INVALID_TOKEN_MESSAGE)
        payload = {"deploymentCode": deployment_code, "timestamp": _now_iso()}
        try:
            resp = self._post("checkStatus", token, payload, API_TIMEOUT_STATUS)
        except requests.Timeout:
            return ApiResponse.error("Session check timed out")
        except requests.RequestException as e:
            return ApiResponse.error(f"Network error checking status: {e}")

        if resp.status_code == 401:
            return ApiResponse(False, "Authentication failed - token may be invalid",
                               {"isLoggedIn": False}, 401)
        if resp.status_code != 200:
            return ApiResponse(False, "Server error checking status",
                               {"isLoggedIn": False}, resp.status_code)
        try:
            body = resp.json()
        except ValueError:
            return ApiResponse.error("Invalid response format from server", 200)

        data = body.get("data") if isinstance(body, dict) and "isLoggedIn" not in body else body
        if not isinstance(data, dict) or "isLoggedIn" not in data:
            return ApiResponse.error("Status response missing isLoggedIn", 200)
        return ApiResponse(True, "Status checked successfully",
                           {"isLoggedIn": bool(data["isLoggedIn"])}, 200)

    # ─── Location update ──────────────────────────────────────

    def build_location_payload(self, deployment_code, location=None, battery_level=None):
        payload = {
            "deploymentCode": deployment_code,
            "timestamp": _now_iso(),
        }
        if location:
            payload["location"] = location
        if battery_level is not None:
            payload["batteryStatus"] = battery_level
        return payload

    def update_location(self, token, payload):
        if validate_token(token) is None:
            return ApiResponse.error(INVALID_TOKEN_MESSAGE)
        try:
            resp = self._post("updateLocation", token, payload, API_TIMEOUT_UPDATE)
        except requests.RequestException as e:
            log.warning("Location update network error: %s", e)
            return ApiResponse.error(f"Network error: {e}")
        if resp.status_code == 401:
            log.error("Location update REJECTED (401) — session may be revoked")
        return ApiResponse.from_response(resp)

    def post_raw(self, url, token, payload, timeout=30):
        """Replay helper for the offline buffer. Raises on network errors."""
        return self.session.post(url, json=payload, headers=self._headers(token), timeout=timeout)
