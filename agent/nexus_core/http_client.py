"""
requests.Session factory for ApiClient.

One pooled session per FieldApp. Gateway errors are retried by urllib3;
everything else (including timeouts surfacing as requests exceptions) is
left to ApiClient, which turns it into an ApiResponse error.
"""

import os

import certifi
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .constants import (
    AGENT_VERSION, HTTP_RETRY_TOTAL, HTTP_RETRY_BACKOFF, HTTP_RETRY_STATUSES,
)


def build_retry():
    return Retry(
        total=HTTP_RETRY_TOTAL,
        backoff_factor=HTTP_RETRY_BACKOFF,
        status_forcelist=list(HTTP_RETRY_STATUSES),
        allowed_methods=frozenset({"HEAD", "GET", "POST"}),
        raise_on_status=False,
    )


def ca_bundle_path():
    """REQUESTS_CA_BUNDLE / SSL_CERT_FILE when they point at a file, else certifi."""
    for var in ("REQUESTS_CA_BUNDLE", "SSL_CERT_FILE"):
        candidate = os.environ.get(var)
        if candidate and os.path.isfile(candidate):
            return candidate
    return certifi.where()


def create_session():
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=1, pool_maxsize=4, max_retries=build_retry())
    for scheme in ("https://", "http://"):
        session.mount(scheme, adapter)
    session.verify = ca_bundle_path()
    session.headers.update({
        "Content-Type": "application/json",
        "User-Agent": f"nexus-field-agent/{AGENT_VERSION}",
    })
    return session
