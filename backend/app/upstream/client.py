import logging
from typing import Any

import httpx

from app.core.config import settings
from app.core.errors import Forbidden, UpstreamError, UpstreamUnreachable

logger = logging.getLogger(__name__)

API_PATH = "/api_jsonrpc.php"

LOGIN_REQUEST_ID = 1
CALL_REQUEST_ID = 2

ALLOWED_METHODS = frozenset(
    {
        "host.get",
        "hostgroup.get",
        "item.get",
        "history.get",
        "trigger.get",
        "problem.get",
        "event.get",
        "template.get",
        "application.get",
        "graph.get",
        "trend.get",
        "dashboard.get",
    }
)


class UpstreamLoginFailed(UpstreamError):
    code = "upstream_login_failed"


def build_endpoint(base_url: str) -> str:
    trimmed = base_url.strip().rstrip("/")
    if trimmed.endswith(API_PATH):
        return trimmed
    return f"{trimmed}{API_PATH}"


class ZabbixClient:
    """Minimal Zabbix JSON-RPC client over httpx.

    Only read methods from ``ALLOWED_METHODS`` may be called through
    :meth:`call`; login, logout and version probing are internal.
    """

    def __init__(self, base_url: str, *, timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        self.endpoint = build_endpoint(base_url)
        self.timeout = timeout if timeout is not None else settings.ZABBIX_HTTP_TIMEOUT_SECONDS
        self.transport = transport

    def _post(self, envelope: dict) -> Any:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(self.endpoint, json=envelope)
        except httpx.HTTPError as e:
            logger.warning("Upstream %s unreachable: %s", self.endpoint, type(e).__name__)
            raise UpstreamUnreachable(f"Monitoring API unreachable at {self.endpoint}")

        if resp.status_code >= 400:
            raise UpstreamError(f"Monitoring API returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError:
            raise UpstreamError("Monitoring API returned a non-JSON response")
        if not isinstance(data, dict):
            raise UpstreamError("Monitoring API returned an unexpected response")
        return data

    @staticmethod
    def _error_text(error: Any) -> str:
        if isinstance(error, dict):
            return str(error.get("data") or error.get("message") or error)
        return str(error)

    def login(self, username: str, password: str) -> str:
        data = self._post(
            {
                "jsonrpc": "2.0",
                "method": "user.login",
                "params": {"username": username, "password": password},
                "id": LOGIN_REQUEST_ID,
            }
        )
        if data.get("error") or not data.get("result"):
            raise UpstreamLoginFailed(f"Monitoring API login failed: {self._error_text(data.get('error'))}")
        return data["result"]

    def _rpc(self, method: str, params: Any, auth: str | None) -> Any:
        envelope = {"jsonrpc": "2.0", "method": method, "params": params if params is not None else {}, "id": CALL_REQUEST_ID}
        if auth:
            envelope["auth"] = auth
        data = self._post(envelope)
        if data.get("error"):
            raise UpstreamError(f"Monitoring API error ({method}): {self._error_text(data['error'])}")
        return data.get("result")

    def call(self, method: str, params: Any, auth: str) -> Any:
        if method not in ALLOWED_METHODS:
            raise Forbidden(f'Method "{method}" not allowed', code="method_not_allowed")
        return self._rpc(method, params, auth)

    def api_version(self) -> str:
        return self._rpc("apiinfo.version", {}, None)

    def logout(self, auth: str) -> None:
        self._rpc("user.logout", [], auth)
