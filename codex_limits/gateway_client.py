"""HTTP client for the gateway's tool invocation API."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "http://127.0.0.1:18789"
DEFAULT_GATEWAY_CONFIG = "~/.openclaw/openclaw.json"


class GatewayError(RuntimeError):
    """Raised for failed gateway tool invocations."""


class AuthNotConfigured(GatewayError):
    """No gateway token or password is available."""

    def __init__(self, message: str = "Gateway auth not configured on server"):
        super().__init__(message)


class UpstreamHttpError(GatewayError):
    """Gateway answered with a non-2xx status."""

    def __init__(self, status_code: int, payload: Any = None):
        super().__init__(f"tool invoke failed {status_code}")
        self.status_code = status_code
        self.payload = payload


def read_gateway_token_from_config(config_path: str = DEFAULT_GATEWAY_CONFIG) -> str:
    """
    Read the gateway auth secret from the gateway's own config file.

    Uses gateway.auth.password when gateway.auth.mode is "password",
    otherwise gateway.auth.token. Returns '' if unavailable.
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        return ""

    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read gateway config {path}: {e}")
        return ""

    auth = (data.get("gateway") or {}).get("auth") if isinstance(data, dict) else None
    if not isinstance(auth, dict):
        return ""
    secret = auth.get("password") if auth.get("mode") == "password" else auth.get("token")
    return secret if isinstance(secret, str) else ""


class GatewayClient:
    """Calls session_status and message tools through POST /tools/invoke."""

    def __init__(
        self,
        base_url: str = DEFAULT_GATEWAY_URL,
        token: str = "",
        session_key: str = "main",
        channel: str = "telegram",
        target: str = "",
        silent: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Gateway base URL
            token: Bearer token ('' means auth not configured)
            session_key: Session whose status is polled
            channel: Messaging channel for relayed summaries
            target: Channel-specific recipient
            silent: Send relayed messages without a notification sound
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session_key = session_key
        self.channel = channel
        self.target = target
        self.silent = silent
        self._transport = transport

    @property
    def auth_configured(self) -> bool:
        return bool(self.token)

    async def invoke_tool(self, tool: str, args: dict) -> dict:
        """
        Invoke a gateway tool.

        Returns:
            Parsed JSON object (any other body is wrapped as {"ok": False, "error": text})

        Raises:
            AuthNotConfigured: No token
            UpstreamHttpError: Non-2xx response
            httpx.HTTPError: Transport failure
        """
        if not self.token:
            raise AuthNotConfigured()

        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/tools/invoke",
                headers={"Authorization": f"Bearer {self.token}"},
                json={"tool": tool, "args": args},
            )

        text = response.text
        try:
            payload = json.loads(text)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = {"ok": False, "error": text}

        if not response.is_success:
            raise UpstreamHttpError(response.status_code, payload)
        return payload

    async def fetch_status(self) -> dict:
        """Fetch the raw session_status result for the configured session."""
        return await self.invoke_tool("session_status", {"sessionKey": self.session_key})

    async def send_message(self, message: str) -> dict:
        """Relay a message to the configured channel and target."""
        return await self.invoke_tool("message", {
            "action": "send",
            "channel": self.channel,
            "target": self.target,
            "message": message,
            "silent": self.silent,
        })
