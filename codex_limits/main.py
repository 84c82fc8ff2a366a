"""Main entry point - orchestrates all components."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import uvicorn
import yaml

from .dispatcher import NotificationDispatcher
from .gateway_client import DEFAULT_GATEWAY_CONFIG, DEFAULT_GATEWAY_URL, GatewayClient, read_gateway_token_from_config
from .models import PollCache
from .scheduler import MIN_WAIT_SECONDS, PollScheduler
from .server import create_app
from .settings_store import SettingsStore, default_interval_minutes

logger = logging.getLogger(__name__)

# env var -> (section, key, type)
ENV_OVERRIDES = {
    "HOST": ("server", "host", str),
    "PORT": ("server", "port", int),
    "OPENCLAW_URL": ("gateway", "url", str),
    "OPENCLAW_TOKEN": ("gateway", "token", str),
    "OPENCLAW_SESSION_KEY": ("gateway", "session_key", str),
    "TELEGRAM_CHANNEL": ("relay", "channel", str),
    "TELEGRAM_TARGET": ("relay", "target", str),
    "CHECK_EVERY_MS": ("monitor", "check_every_ms", int),
    "STATE_PATH": ("paths", "state_file", str),
}


def load_config(config_path: str = "config.yaml") -> dict:
    """Load configuration from YAML file."""
    path = Path(config_path)

    if not path.exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


def apply_env_overrides(config: dict, environ: Optional[dict] = None) -> dict:
    """Overlay environment variables onto the config (env wins)."""
    environ = os.environ if environ is None else environ
    for env_name, (section, key, cast) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw in (None, ""):
            continue
        try:
            value = cast(raw)
        except ValueError:
            logger.warning(f"Ignoring {env_name}={raw!r}: expected {cast.__name__}")
            continue
        config.setdefault(section, {})[key] = value
    return config


def resolve_gateway_token(config: dict) -> str:
    """Token from config/env, else from the gateway's own config file."""
    gateway_config = config.get("gateway", {})
    token = gateway_config.get("token") or ""
    if not token:
        token = read_gateway_token_from_config(gateway_config.get("config_path", DEFAULT_GATEWAY_CONFIG))
    if not token:
        logger.warning(
            "No gateway auth secret found (env OPENCLAW_TOKEN, config.yaml gateway.token "
            "or ~/.openclaw/openclaw.json); polls will fail until one is configured"
        )
    return token


class CodexLimitsApp:
    """Main application orchestrator."""

    def __init__(self, config: dict):
        self.config = config

        # Server config
        self.host = config.get("server", {}).get("host", "0.0.0.0")
        self.port = config.get("server", {}).get("port", 7030)

        gateway_config = config.get("gateway", {})
        relay_config = config.get("relay", {})
        monitor_config = config.get("monitor", {})

        self.check_every_ms = monitor_config.get("check_every_ms", 60000)

        self.settings = SettingsStore(
            state_file=config.get("paths", {}).get("state_file", "state.local.json"),
            default_interval=default_interval_minutes(self.check_every_ms),
        )

        self.client = GatewayClient(
            base_url=gateway_config.get("url", DEFAULT_GATEWAY_URL),
            token=resolve_gateway_token(config),
            session_key=gateway_config.get("session_key", "main"),
            channel=relay_config.get("channel", "telegram"),
            target=str(relay_config.get("target", "")),
            silent=relay_config.get("silent", True),
        )

        self.dispatcher = NotificationDispatcher(
            client=self.client,
            settings=self.settings,
            cache=PollCache(),
        )
        self.scheduler = PollScheduler(
            self.dispatcher,
            min_wait_seconds=monitor_config.get("min_wait_seconds", MIN_WAIT_SECONDS),
        )

        self.app = create_app(
            settings=self.settings,
            dispatcher=self.dispatcher,
            scheduler=self.scheduler,
            config=config,
        )

    async def start(self):
        """Start the poll scheduler and serve the API until shutdown."""
        policy = self.settings.policy
        logger.info(f"Starting Codex limits on http://{self.host}:{self.port}")
        logger.info(f"gateway={self.client.base_url} sessionKey={self.client.session_key}")
        logger.info(
            f"interval={policy.notification_interval_minutes}m pushEnabled={policy.push_enabled} "
            f"state={self.settings.state_file}"
        )

        await self.scheduler.start()

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="info",
        )
        server = uvicorn.Server(config)
        await server.serve()

    async def stop(self):
        """Stop all components."""
        logger.info("Stopping Codex limits...")
        await self.scheduler.stop()
        logger.info("Shutdown complete")


async def main():
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = apply_env_overrides(load_config(os.environ.get("CODEX_LIMITS_CONFIG", "config.yaml")))

    app = CodexLimitsApp(config)
    try:
        await app.start()
    finally:
        await app.stop()


def run():
    """Entry point for console script."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
