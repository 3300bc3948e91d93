"""
Cloudflare Quick Tunnel Manager - Zero Configuration Required

Uses `pycloudflared`, which downloads the cloudflared binary on first use.
Quick tunnels need no Cloudflare account. One tunnel at most per manager.
"""

import json
import logging
import time
from pathlib import Path
from typing import Optional

from pycloudflared import try_cloudflare

from async_recorder.core.config import Settings

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/webhook"


class TunnelManager:
    """Owns zero or one Cloudflare quick tunnel exposing the local API."""

    def __init__(self, settings: Settings, launcher=try_cloudflare):
        self.settings = settings
        self._launcher = launcher
        self._tunnel = None
        self._port: Optional[int] = None
        self._public_url: Optional[str] = None
        self.webhook_url: Optional[str] = settings.WEBHOOK_URL

    def start(self, port: int = None) -> Optional[str]:
        """Start the tunnel. Returns the public webhook URL, or None on failure."""
        # A configured WEBHOOK_URL (e.g. production) means no tunnel is needed
        if self.settings.WEBHOOK_URL:
            logger.info(f"[Tunnel] Webhook URL configured via ENV: {self.settings.WEBHOOK_URL}")
            self.webhook_url = self.settings.WEBHOOK_URL
            self.write_runtime_config()
            return self.webhook_url

        if self.is_running():
            logger.warning(f"[Tunnel] Already running at {self._public_url}, not starting another")
            return self.webhook_url

        port = port or self.settings.API_PORT
        try:
            logger.info(f"[Tunnel] Starting Cloudflare tunnel for port {port}...")
            self._tunnel = self._launcher(port=port)
            self._port = port
            self._public_url = self._tunnel.tunnel
        except Exception as e:
            logger.error(f"[Tunnel] Tunnel failed: {e}")
            self._tunnel = None
            self._public_url = None

        if self._public_url:
            self.webhook_url = f"{self._public_url}{WEBHOOK_PATH}"
            logger.info(f"[Tunnel] Cloudflare Tunnel: {self._public_url} -> localhost:{port}")
        else:
            logger.error("[Tunnel] Failed to get tunnel URL")
            self.webhook_url = None

        self.write_runtime_config()
        return self.webhook_url

    def stop(self):
        """Stops the current tunnel."""
        if self._tunnel is not None:
            try:
                self._launcher.terminate(self._port)
            except Exception as e:
                logger.debug(f"[Tunnel] Error stopping tunnel: {e}")
            finally:
                self._tunnel = None
                self._port = None
        self._public_url = None
        if not self.settings.WEBHOOK_URL:
            self.webhook_url = None

    def is_running(self) -> bool:
        return self._tunnel is not None and self._public_url is not None

    def get_url(self) -> Optional[str]:
        return self._public_url

    def status(self) -> dict:
        return {
            "active": self.is_running(),
            "webhook_url": self.webhook_url,
            "provider": "cloudflare"
        }

    def write_runtime_config(self):
        """Writes runtime.json so the desktop shell can discover the URLs."""
        runtime_file = Path(self.settings.RUNTIME_CONFIG_PATH)
        runtime_config = {
            "api_url": f"http://localhost:{self.settings.API_PORT}",
            "webhook_url": self.webhook_url,
            "tunnel_provider": "cloudflare",
            "updated_at": int(time.time() * 1000)
        }
        try:
            with open(runtime_file, "w") as f:
                json.dump(runtime_config, f, indent=2)
            logger.info(f"[Tunnel] Runtime config written: {runtime_file}")
        except OSError as e:
            logger.error(f"[Tunnel] Runtime config write failed: {e}")
