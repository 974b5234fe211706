"""
Health endpoint served by every peer.

Other peers fetch ``/health`` as their HTTP reachability check. The reply
names the slot this peer currently holds, so a prober can tell a live
owner from a peer that has since migrated to a lower slot. While a claim
is in flight the reply also carries ``claiming``: the slot being confirmed.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import psutil
from aiohttp import web

from ..core.config import SwarmConfig
from ..discovery.monitor import SelfHealMonitor


class HealthServer:
    """
    Small aiohttp application exposing peer health and status
    """

    def __init__(self, config: SwarmConfig, monitor: SelfHealMonitor, host: str = "0.0.0.0"):
        self.config = config
        self.monitor = monitor
        self.host = host
        self.logger = logging.getLogger(f"HealthServer-{config.host_prefix}")
        self.started_at = time.time()
        self.app = web.Application()
        self.setup_routes()
        self._runner: Optional[web.AppRunner] = None

    def setup_routes(self):
        """Setup HTTP routes for the peer"""
        self.app.router.add_get(self.config.health_path, self.health_check)
        self.app.router.add_get('/status', self.get_status)

    def get_peer_info(self) -> Dict[str, Any]:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        assignment = self.monitor.assignment
        if assignment is None:
            info = {"status": "unconfigured", "timestamp": timestamp}
        else:
            info = {
                "peer": assignment.peer_host,
                "slot": assignment.slot_index,
                "domain": assignment.hostname,
                "status": "alive",
                "timestamp": timestamp,
            }
        # a slot written but not yet confirmed is still ours to defend
        pending = self.monitor.pending_claim
        if pending:
            info["claiming"] = pending
        return info

    async def health_check(self, request):
        """Health check endpoint"""
        return web.json_response(self.get_peer_info(), headers={"Access-Control-Allow-Origin": "*"})

    async def get_status(self, request):
        """Peer status plus host load"""
        assignment = self.monitor.assignment
        return web.json_response({
            **self.get_peer_info(),
            "monitor_state": self.monitor.state.value,
            "last_heartbeat": assignment.to_dict()["last_heartbeat"] if assignment else None,
            "uptime": round(time.time() - self.started_at, 1),
            "system_info": {
                "cpu_percent": psutil.cpu_percent(),
                "memory_percent": psutil.virtual_memory().percent,
            },
        })

    async def start(self):
        """Start serving on ``health_port``"""
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.config.health_port)
        await site.start()

        self.logger.info(f"Health endpoint listening on {self.host}:{self.config.health_port}{self.config.health_path}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self.logger.info("Health endpoint stopped")
