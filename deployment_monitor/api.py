"""
Deployment Monitor API Endpoints.

============================================================
PURPOSE
============================================================
HTTP API for reading monitor state.

PRINCIPLES:
- ALL endpoints are READ-ONLY
- NO lifecycle endpoints (start/stop stay in-process)
- Pure data retrieval

============================================================
"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any

from aiohttp import web

from .errors import DeploymentNotFoundError
from .monitor import DeploymentMonitor


logger = logging.getLogger(__name__)


# ============================================================
# JSON ENCODER
# ============================================================

class MonitorEncoder(json.JSONEncoder):
    """JSON encoder for monitor data."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


def json_response(data: Any, status: int = 200) -> web.Response:
    """Create JSON response."""
    return web.Response(
        text=json.dumps(data, cls=MonitorEncoder, indent=2),
        status=status,
        content_type="application/json",
    )


def error_response(message: str, status: int) -> web.Response:
    return json_response({"status": "error", "error": message}, status=status)


# ============================================================
# API HANDLERS
# ============================================================

class DeploymentAPI:
    """
    HTTP API over a DeploymentMonitor.

    ALL endpoints are READ-ONLY.
    """

    def __init__(self, monitor: DeploymentMonitor):
        """Initialize API."""
        self._monitor = monitor

    async def health(self, request: web.Request) -> web.Response:
        """
        GET /health

        Liveness plus scheduler counters.
        """
        scheduler = self._monitor.scheduler
        return json_response({
            "status": "ok",
            "data": {
                "active": self._monitor.is_active,
                "polling": scheduler.is_running,
                "interval_seconds": scheduler.interval,
                "ticks": scheduler.tick_count,
                "skipped_ticks": scheduler.skipped_count,
                "deployments": len(self._monitor.registry),
            },
        })

    # --------------------------------------------------------
    # DEPLOYMENT ENDPOINTS
    # --------------------------------------------------------

    async def get_deployments(self, request: web.Request) -> web.Response:
        """
        GET /deployments

        Summaries of all active deployments.
        """
        return json_response({
            "status": "ok",
            "data": self._monitor.get_all_deployments(),
        })

    async def get_deployment(self, request: web.Request) -> web.Response:
        """
        GET /deployments/{deployment_id}

        Full record of one active deployment.
        """
        deployment_id = request.match_info["deployment_id"]
        try:
            deployment = self._monitor.get_deployment(deployment_id)
        except DeploymentNotFoundError as e:
            return error_response(e.message, 404)

        return json_response({
            "status": "ok",
            "data": deployment.to_dict(),
        })

    async def get_history(self, request: web.Request) -> web.Response:
        """
        GET /deployments/{deployment_id}/history?limit=100

        Most recent metric history points, oldest first.
        """
        deployment_id = request.match_info["deployment_id"]
        try:
            limit = int(request.query.get("limit", 100))
        except ValueError:
            return error_response("limit must be an integer", 400)

        try:
            buffer = self._monitor.get_history(deployment_id)
        except DeploymentNotFoundError as e:
            return error_response(e.message, 404)

        points = buffer.points()
        if limit > 0:
            points = points[-limit:]

        return json_response({
            "status": "ok",
            "data": {
                "deploymentId": deployment_id,
                "capacity": buffer.capacity,
                "evicted": buffer.evicted,
                "points": [
                    {"timestamp": p.timestamp, "metrics": p.snapshot.to_dict()}
                    for p in points
                ],
            },
        })

    # --------------------------------------------------------
    # ALERT AND DASHBOARD ENDPOINTS
    # --------------------------------------------------------

    async def get_alerts(self, request: web.Request) -> web.Response:
        """
        GET /alerts?triggered=true

        Alert states, optionally only the triggered ones.
        """
        states = self._monitor.alert_states()
        if request.query.get("triggered", "").lower() == "true":
            states = [s for s in states if s.triggered]

        return json_response({
            "status": "ok",
            "data": [s.to_dict() for s in states],
        })

    async def get_dashboards(self, request: web.Request) -> web.Response:
        """
        GET /dashboards

        Dashboard definitions as configured.
        """
        return json_response({
            "status": "ok",
            "data": self._monitor.dashboards,
        })


# ============================================================
# ROUTER SETUP
# ============================================================

def create_api_app(monitor: DeploymentMonitor) -> web.Application:
    """
    Create monitor API application.

    Returns an aiohttp Application with all routes configured.
    """
    api = DeploymentAPI(monitor)

    app = web.Application()
    app.router.add_get("/health", api.health)
    app.router.add_get("/deployments", api.get_deployments)
    app.router.add_get("/deployments/{deployment_id}", api.get_deployment)
    app.router.add_get("/deployments/{deployment_id}/history", api.get_history)
    app.router.add_get("/alerts", api.get_alerts)
    app.router.add_get("/dashboards", api.get_dashboards)

    return app


def setup_monitor_routes(
    app: web.Application,
    monitor: DeploymentMonitor,
    prefix: str = "/api/monitor",
) -> None:
    """Mount the monitor API on an existing application."""
    app.add_subapp(prefix, create_api_app(monitor))
