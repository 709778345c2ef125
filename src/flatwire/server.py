# src/flatwire/server.py
"""Starlette ASGI application for the flatwire ingest endpoint.

Every route key of the route table is served as ``POST /<route key>``.
The request body must be a JSON object; it is handed to the dispatch
coordinator and the request is answered as soon as the tasks are
spawned. Downstream outcomes (flattening, sink writes) are never
reported back to the sender.

Usage:
    from flatwire.server import create_app, IngestServer

    app = create_app(coordinator)

    # Or use the server class for more control
    server = IngestServer(coordinator)
    app = server.app
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from flatwire import __version__
from flatwire.engine.dispatch import DispatchCoordinator

logger = structlog.get_logger(__name__)

type Endpoint = Callable[[Request], Awaitable[JSONResponse]]


def route_path(route_key: str) -> str:
    """URL path serving a route key."""
    return "/" + route_key.strip("/")


class IngestServer:
    """Ingest server wrapping a dispatch coordinator.

    Owns the Starlette app; the coordinator (and its sink) stay owned by
    the caller.
    """

    def __init__(self, coordinator: DispatchCoordinator) -> None:
        self._coordinator = coordinator
        self._app = self._create_app()

    def _create_app(self) -> Starlette:
        """Create the Starlette application with one route per route key."""
        routes = [Route("/health", self._health_endpoint, methods=["GET"])]
        for route_key in self._coordinator.definitions.route_keys:
            path = route_path(route_key)
            if path == "/health":
                logger.warning("route_shadowed", route=route_key, path=path)
                continue
            if "{" in path or "}" in path:
                # Starlette would compile the braces into a catch-all path parameter
                logger.warning("route_key_rejected", route=route_key, path=path)
                continue
            routes.append(Route(path, self._make_ingest_endpoint(route_key), methods=["POST"]))
        return Starlette(routes=routes)

    @property
    def app(self) -> Starlette:
        """Get the Starlette application."""
        return self._app

    @property
    def coordinator(self) -> DispatchCoordinator:
        return self._coordinator

    # === Endpoint handlers ===

    async def _health_endpoint(self, request: Request) -> JSONResponse:
        """Handle GET /health."""
        return JSONResponse(
            {
                "status": "healthy",
                "version": __version__,
                "routes": self._coordinator.definitions.route_keys,
                "dispatch": self._coordinator.get_stats(),
            }
        )

    def _make_ingest_endpoint(self, route_key: str) -> Endpoint:
        async def endpoint(request: Request) -> JSONResponse:
            return await self._ingest(route_key, request)

        endpoint.__name__ = f"ingest_{route_key}"
        return endpoint

    async def _ingest(self, route_key: str, request: Request) -> JSONResponse:
        """Decode a telemetry message and dispatch it."""
        body = await request.body()
        try:
            tree: Any = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.info("message_rejected", route=route_key, reason="invalid JSON", error=str(e))
            return _error_response(f"Invalid JSON body: {e}")

        if not isinstance(tree, dict):
            logger.info("message_rejected", route=route_key, reason="not an object")
            return _error_response(f"Body must be a JSON object, got {type(tree).__name__}")

        tasks = self._coordinator.on_message(route_key, tree)
        return JSONResponse({"status": "accepted", "tasks": tasks})


def _error_response(message: str) -> JSONResponse:
    return JSONResponse({"error": {"type": "invalid_request", "message": message}}, status_code=400)


def create_app(coordinator: DispatchCoordinator) -> Starlette:
    """Create a Starlette ASGI application for a coordinator.

    Convenience function for simple use cases. The server instance is
    attached as ``app.state.server``.
    """
    server = IngestServer(coordinator)
    server.app.state.server = server
    return server.app
