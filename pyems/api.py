"""
Admin API - aiohttp REST server for operating a running bridge.

Endpoints:
- GET  /status           - EMS, DSP, room and camera state
- GET  /debug            - Debug logging state
- POST /debug            - {"state": "on" | "off"}
- POST /client/send      - {"data": frame} sent to the EMS server
- POST /server/send      - {"data": frame} sent to every EMS peer
- POST /server/stop      - Close the EMS server port
- POST /config/reload    - {"path": csv} (optional) reload the configuration
- GET  /ems/ip           - EMS server address
- POST /ems/ip           - {"ip": address, "port": port (optional)}
- GET  /biamp/ip         - Tesira address
- POST /biamp/ip         - {"ip": address}, reconnects the DSP session
- POST /biamp/disconnect - Disconnect the DSP session
- POST /biamp/reconnect  - Reconnect the DSP session
- GET  /biamp/status     - DSP session state
"""

import logging
from typing import Any, Callable, Optional

from aiohttp import web

from pyems.bridge import EMSBridge
from pyems.config import ConfigError

logger = logging.getLogger(__name__)


@web.middleware
async def error_handling_middleware(request: web.Request, handler: Callable) -> web.Response:
    """Format every error as {"error": message} with the matching status."""
    try:
        return await handler(request)
    except web.HTTPException as e:
        return web.json_response({"error": e.text or e.reason}, status=e.status)
    except Exception as e:
        logger.error(f"Error handling {request.method} {request.path}: {e}", exc_info=True)
        return web.json_response({"error": str(e)}, status=500)


async def _read_json(request: web.Request, required: bool = True) -> dict[str, Any]:
    if not request.can_read_body:
        if required:
            raise web.HTTPBadRequest(text="Request body required")
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(text="Request body is not valid JSON") from None
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(text="Request body must be a JSON object")
    return body


def _require(body: dict[str, Any], key: str) -> Any:
    value = body.get(key)
    if value is None or value == "":
        raise web.HTTPBadRequest(text=f"Missing field: {key}")
    return value


def _bridge(request: web.Request) -> EMSBridge:
    return request.app["bridge"]


async def status_handler(request: web.Request) -> web.Response:
    """GET /status"""
    return web.json_response(_bridge(request).status())


async def get_debug_handler(request: web.Request) -> web.Response:
    """GET /debug"""
    return web.json_response({"debug": _bridge(request).config.debug})


async def set_debug_handler(request: web.Request) -> web.Response:
    """POST /debug"""
    body = await _read_json(request)
    state = _require(body, "state")
    if state not in ("on", "off"):
        raise web.HTTPBadRequest(text="state must be 'on' or 'off'")
    bridge = _bridge(request)
    bridge.set_debug(state == "on")
    return web.json_response({"debug": bridge.config.debug})


async def client_send_handler(request: web.Request) -> web.Response:
    """POST /client/send"""
    body = await _read_json(request)
    data = str(_require(body, "data"))
    sent = await _bridge(request).ems.client_send(data)
    return web.json_response({"sent": sent})


async def server_send_handler(request: web.Request) -> web.Response:
    """POST /server/send"""
    body = await _read_json(request)
    data = str(_require(body, "data"))
    ems = _bridge(request).ems
    ems.send_to_peers(data)
    return web.json_response({"peers": ems.peer_count})


async def server_stop_handler(request: web.Request) -> web.Response:
    """POST /server/stop"""
    ems = _bridge(request).ems
    ems.stop_server()
    return web.json_response({"server_running": ems.server_running})


async def config_reload_handler(request: web.Request) -> web.Response:
    """POST /config/reload"""
    body = await _read_json(request, required=False)
    path: Optional[str] = body.get("path")
    try:
        config = await _bridge(request).reload_config(path)
    except ConfigError as e:
        raise web.HTTPBadRequest(text=str(e)) from e
    return web.json_response({"config": config.to_dict()})


async def get_ems_ip_handler(request: web.Request) -> web.Response:
    """GET /ems/ip"""
    hostname, port = _bridge(request).ems.client_address
    return web.json_response({"ip": hostname, "port": port})


async def set_ems_ip_handler(request: web.Request) -> web.Response:
    """POST /ems/ip"""
    body = await _read_json(request)
    ip_address = str(_require(body, "ip"))
    port = body.get("port")
    if port is not None:
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise web.HTTPBadRequest(text=f"Bad port: {port}") from None
    bridge = _bridge(request)
    bridge.set_ems_address(ip_address, port)
    hostname, port = bridge.ems.client_address
    return web.json_response({"ip": hostname, "port": port})


async def get_biamp_ip_handler(request: web.Request) -> web.Response:
    """GET /biamp/ip"""
    return web.json_response({"ip": _bridge(request).biamp.hostname})


async def set_biamp_ip_handler(request: web.Request) -> web.Response:
    """POST /biamp/ip"""
    body = await _read_json(request)
    ip_address = str(_require(body, "ip"))
    connected = await _bridge(request).set_biamp_address(ip_address)
    return web.json_response({"ip": ip_address, "connected": connected})


async def biamp_disconnect_handler(request: web.Request) -> web.Response:
    """POST /biamp/disconnect"""
    disconnected = _bridge(request).biamp.disconnect()
    return web.json_response({"disconnected": disconnected})


async def biamp_reconnect_handler(request: web.Request) -> web.Response:
    """POST /biamp/reconnect"""
    connected = await _bridge(request).reconnect_biamp()
    return web.json_response({"connected": connected})


async def biamp_status_handler(request: web.Request) -> web.Response:
    """GET /biamp/status"""
    biamp = _bridge(request).biamp
    return web.json_response({
        "connected": biamp.is_connected,
        "state": biamp.state.value,
        "pending_commands": biamp.pending_commands,
    })


def setup_routes(app: web.Application) -> None:
    app.router.add_get("/status", status_handler)
    app.router.add_get("/debug", get_debug_handler)
    app.router.add_post("/debug", set_debug_handler)
    app.router.add_post("/client/send", client_send_handler)
    app.router.add_post("/server/send", server_send_handler)
    app.router.add_post("/server/stop", server_stop_handler)
    app.router.add_post("/config/reload", config_reload_handler)
    app.router.add_get("/ems/ip", get_ems_ip_handler)
    app.router.add_post("/ems/ip", set_ems_ip_handler)
    app.router.add_get("/biamp/ip", get_biamp_ip_handler)
    app.router.add_post("/biamp/ip", set_biamp_ip_handler)
    app.router.add_post("/biamp/disconnect", biamp_disconnect_handler)
    app.router.add_post("/biamp/reconnect", biamp_reconnect_handler)
    app.router.add_get("/biamp/status", biamp_status_handler)


def create_app(bridge: EMSBridge) -> web.Application:
    app = web.Application(middlewares=[error_handling_middleware])
    app["bridge"] = bridge
    setup_routes(app)
    return app


class APIServer:
    """Admin API served next to the bridge on the same event loop."""

    def __init__(self, bridge: EMSBridge, host: str = "127.0.0.1", port: int = 8080):
        self.bridge = bridge
        self.host = host
        self.port = port

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def start(self) -> None:
        """Start the API server (non-blocking)."""
        if self.is_running:
            logger.warning("API server already running")
            return

        self._runner = web.AppRunner(create_app(self.bridge))
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info(f"API server started on {self.url}")

    async def stop(self) -> None:
        if not self.is_running:
            return

        logger.info("Stopping API server...")
        if self._site:
            await self._site.stop()
            self._site = None
        await self._runner.cleanup()
        self._runner = None
        logger.info("API server stopped")
