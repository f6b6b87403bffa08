import asyncio
import logging
import socket
from asyncio import Semaphore, Task
from typing import Any, Optional

from pyems.dispatch import CommandDispatcher
from pyems.frame import DELIMITER
from pyems.listener import EMSListener

# Number of EMS peers the server role accepts at once
MAX_PEERS = 2
# Seconds without a send before the connection to the EMS server is dropped
CLIENT_IDLE_TIMEOUT = 8.0
CLIENT_CONNECT_TIMEOUT = 5.0


class EMSPeerProtocol(asyncio.Protocol):
    """Connection accepted from an EMS peer, occupying one server slot."""

    def __init__(self, session: "EMSSession", slot: int):
        self._session = session
        self._slot = slot
        self._transport = None

    def connection_made(self, transport):
        """Method from asyncio.Protocol"""
        self._transport = transport
        self._session._peer_connected(self._slot, transport)

    def data_received(self, data):
        """Method from asyncio.Protocol"""
        self._session.process(data.decode("ascii", errors="ignore"))

    def connection_lost(self, exc):
        """Method from asyncio.Protocol"""
        self._session._peer_disconnected(self._slot, self._transport, exc)


class EMSClientProtocol(asyncio.Protocol):
    """Outbound connection to the EMS server."""

    def __init__(self, session: "EMSSession"):
        self._session = session
        self.eof = False

    def data_received(self, data):
        """Method from asyncio.Protocol"""
        self._session.process(data.decode("utf-8", errors="replace"))

    def eof_received(self):
        """Method from asyncio.Protocol"""
        self.eof = True
        return False

    def connection_lost(self, exc):
        """Method from asyncio.Protocol"""
        self._session._client_lost(self, exc)


class EMSSession:
    """TCP side of the bridge: a server for EMS peers and a client to the EMS server.

    Everything received in either role is run through the command dispatcher,
    and every acknowledgement is broadcast to all connected peers.
    """

    def __init__(
        self,
        callback: EMSListener,
        client_hostname: Optional[str] = None,
        client_port: Optional[int] = None,
        idle_timeout: float = CLIENT_IDLE_TIMEOUT,
        max_peers: int = MAX_PEERS,
    ):
        self._logger = logging.getLogger(__name__)
        self._callback = callback
        self._dispatcher = CommandDispatcher(callback, self.send_to_peers)

        # Server role
        self._server_socket: Optional[socket.socket] = None
        self._accept_task: Optional[Task[Any]] = None
        self._peers: list[Optional[asyncio.Transport]] = [None] * max_peers
        self._free_slots: Optional[Semaphore] = None

        # Client role
        self._client_hostname = client_hostname
        self._client_port = client_port
        self._idle_timeout = idle_timeout
        self._client_transport: Optional[asyncio.Transport] = None
        self._client_protocol: Optional[EMSClientProtocol] = None
        self._idle_watchdog_task: Optional[Task[Any]] = None
        self._idle_deadline: float = 0.0
        self._client_lock = asyncio.Lock()

    def process(self, text: str):
        """Run received text through the frame codec and dispatch table."""
        self._logger.debug(f"Received data: {text!r}")
        self._dispatcher.process(text)

    # ========== Server role ==========

    @property
    def server_running(self) -> bool:
        return self._server_socket is not None

    @property
    def server_address(self) -> Optional[tuple[str, int]]:
        if self._server_socket is None:
            return None
        return self._server_socket.getsockname()[:2]

    async def start_server(self, hostname: str, port: int) -> tuple[str, int]:
        """Bind the listener and start accepting EMS peers."""
        if self._server_socket is not None:
            self._logger.warning("EMS server already running")
            return self.server_address

        self._server_socket = socket.create_server((hostname, port))
        self._server_socket.setblocking(False)
        self._free_slots = Semaphore(len(self._peers))
        self._accept_task = asyncio.get_running_loop().create_task(self._accept_loop())
        self._logger.info(f"EMS server listening on {self.server_address}")
        return self.server_address

    def stop_server(self):
        """Close any connected peers, then release the listening port."""
        if self._server_socket is None:
            return
        for slot, transport in enumerate(self._peers):
            if transport is not None:
                self._logger.info(f"Closing EMS peer on slot {slot}")
                transport.abort()
                self._peers[slot] = None
        if self._accept_task is not None:
            self._accept_task.cancel()
            self._accept_task = None
        self._logger.info("Stopping EMS server port")
        self._server_socket.close()
        self._server_socket = None

    def peer_connected(self, slot: int) -> bool:
        transport = self._peers[slot]
        return transport is not None and not transport.is_closing()

    @property
    def peer_count(self) -> int:
        return sum(1 for slot in range(len(self._peers)) if self.peer_connected(slot))

    def send_to_peers(self, data: str):
        """Write a frame to every connected peer."""
        if not data.endswith(DELIMITER):
            data += DELIMITER
        message = data.encode("ascii", errors="replace")
        for slot, transport in enumerate(self._peers):
            if transport is None or transport.is_closing():
                continue
            try:
                transport.write(message)
                self._logger.debug(f"TCP sending to slot {slot}: {message}")
            except Exception as e:
                self._logger.error(f"Error sending to EMS peer on slot {slot}: {e}")

    async def _accept_loop(self):
        """Accept peers while a slot is free. Waits for a slot before accepting."""
        loop = asyncio.get_running_loop()
        while self._server_socket is not None:
            try:
                await self._free_slots.acquire()
                sock, address = await loop.sock_accept(self._server_socket)
            except asyncio.CancelledError:
                self._logger.debug("EMS accept loop cancelled")
                break
            except OSError as e:
                self._logger.error(f"EMS server stopped accepting: {e}")
                break

            slot = self._peers.index(None)
            try:
                await loop.connect_accepted_socket(
                    lambda: EMSPeerProtocol(self, slot), sock
                )
            except OSError as e:
                self._logger.error(f"Failed to set up EMS peer {address}: {e}")
                sock.close()
                self._free_slots.release()
                continue
            self._logger.info(f"EMS peer {address} connected on slot {slot}")

    def _peer_connected(self, slot: int, transport):
        self._peers[slot] = transport

    def _peer_disconnected(self, slot: int, transport, exc):
        if exc is not None:
            self._logger.error(f"Error in reading from EMS peer on slot {slot}: {exc}")
            self._callback.error(f"Lost EMS peer on slot {slot}: {exc}")
        if self._peers[slot] is not transport:
            return
        self._peers[slot] = None
        self._logger.info(f"EMS peer on slot {slot} disconnected")
        if self._free_slots is not None:
            self._free_slots.release()

    # ========== Client role ==========

    @property
    def client_address(self) -> tuple[Optional[str], Optional[int]]:
        return self._client_hostname, self._client_port

    def set_client_address(self, hostname: str, port: Optional[int] = None):
        """Point the client at another EMS server, dropping the current connection."""
        self._logger.info(f"Changed EMS server from {self._client_hostname} to {hostname}")
        self._client_hostname = hostname
        if port is not None:
            self._client_port = port
        self.client_disconnect()

    def client_connected(self) -> bool:
        return (
            self._client_transport is not None
            and not self._client_transport.is_closing()
            and not self._client_protocol.eof
        )

    async def client_send(self, data: str) -> bool:
        """Send a frame to the EMS server, dialing first if there is no healthy connection."""
        # Only one dial at a time, later senders reuse the connection it made
        async with self._client_lock:
            if not self.client_connected():
                self._logger.debug(
                    f"Making new connection to {self._client_hostname} on port {self._client_port}"
                )
                self.client_disconnect()
                await self._client_connect()
            else:
                self._logger.debug("Already connected to EMS server")

        if self._client_transport is None:
            self._logger.error(f"SEND FAILED: not connected to EMS server, dropping {data.strip()}")
            return False

        if not data.endswith(DELIMITER):
            data += DELIMITER
        try:
            self._idle_deadline = asyncio.get_running_loop().time() + self._idle_timeout
            self._logger.info(f"Sending command: {data.strip()}")
            self._client_transport.write(data.encode("ascii", errors="replace"))
        except Exception as e:
            self._logger.error(f"Sending error: {e}")
            self.client_disconnect()
            return False
        return True

    def client_disconnect(self):
        watchdog = self._idle_watchdog_task
        self._idle_watchdog_task = None
        if watchdog is not None and watchdog is not asyncio.current_task() and not watchdog.done():
            watchdog.cancel()
        if self._client_transport is not None:
            self._client_transport.close()
            self._logger.info("Client disconnected")
        self._client_transport = None
        self._client_protocol = None

    async def _client_connect(self):
        if not self._client_hostname or not self._client_port:
            self._logger.error("EMS server address not configured")
            return
        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await asyncio.wait_for(
                loop.create_connection(
                    lambda: EMSClientProtocol(self), self._client_hostname, self._client_port
                ),
                timeout=CLIENT_CONNECT_TIMEOUT,
            )
        except (OSError, asyncio.TimeoutError) as e:
            self._logger.error(f"Connection to EMS server failed: {e}")
            self._callback.error(f"Connection to EMS server failed: {e}")
            return

        self._client_transport = transport
        self._client_protocol = protocol
        self._idle_deadline = loop.time() + self._idle_timeout
        self._idle_watchdog_task = loop.create_task(self._idle_watchdog(protocol))
        self._logger.info(f"Client connected to EMS at {self._client_hostname}:{self._client_port}")

    async def _idle_watchdog(self, protocol: EMSClientProtocol):
        """Disconnect from the EMS server once no send has happened for the idle timeout."""
        loop = asyncio.get_running_loop()
        try:
            while self._client_protocol is protocol:
                remaining = self._idle_deadline - loop.time()
                if remaining <= 0:
                    self._logger.info(
                        f"No commands sent for {self._idle_timeout}s, disconnecting from EMS server"
                    )
                    self.client_disconnect()
                    break
                await asyncio.sleep(remaining)
        except asyncio.CancelledError:
            self._logger.debug("Idle watchdog cancelled")

    def _client_lost(self, protocol: EMSClientProtocol, exc):
        if exc is not None:
            self._logger.error(f"Failed reading client buffer: {exc}")
            self._callback.error(f"Lost connection to EMS server: {exc}")
        if protocol is self._client_protocol:
            self._logger.info("Receiving over")
            self.client_disconnect()

    def close(self):
        self.stop_server()
        self.client_disconnect()
