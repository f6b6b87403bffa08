"""EMS bridge - wires EMS commands to the Biamp DSP.

This module contains the high-level controller with:
- Room and camera objects built from the configuration
- Mute, crosspoint routing and preset recall on the DSP
- Acknowledgements for everything the DSP carries out
- Status replies built from the room state the EMS reported
- EMSSession and BiampSession creation and lifecycle

Commands arrive through a MultiplexingListener: BridgeListener translates them
into DSP actions, external listeners receive the same events."""

import logging
from typing import Any, Optional

from pyems.biamp import BiampSession
from pyems.config import EMSConfig, load_config
from pyems.dispatch import ALL_ROOMS
from pyems.frame import ack, encode_commands
from pyems.listener import EMSListener, MultiplexingListener
from pyems.objects import DeviceObject, DeviceRegistry, Mute
from pyems.protocol import EMSSession
from pyems.rooms import Camera, Room

# Tesira instance tags driven by the bridge
MUTE_INSTANCE = "Mute1"
ROUTER_INSTANCE = "Router1"


class BridgeListener(EMSListener):
    """Listener that carries out EMS commands on the bridge."""

    def __init__(self, bridge: "EMSBridge"):
        self._bridge = bridge

    def room_state_changed(self, room_id: str, value: str, kind: str, all_rooms: bool):
        self._bridge._set_room_states(room_id, value, kind, all_rooms)

    def mute_requested(self, room_index: int, mute: bool):
        self._bridge._update_mute(room_index, mute)

    def route_requested(self, input_id: int, output_id: int, route: bool, all_rooms: bool):
        self._bridge._update_route(input_id, output_id, route, all_rooms)

    def preset_requested(self, name: str):
        self._bridge._recall_preset(name)

    def message_play(self, player: int, message: int):
        self._bridge._acknowledge_message("Play", player, message)

    def message_record(self, player: int, message: int):
        self._bridge._acknowledge_message("Record", player, message)

    def message_delete(self, player: int, message: int):
        self._bridge._acknowledge_message("Delete", player, message)

    def message_stop(self, player: int, message: int):
        self._bridge._acknowledge_message("Stop", player)

    def status_requested(self, room_ids: list[str]):
        self._bridge._reply_status(room_ids)

    def ping_received(self, acknowledgement: bool):
        # Only pings from the EMS are answered, never its answers to ours
        if not acknowledgement:
            self._bridge._reply(ack("Ping"))

    def device_connected(self):
        self._bridge._on_device_connected()

    def device_feedback(self, obj: DeviceObject, value: str):
        self._bridge._on_device_feedback(obj, value)


class EMSBridge:
    """Bridge between the EMS server and a Biamp Tesira.

    This class:
    - Creates and manages the EMSSession (server and client roles)
    - Creates and manages the BiampSession and its device objects
    - Keeps rooms and cameras in sync with the configuration
    - Acknowledges mute, route and preset commands once sent to a connected DSP

    External listeners registered with `register_listener` see every EMS and DSP event.
    """

    def __init__(self, config: Optional[EMSConfig] = None, config_path: Optional[str] = None):
        self._logger = logging.getLogger(__name__)
        self._config = config or EMSConfig()
        self._config_path = config_path

        self.rooms_by_id: dict[str, Room] = {}
        self.rooms_by_index: dict[int, Room] = {}
        self.cameras_by_ip: dict[str, Camera] = {}

        # Create multiplexing listener for external listeners
        self._multiplex_callback = MultiplexingListener()

        # Register internal listener to carry out EMS commands
        self._bridge_listener = BridgeListener(self)
        self._multiplex_callback.register_listener(self._bridge_listener)

        self._ems = EMSSession(
            self._multiplex_callback,
            self._config.server_ip,
            self._config.server_port,
            idle_timeout=self._config.idle_timeout,
        )
        self._biamp = BiampSession(
            self._config.biamp_ip,
            self._config.username,
            self._config.password,
            self._multiplex_callback,
            pacing=self._config.pacing,
        )
        self._registry = DeviceRegistry(self._biamp)

        self._build_rooms()
        self.set_debug(self._config.debug)

    @property
    def config(self) -> EMSConfig:
        return self._config

    @property
    def ems(self) -> EMSSession:
        return self._ems

    @property
    def biamp(self) -> BiampSession:
        return self._biamp

    @property
    def registry(self) -> DeviceRegistry:
        return self._registry

    @property
    def rooms(self) -> list[Room]:
        """Configured rooms in configuration order."""
        return [self.rooms_by_index[index] for index in sorted(self.rooms_by_index)]

    def register_listener(self, listener: EMSListener):
        """Register external listener for EMS and DSP events."""
        self._multiplex_callback.register_listener(listener)

    def unregister_listener(self, listener: EMSListener):
        """Unregister external listener."""
        self._multiplex_callback.unregister_listener(listener)

    # ========== Lifecycle ==========

    async def open(self):
        """Start the EMS server and connect to the DSP."""
        await self._ems.start_server(self._config.listen_host, self._config.listen_port)
        if not await self._biamp.async_connect():
            self._logger.warning("Biamp not connected, commands will queue until reconnected")

    async def close(self):
        """Stop the EMS server, drop the EMS client and disconnect from the DSP."""
        self._ems.close()
        await self._biamp.close()
        for camera in self.cameras_by_ip.values():
            camera.close()

    async def reload_config(self, path: Optional[str] = None) -> EMSConfig:
        """Load the configuration again and apply it.

        Raises ConfigError if the file cannot be loaded; the running configuration is kept.
        """
        path = path or self._config_path
        config = load_config(path) if path else load_config()
        self._config_path = path

        old = self._config
        self._config = config
        self._build_rooms()
        self.set_debug(config.debug)

        if (config.server_ip, config.server_port) != (old.server_ip, old.server_port):
            self._ems.set_client_address(config.server_ip, config.server_port)
        if (config.listen_host, config.listen_port) != (old.listen_host, old.listen_port):
            self._logger.warning("Listen address changed, restart the EMS server to apply it")
        if config.biamp_ip != self._biamp.hostname:
            await self.set_biamp_address(config.biamp_ip)
        return config

    def set_debug(self, state: bool):
        """Switch package logging between DEBUG and INFO."""
        self._config.debug = state
        logging.getLogger("pyems").setLevel(logging.DEBUG if state else logging.INFO)
        self._logger.info(f"EMS Debug State: {'on' if state else 'off'}")

    def set_ems_address(self, ip_address: str, port: Optional[int] = None):
        self._config.server_ip = ip_address
        if port is not None:
            self._config.server_port = port
        self._ems.set_client_address(ip_address, port)

    async def set_biamp_address(self, ip_address: str) -> bool:
        """Point the DSP session at another Tesira and reconnect."""
        self._logger.info(f"Changed Biamp ip from {self._biamp.hostname} to {ip_address}")
        self._config.biamp_ips[0] = ip_address
        self._biamp.disconnect()
        self._biamp.hostname = ip_address
        return await self._biamp.async_connect()

    async def reconnect_biamp(self) -> bool:
        self._biamp.disconnect()
        return await self._biamp.async_connect()

    def status(self) -> dict[str, Any]:
        server_address = self._ems.server_address
        client_host, client_port = self._ems.client_address
        return {
            "ems": {
                "server_running": self._ems.server_running,
                "server_address": list(server_address) if server_address else None,
                "peers": self._ems.peer_count,
                "client_connected": self._ems.client_connected(),
                "client_address": [client_host, client_port],
            },
            "biamp": {
                "hostname": self._biamp.hostname,
                "state": self._biamp.state.value,
                "pending_commands": self._biamp.pending_commands,
                "objects": len(self._registry),
            },
            "rooms": [
                {
                    "id": room.room_id,
                    "index": room.index,
                    "label": room.label,
                    "state": room.state.name,
                    "muted": room.muted,
                }
                for room in self.rooms
            ],
            "cameras": [
                {"ip": camera.ip_address, "label": camera.label}
                for camera in self.cameras_by_ip.values()
            ],
            "debug": self._config.debug,
        }

    # ========== Rooms and cameras ==========

    def get_room(self, room_id: str) -> Optional[Room]:
        """Look up a room by ID (RM01) or by its 1-based index (1)."""
        room = self.rooms_by_id.get(room_id)
        if room is None and room_id.isdigit():
            room = self.rooms_by_index.get(int(room_id))
        return room

    def _build_rooms(self):
        for camera in self.cameras_by_ip.values():
            camera.close()
        self.rooms_by_id.clear()
        self.rooms_by_index.clear()
        self.cameras_by_ip.clear()

        for index, room_id, label in self._config.configured_rooms():
            room = Room(room_id, self._ems.client_send, index=index, label=label)
            self.rooms_by_id[room_id] = room
            self.rooms_by_index[index] = room

        for _, ip_address, label in self._config.configured_cameras():
            self.cameras_by_ip[ip_address] = Camera(
                ip_address, self._ems.client_send, listener=self._multiplex_callback, label=label
            )
        self._logger.info(f"Configured {len(self.rooms_by_id)} rooms and {len(self.cameras_by_ip)} cameras")

    def _set_room_states(self, room_id: str, value: str, kind: str, all_rooms: bool):
        if all_rooms:
            for room in self.rooms:
                room.apply(kind, value)
                self._logger.debug(f"Room {room.room_id} {kind} set: {room!r}")
            return
        room = self.get_room(room_id)
        if room is None:
            self._logger.warning(f"Room {room_id} is not configured")
            return
        room.apply(kind, value)
        self._logger.debug(f"Room {room.room_id} {kind} set: {room!r}")

    # ========== DSP actions ==========

    def _reply(self, frame: str):
        self._ems.send_to_peers(frame)

    def _update_mute(self, room_index: int, mute: bool):
        if room_index == 0:
            for index in sorted(self.rooms_by_index):
                self._mute_room(index, mute)
        else:
            self._mute_room(room_index, mute)

    def _mute_room(self, room_index: int, mute: bool):
        biamp_mute = self._registry.mute(MUTE_INSTANCE, room_index)
        if mute:
            biamp_mute.set_mute_on()
            self._logger.info(f"Muting Biamp: Instance {MUTE_INSTANCE} Channel {room_index}")
        else:
            biamp_mute.set_mute_off()
            self._logger.info(f"UnMuting Biamp: Instance {MUTE_INSTANCE} Channel {room_index}")
        if self._biamp.is_connected:
            self._reply(ack("Mute", f"RM{room_index:02d}", 1 if mute else 0))

    def _update_route(self, input_id: int, output_id: int, route: bool, all_rooms: bool):
        if all_rooms and route:
            for index in sorted(self.rooms_by_index):
                self._route(input_id, index + self._config.matrix_offset, route)
        else:
            self._route(input_id, output_id, route)

    def _route(self, input_id: int, output_id: int, route: bool):
        crosspoint = self._registry.crosspoint(ROUTER_INSTANCE, input_id, output_id)
        if route:
            crosspoint.set_on()
            self._logger.info(f"Routing Biamp input {input_id} to output {output_id}")
        else:
            crosspoint.set_off()
            self._logger.info(f"Unrouting Biamp input {input_id} to output {output_id}")
        if self._biamp.is_connected:
            self._reply(ack("Route" if route else "Clear", input_id, output_id))

    def _recall_preset(self, name: str):
        # Input_<in>_Clear or Input_<in>_<zone>
        self._biamp.recall_preset_by_name(name)
        self._logger.info(f"Setting Biamp Preset {name}")
        parts = name.split("_", 2)
        if len(parts) < 3:
            self._logger.warning(f"Preset {name} is not an input preset, not acknowledged")
            return
        input_id, target = parts[1], parts[2]
        if not self._biamp.is_connected:
            return
        if target == "Clear":
            self._reply(ack("Clear", input_id, 0))
        else:
            self._reply(ack("Zone", input_id, target))

    def _acknowledge_message(self, verb: str, player: int, message: Optional[int] = None):
        if player < 1:
            self._logger.warning(f"Message {verb} for player {player} ignored")
            return
        if message is None:
            self._logger.info(f"Message {verb} on player {player}")
            self._reply(ack(verb, player))
        else:
            self._logger.info(f"Message {verb} {message} on player {player}")
            self._reply(ack(verb, player, message))

    def _reply_status(self, room_ids: list[str]):
        if room_ids and room_ids[0] == ALL_ROOMS:
            rooms = self.rooms
        else:
            rooms = []
            for room_id in room_ids:
                room = self.get_room(room_id)
                if room is None:
                    self._logger.warning(f"Status requested for unconfigured room {room_id}")
                else:
                    rooms.append(room)
        if not rooms:
            self._logger.warning("No configured rooms to report status for")
            return
        self._reply(encode_commands([("ACK", "Status", room.room_id, int(room.state)) for room in rooms]))

    def _on_device_connected(self):
        # Subscriptions do not survive the shell, register them on every connect
        self._registry.resubscribe()

    def _on_device_feedback(self, obj: DeviceObject, value: str):
        match obj:
            case Mute(instance=instance, index=index) if instance == MUTE_INSTANCE:
                room = self.rooms_by_index.get(index)
                if room is not None:
                    room.muted = value == "true"
