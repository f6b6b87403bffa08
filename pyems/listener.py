from abc import ABC, abstractmethod
from typing import List
import logging


class EMSListener(ABC):

    @abstractmethod
    def room_state_changed(self, room_id: str, value: str, kind: str, all_rooms: bool):
        """Called for each room addressed by a Room command.

        Args:
            room_id: Room ID as sent by the EMS (e.g. "RM01"), "0" for all rooms
            value: Raw value field of the command
            kind: One of "status", "privacy" or "mute"
            all_rooms: Whether the command used the all-rooms sentinel
        """
        pass

    @abstractmethod
    def mute_requested(self, room_index: int, mute: bool):
        """Called when a room should be muted on the DSP. Index 0 means all rooms."""
        pass

    @abstractmethod
    def route_requested(self, input_id: int, output_id: int, route: bool, all_rooms: bool):
        pass

    @abstractmethod
    def preset_requested(self, name: str):
        pass

    def message_play(self, player: int, message: int):
        pass

    def message_record(self, player: int, message: int):
        pass

    def message_delete(self, player: int, message: int):
        pass

    def message_stop(self, player: int, message: int):
        pass

    def status_requested(self, room_ids: list[str]):
        # By default, do nothing but can be overwritten to answer status requests.
        pass

    def ping_received(self, acknowledgement: bool):
        pass

    def camera_preset_saved(self, camera_ip: str, number: int):
        pass

    def device_connected(self):
        pass

    def device_disconnected(self):
        pass

    def device_line_received(self, line: str):
        pass

    def device_feedback(self, obj, value: str):
        """Called when a registered device object receives feedback from the DSP."""
        pass

    def error(self, error_message: str):
        # By default, do nothing but can be overwritten to be notified of these messages.
        pass


class MultiplexingListener(EMSListener):

    _listeners: List[EMSListener]

    def __init__(self):
        self._listeners = []

    def room_state_changed(self, room_id: str, value: str, kind: str, all_rooms: bool):
        for listener in self._listeners:
            listener.room_state_changed(room_id, value, kind, all_rooms)

    def mute_requested(self, room_index: int, mute: bool):
        for listener in self._listeners:
            listener.mute_requested(room_index, mute)

    def route_requested(self, input_id: int, output_id: int, route: bool, all_rooms: bool):
        for listener in self._listeners:
            listener.route_requested(input_id, output_id, route, all_rooms)

    def preset_requested(self, name: str):
        for listener in self._listeners:
            listener.preset_requested(name)

    def message_play(self, player: int, message: int):
        for listener in self._listeners:
            listener.message_play(player, message)

    def message_record(self, player: int, message: int):
        for listener in self._listeners:
            listener.message_record(player, message)

    def message_delete(self, player: int, message: int):
        for listener in self._listeners:
            listener.message_delete(player, message)

    def message_stop(self, player: int, message: int):
        for listener in self._listeners:
            listener.message_stop(player, message)

    def status_requested(self, room_ids: list[str]):
        for listener in self._listeners:
            listener.status_requested(room_ids)

    def ping_received(self, acknowledgement: bool):
        for listener in self._listeners:
            listener.ping_received(acknowledgement)

    def camera_preset_saved(self, camera_ip: str, number: int):
        for listener in self._listeners:
            listener.camera_preset_saved(camera_ip, number)

    def device_connected(self):
        for listener in self._listeners:
            listener.device_connected()

    def device_disconnected(self):
        for listener in self._listeners:
            listener.device_disconnected()

    def device_line_received(self, line: str):
        for listener in self._listeners:
            listener.device_line_received(line)

    def device_feedback(self, obj, value: str):
        for listener in self._listeners:
            listener.device_feedback(obj, value)

    def error(self, error_message: str):
        for listener in self._listeners:
            listener.error(error_message)

    def register_listener(self, listener: EMSListener):
        self._listeners.append(listener)

    def unregister_listener(self, listener: EMSListener):
        if listener in self._listeners:
            self._listeners.remove(listener)
        else:
            logging.info("Listener isn't registered")


class LoggingListener(EMSListener):

    def __init__(self, logger = logging):
        self.logger = logger

    def room_state_changed(self, room_id: str, value: str, kind: str, all_rooms: bool):
        target = "all rooms" if all_rooms else room_id
        self.logger.info(f"Room {kind} for {target}: {value}")

    def mute_requested(self, room_index: int, mute: bool):
        self.logger.info(f"Mute requested for room {room_index}: {mute}")

    def route_requested(self, input_id: int, output_id: int, route: bool, all_rooms: bool):
        action = "Route" if route else "Unroute"
        self.logger.info(f"{action} input {input_id} to output {output_id} (all rooms: {all_rooms})")

    def preset_requested(self, name: str):
        self.logger.info(f"Preset requested: {name}")

    def message_play(self, player: int, message: int):
        self.logger.info(f"Play message {message} on player {player}")

    def message_record(self, player: int, message: int):
        self.logger.info(f"Record message {message} on player {player}")

    def message_delete(self, player: int, message: int):
        self.logger.info(f"Delete message {message} on player {player}")

    def message_stop(self, player: int, message: int):
        self.logger.info(f"Stop message {message} on player {player}")

    def status_requested(self, room_ids: list[str]):
        self.logger.info(f"Status requested for rooms: {room_ids}")

    def ping_received(self, acknowledgement: bool):
        self.logger.info("Ping acknowledged" if acknowledgement else "Ping received")

    def camera_preset_saved(self, camera_ip: str, number: int):
        self.logger.info(f"Camera {camera_ip} preset {number} saved")

    def device_connected(self):
        self.logger.info("Device connected")

    def device_disconnected(self):
        self.logger.info("Device disconnected")

    def device_line_received(self, line: str):
        self.logger.debug(f"Device line: {line}")

    def device_feedback(self, obj, value: str):
        self.logger.info(f"Device feedback {obj.label}: {value}")

    def error(self, error_message: str):
        self.logger.error(error_message)
