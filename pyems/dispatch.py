import logging
from typing import Callable

from pyems.frame import ack, error, extract_frame, parse_fields, split_commands
from pyems.listener import EMSListener

# Command classes and their verbs. Lookups are positional: the index of a class
# in COMMAND_CLASSES selects its verb list in COMMAND_VERBS.
COMMAND_CLASSES = ("Camera", "Room", "Paging", "Message", "Request", "ACK")
CAMERA_VERBS = ("Pan", "Tilt", "Zoom", "Position", "Recall", "Save")
ROOM_VERBS = ("Status", "Privacy", "Mute")
PAGING_VERBS = ("Route", "Zone", "Clear")
MESSAGE_VERBS = ("Play", "Record", "Delete", "Stop")
REQUEST_VERBS = ("Status", "Privacy", "Mute", "Route", "Position", "Ping", "Header")
ACK_VERBS = REQUEST_VERBS
COMMAND_VERBS = (CAMERA_VERBS, ROOM_VERBS, PAGING_VERBS, MESSAGE_VERBS, REQUEST_VERBS, ACK_VERBS)

CAMERA, ROOM, PAGING, MESSAGE, REQUEST, ACK = range(len(COMMAND_CLASSES))

# Room ID and paging output used by the EMS to address every room
ALL_ROOMS = "0"


class BadCommandError(ValueError):
    """A command whose class or verb is not part of the protocol vocabulary."""


class UnknownClassError(BadCommandError):
    pass


class UnknownVerbError(BadCommandError):
    pass


def decode(class_token: str, verb_token: str) -> tuple[int, int]:
    """Map class and verb tokens to their (class_index, verb_index)."""
    try:
        class_index = COMMAND_CLASSES.index(class_token)
    except ValueError:
        raise UnknownClassError(f"Unknown command class: {class_token}") from None
    try:
        verb_index = COMMAND_VERBS[class_index].index(verb_token)
    except ValueError:
        raise UnknownVerbError(f"Unknown {class_token} verb: {verb_token}") from None
    return class_index, verb_index


def parse_uint(text: str) -> int:
    value = int(text)
    if value < 0:
        raise ValueError(f"Expected an unsigned integer, got {text}")
    return value


class CommandDispatcher:
    """Decodes EMS frames and routes each command to its handler.

    Handlers acknowledge what they can answer on their own (camera and room
    commands) through `reply` and raise listener events for everything that
    needs the DSP or the hosting application.
    """

    def __init__(self, listener: EMSListener, reply: Callable[[str], None]):
        self._logger = logging.getLogger(__name__)
        self._listener = listener
        self._reply = reply
        self._handlers: dict[int, Callable[[str, list[str]], bool]] = {
            CAMERA: self._camera_command,
            ROOM: self._room_command,
            PAGING: self._paging_command,
            MESSAGE: self._message_command,
            REQUEST: self._request_command,
            ACK: self._ack_response,
        }

    def process(self, text: str):
        """Run every complete frame of a received chunk through the dispatch table."""
        self._logger.debug(f"Processing: {text!r}")
        extracted = extract_frame(text)
        if extracted is None:
            raw = text.rstrip("\r\n")
            self._logger.warning(f"Incomplete command: [{raw}]")
            self._reply(error("Incomplete", raw))
            return
        while extracted is not None:
            frame, remainder = extracted
            self._process_frame(frame)
            extracted = extract_frame(remainder)
        if remainder.strip():
            self._logger.debug(f"Ignoring trailing data after frame: {remainder!r}")

    def _process_frame(self, frame: str):
        commands = split_commands(frame)
        self._logger.debug(f"Command totals: {len(commands)}")
        for raw in commands:
            fields = parse_fields(raw)
            try:
                if len(fields) < 2:
                    raise BadCommandError(f"Incorrect command format: {raw}")
                class_index, verb_index = decode(fields[0], fields[1])
            except BadCommandError as e:
                self._logger.warning(f"Bad command: [{raw}] ({e})")
                self._reply(error("Bad", raw))
                continue

            if class_index not in self._handlers:
                self._logger.warning(f"Unknown command: [{raw}]")
                self._reply(error("Unknown", raw))
                continue

            self._logger.debug(f"Processing command: {raw}")
            try:
                handled = self.dispatch(class_index, verb_index, fields[2:])
            except Exception as e:
                self._logger.error(f"Error processing command [{raw}]: {e}", exc_info=True)
                handled = False
            if not handled:
                self._logger.warning(f"Bad command: [{raw}]")
                self._reply(error("Bad", raw))

    def dispatch(self, class_index: int, verb_index: int, args: list[str]) -> bool:
        """Invoke the handler for a decoded command. False means the arguments were rejected."""
        handler = self._handlers[class_index]
        verb = COMMAND_VERBS[class_index][verb_index]
        try:
            return handler(verb, args)
        except (ValueError, IndexError) as e:
            self._logger.debug(f"{COMMAND_CLASSES[class_index]} {verb} rejected {args}: {e}")
            return False

    def _camera_command(self, verb: str, data: list[str]) -> bool:
        # {[Camera][Pan][10.0.0.5][-3]} -> {[ACK][Pan][10.0.0.5][-3]}
        camera = data[0]
        if verb == "Position":
            x, y, z = (int(axis) for axis in data[1].split(",")[:3])
            self._reply(ack(verb, camera, f"{x},{y},{z}"))
        else:
            self._reply(ack(verb, camera, int(data[1])))
        return True

    def _room_command(self, verb: str, data: list[str]) -> bool:
        room_field, value = data[0], data[1]
        kind = verb.lower()
        level = int(value)

        if "," not in room_field:
            # [Room][Status][RM01][1] or [Room][Status][0][1]
            all_rooms = room_field == ALL_ROOMS
            if verb == "Mute":
                room_index = 0 if all_rooms else int(room_field[2:])
                self._listener.mute_requested(room_index, level == 1)
            else:
                self._reply(ack(verb, "ALL ROOMS" if all_rooms else room_field, level))
            self._listener.room_state_changed(room_field, value, kind, all_rooms)
            return True

        # [Room][Status][RM01,RM02][1]: acknowledged room by room
        room_ids = room_field.split(",")
        if verb == "Mute":
            room_indexes = [int(room_id[2:]) for room_id in room_ids]
        for position, room_id in enumerate(room_ids):
            if verb == "Mute":
                self._listener.mute_requested(room_indexes[position], level == 1)
            else:
                self._reply(ack(verb, room_id, level))
            self._listener.room_state_changed(room_id, value, kind, False)
        return True

    def _paging_command(self, verb: str, data: list[str]) -> bool:
        input_field, output_field = data[0], data[1]
        all_rooms = output_field == ALL_ROOMS

        if verb == "Zone":
            # {[Paging][Zone][6][North]}
            self._listener.preset_requested(f"Input_{input_field}_{output_field}")
            return True
        if verb == "Clear" and all_rooms:
            # {[Paging][Clear][6][0]}
            self._listener.preset_requested(f"Input_{input_field}_Clear")
            return True

        # {[Paging][Route][6][1,2]} / {[Paging][Clear][6][6,7]}
        input_id = int(input_field)
        outputs = [int(output) for output in output_field.split(",")]
        route = verb == "Route"
        for output_id in outputs:
            self._listener.route_requested(input_id, output_id, route, all_rooms)
        return True

    def _message_command(self, verb: str, data: list[str]) -> bool:
        player = parse_uint(data[0])
        message = parse_uint(data[1])
        if verb == "Play":
            self._listener.message_play(player, message)
        elif verb == "Record":
            self._listener.message_record(player, message)
        elif verb == "Delete":
            self._listener.message_delete(player, message)
        else:
            self._listener.message_stop(player, message)
        return True

    def _request_command(self, verb: str, data: list[str]) -> bool:
        match verb:
            case "Status":
                # {[Request][Status][RM01,RM02]} or {[Request][Status][0]}
                room_ids = data[0].split(",") if data else [ALL_ROOMS]
                self._listener.status_requested(room_ids)
            case "Ping":
                self._listener.ping_received(False)
            case _:
                # Privacy, Mute, Route, Position and Header requests are accepted without action
                self._logger.debug(f"Request {verb} accepted, not implemented")
        return True

    def _ack_response(self, verb: str, data: list[str]) -> bool:
        if verb == "Ping":
            self._listener.ping_received(True)
        else:
            self._logger.debug(f"ACK {verb} received: {data}")
        return True
