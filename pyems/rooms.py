"""Rooms and cameras as the EMS server sees them.

Both send their requests to the EMS server through the client role of the
EMS session, and hold the state the EMS last reported for them.
"""

import asyncio
import logging
from enum import IntEnum
from typing import Awaitable, Callable, Optional

from pyems.frame import encode_frame
from pyems.listener import EMSListener

Sender = Callable[[str], Awaitable[bool]]

# Seconds a camera preset button must be held before release saves instead of recalls
PRESET_HOLD_SECONDS = 4.0
MAX_CAMERA_SPEED = 5


class RoomState(IntEnum):
    UNSET = 0
    RECORDING = 1
    STOPPED = 2
    PAUSED = 3
    PRIVACY = 5


class Room:
    """A recording room, identified by its EMS room ID (e.g. RM01)."""

    def __init__(self, room_id: str, send: Sender, index: int = 0, label: Optional[str] = None):
        self._room_id = room_id
        self._send = send
        self._index = index
        self._label = label or room_id
        self._state = RoomState.STOPPED
        self._muted = False

    @property
    def room_id(self) -> str:
        return self._room_id

    @property
    def index(self) -> int:
        """1-based position of the room in the configuration, also its DSP mute channel."""
        return self._index

    @property
    def label(self) -> str:
        return self._label

    @property
    def state(self) -> RoomState:
        return self._state

    @state.setter
    def state(self, state: RoomState):
        self._state = RoomState(state)

    @property
    def muted(self) -> bool:
        return self._muted

    @muted.setter
    def muted(self, muted: bool):
        self._muted = muted

    def apply(self, kind: str, value: str):
        """Apply a Room command value reported by the EMS.

        Raises ValueError for a value that is not valid for the kind.
        """
        match kind:
            case "status":
                self.state = RoomState(int(value))
            case "privacy":
                self.state = RoomState.PRIVACY if value == "1" else RoomState.STOPPED
            case "mute":
                self.muted = int(value) == 1
            case _:
                raise ValueError(f"Unknown room command type: {kind}")

    async def request_privacy(self) -> bool:
        return await self._send_room("Privacy", 1)

    async def leave_privacy(self) -> bool:
        return await self._send_room("Privacy", 0)

    async def start_recording(self) -> bool:
        return await self._send_room("Status", RoomState.RECORDING.value)

    async def stop_recording(self) -> bool:
        return await self._send_room("Status", RoomState.STOPPED.value)

    async def pause_recording(self) -> bool:
        return await self._send_room("Status", RoomState.PAUSED.value)

    async def mute(self) -> bool:
        return await self._send_room("Mute", 1)

    async def unmute(self) -> bool:
        return await self._send_room("Mute", 0)

    async def _send_room(self, verb: str, value: int) -> bool:
        return await self._send(encode_frame("Room", verb, self._room_id, value))

    def __repr__(self):
        return f"Room({self._room_id!r}, state={self._state.name}, muted={self._muted})"


class Camera:
    """A PTZ camera controlled through the EMS server.

    Speeds beyond the camera's maximum are clamped. A preset button recalls its
    preset when released quickly; held for PRESET_HOLD_SECONDS it saves the
    current position instead, and `camera_preset_saved` is raised as soon as
    the hold time is reached so a panel can give feedback.
    """

    def __init__(
        self,
        ip_address: str,
        send: Sender,
        listener: Optional[EMSListener] = None,
        label: Optional[str] = None,
        max_pan_speed: int = MAX_CAMERA_SPEED,
        max_tilt_speed: int = MAX_CAMERA_SPEED,
        max_zoom_speed: int = MAX_CAMERA_SPEED,
        hold_time: float = PRESET_HOLD_SECONDS,
    ):
        self._logger = logging.getLogger(__name__)
        self._ip_address = ip_address
        self._send = send
        self._listener = listener
        self._label = label or ip_address
        self._max_pan_speed = max_pan_speed
        self._max_tilt_speed = max_tilt_speed
        self._max_zoom_speed = max_zoom_speed
        self._hold_time = hold_time

        self._preset_held = False
        self._preset_hold_handle: Optional[asyncio.TimerHandle] = None

    @property
    def ip_address(self) -> str:
        return self._ip_address

    @property
    def label(self) -> str:
        return self._label

    @property
    def preset_held(self) -> bool:
        return self._preset_held

    async def pan(self, speed: int) -> bool:
        return await self._send_camera("Pan", _clamp(speed, self._max_pan_speed))

    async def tilt(self, speed: int) -> bool:
        return await self._send_camera("Tilt", _clamp(speed, self._max_tilt_speed))

    async def zoom(self, speed: int) -> bool:
        return await self._send_camera("Zoom", _clamp(speed, self._max_zoom_speed))

    async def recall_preset(self, number: int) -> bool:
        return await self._send_camera("Recall", number)

    async def save_preset(self, number: int) -> bool:
        return await self._send_camera("Save", number)

    async def set_position(self, x: int, y: int, z: int) -> bool:
        return await self._send_camera("Position", f"{x},{y},{z}")

    def preset_press(self, number: int):
        """Start timing a preset button hold."""
        self._cancel_preset_hold()
        self._preset_held = False
        loop = asyncio.get_running_loop()
        self._preset_hold_handle = loop.call_later(self._hold_time, self._preset_hold_elapsed, number)

    async def preset_release(self, number: int) -> bool:
        """Save the preset if the button was held long enough, otherwise recall it."""
        held = self._preset_held
        self._cancel_preset_hold()
        self._preset_held = False
        if held:
            return await self.save_preset(number)
        return await self.recall_preset(number)

    def close(self):
        self._cancel_preset_hold()

    def _preset_hold_elapsed(self, number: int):
        self._preset_hold_handle = None
        self._preset_held = True
        self._logger.debug(f"Camera {self._ip_address} preset {number} held")
        if self._listener is not None:
            self._listener.camera_preset_saved(self._ip_address, number)

    def _cancel_preset_hold(self):
        if self._preset_hold_handle is not None:
            self._preset_hold_handle.cancel()
            self._preset_hold_handle = None

    async def _send_camera(self, verb: str, value) -> bool:
        return await self._send(encode_frame("Camera", verb, self._ip_address, value))

    def __repr__(self):
        return f"Camera({self._ip_address!r})"


def _clamp(speed: int, max_speed: int) -> int:
    if abs(speed) > max_speed:
        return max_speed if speed > 0 else -max_speed
    return speed
