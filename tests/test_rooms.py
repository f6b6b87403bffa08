"""Unit tests for rooms and cameras."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from pyems.listener import EMSListener
from pyems.rooms import Camera, Room, RoomState


class TestRoomState:
    """Test state updates reported by the EMS."""

    def test_initial_state(self):
        room = Room("RM01", AsyncMock())
        assert room.state is RoomState.STOPPED
        assert not room.muted

    def test_status(self):
        room = Room("RM01", AsyncMock())
        room.apply("status", "3")
        assert room.state is RoomState.PAUSED

    def test_privacy_on_and_off(self):
        room = Room("RM01", AsyncMock())
        room.apply("privacy", "1")
        assert room.state is RoomState.PRIVACY
        assert room.state == 5
        room.apply("privacy", "0")
        assert room.state is RoomState.STOPPED

    def test_mute(self):
        room = Room("RM01", AsyncMock())
        room.apply("mute", "1")
        assert room.muted
        room.apply("mute", "0")
        assert not room.muted

    def test_invalid_status(self):
        room = Room("RM01", AsyncMock())
        with pytest.raises(ValueError):
            room.apply("status", "4")
        with pytest.raises(ValueError):
            room.apply("volume", "1")


class TestRoomRequests:
    """Test requests sent to the EMS server."""

    @pytest.mark.asyncio
    async def test_requests(self):
        send = AsyncMock(return_value=True)
        room = Room("RM02", send)

        assert await room.request_privacy() is True
        await room.leave_privacy()
        await room.start_recording()
        await room.stop_recording()
        await room.pause_recording()
        await room.mute()
        await room.unmute()

        assert [c.args[0] for c in send.await_args_list] == [
            "{[Room][Privacy][RM02][1]}\n",
            "{[Room][Privacy][RM02][0]}\n",
            "{[Room][Status][RM02][1]}\n",
            "{[Room][Status][RM02][2]}\n",
            "{[Room][Status][RM02][3]}\n",
            "{[Room][Mute][RM02][1]}\n",
            "{[Room][Mute][RM02][0]}\n",
        ]


class TestCamera:
    """Test camera control."""

    @pytest.mark.asyncio
    async def test_speeds_are_clamped(self):
        send = AsyncMock(return_value=True)
        camera = Camera("10.0.0.30", send, max_tilt_speed=3)

        await camera.pan(9)
        await camera.tilt(-7)
        await camera.zoom(2)

        assert [c.args[0] for c in send.await_args_list] == [
            "{[Camera][Pan][10.0.0.30][5]}\n",
            "{[Camera][Tilt][10.0.0.30][-3]}\n",
            "{[Camera][Zoom][10.0.0.30][2]}\n",
        ]

    @pytest.mark.asyncio
    async def test_position(self):
        send = AsyncMock(return_value=True)
        await Camera("10.0.0.30", send).set_position(1, -2, 3)
        send.assert_awaited_once_with("{[Camera][Position][10.0.0.30][1,-2,3]}\n")

    @pytest.mark.asyncio
    async def test_short_press_recalls(self):
        send = AsyncMock(return_value=True)
        listener = MagicMock(spec=EMSListener)
        camera = Camera("10.0.0.30", send, listener=listener, hold_time=0.2)

        camera.preset_press(4)
        await asyncio.sleep(0.05)
        await camera.preset_release(4)

        send.assert_awaited_once_with("{[Camera][Recall][10.0.0.30][4]}\n")
        await asyncio.sleep(0.3)
        listener.camera_preset_saved.assert_not_called()

    @pytest.mark.asyncio
    async def test_long_press_saves(self):
        send = AsyncMock(return_value=True)
        listener = MagicMock(spec=EMSListener)
        camera = Camera("10.0.0.30", send, listener=listener, hold_time=0.1)

        camera.preset_press(2)
        await asyncio.sleep(0.2)
        listener.camera_preset_saved.assert_called_once_with("10.0.0.30", 2)
        assert camera.preset_held

        await camera.preset_release(2)
        send.assert_awaited_once_with("{[Camera][Save][10.0.0.30][2]}\n")
        assert not camera.preset_held
