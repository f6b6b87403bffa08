"""Unit tests for the command dispatch table."""

from unittest.mock import call

import pytest

from pyems.dispatch import (
    ACK,
    CAMERA,
    MESSAGE,
    ROOM,
    BadCommandError,
    UnknownClassError,
    UnknownVerbError,
    decode,
)


class TestDecode:
    """Test class/verb decoding."""

    def test_known_tokens(self):
        assert decode("Room", "Mute") == (ROOM, 2)
        assert decode("Camera", "Save") == (CAMERA, 5)

    def test_unknown_class(self):
        with pytest.raises(UnknownClassError):
            decode("Lights", "On")

    def test_unknown_verb(self):
        with pytest.raises(UnknownVerbError):
            decode("Paging", "BadVerb")

    def test_errors_are_bad_commands(self):
        with pytest.raises(BadCommandError):
            decode("Room", "Dance")

    def test_ack_verbs_match_request_verbs(self):
        assert decode("ACK", "Ping") == (ACK, 5)
        assert decode("ACK", "Header") == (ACK, 6)


class TestErrors:
    """Test error replies for malformed input."""

    def test_incomplete_frame(self, dispatcher, listener, replies):
        dispatcher.process("{[Room][Status][RM01][1]")
        assert replies == ["{[ERR][Incomplete][{[Room][Status][RM01][1]]}\n"]
        listener.room_state_changed.assert_not_called()

    def test_unknown_verb_reports_bad_with_raw_command(self, dispatcher, replies):
        dispatcher.process("{[Paging][BadVerb][6][1]}\n")
        assert replies == ["{[ERR][Bad][Paging][BadVerb][6][1]}\n"]

    def test_unknown_class(self, dispatcher, replies):
        dispatcher.process("{[Lights][On][1]}\n")
        assert replies == ["{[ERR][Bad][Lights][On][1]}\n"]

    def test_single_field_command(self, dispatcher, replies):
        dispatcher.process("{[Room]}\n")
        assert replies == ["{[ERR][Bad][Room]}\n"]

    def test_handler_rejection(self, dispatcher, listener, replies):
        dispatcher.process("{[Camera][Pan][10.0.0.5][fast]}\n")
        assert replies == ["{[ERR][Bad][Camera][Pan][10.0.0.5][fast]}\n"]

    def test_missing_argument(self, dispatcher, listener, replies):
        dispatcher.process("{[Message][Play][1]}\n")
        assert replies == ["{[ERR][Bad][Message][Play][1]}\n"]
        listener.message_play.assert_not_called()

    def test_negative_player_rejected(self, dispatcher, listener, replies):
        dispatcher.process("{[Message][Play][-1][3]}\n")
        assert replies == ["{[ERR][Bad][Message][Play][-1][3]}\n"]

    def test_bad_command_does_not_stop_the_frame(self, dispatcher, listener, replies):
        dispatcher.process("{[Room][Bogus][RM01][1],[Request][Ping]}\n")
        assert replies == ["{[ERR][Bad][Room][Bogus][RM01][1]}\n"]
        listener.ping_received.assert_called_once_with(False)

    def test_listener_exception_reports_bad(self, dispatcher, listener, replies):
        listener.preset_requested.side_effect = RuntimeError("boom")
        dispatcher.process("{[Paging][Zone][6][North]}\n")
        assert replies == ["{[ERR][Bad][Paging][Zone][6][North]}\n"]


class TestCamera:
    """Test Camera commands."""

    def test_pan_is_acknowledged(self, dispatcher, replies):
        dispatcher.process("{[Camera][Pan][10.0.0.5][-3]}\n")
        assert replies == ["{[ACK][Pan][10.0.0.5][-3]}\n"]

    def test_position_is_acknowledged(self, dispatcher, replies):
        dispatcher.process("{[Camera][Position][10.0.0.5][10,20,30]}\n")
        assert replies == ["{[ACK][Position][10.0.0.5][10,20,30]}\n"]

    def test_recall_is_acknowledged(self, dispatcher, replies):
        dispatcher.process("{[Camera][Recall][10.0.0.5][4]}\n")
        assert replies == ["{[ACK][Recall][10.0.0.5][4]}\n"]


class TestRoom:
    """Test Room commands."""

    def test_single_room_status(self, dispatcher, listener, replies):
        dispatcher.process("{[Room][Status][RM01][1]}\n")
        assert replies == ["{[ACK][Status][RM01][1]}\n"]
        listener.room_state_changed.assert_called_once_with("RM01", "1", "status", False)

    def test_all_rooms_privacy(self, dispatcher, listener, replies):
        dispatcher.process("{[Room][Privacy][0][1]}\n")
        assert replies == ["{[ACK][Privacy][ALL ROOMS][1]}\n"]
        listener.room_state_changed.assert_called_once_with("0", "1", "privacy", True)

    def test_room_list(self, dispatcher, listener, replies):
        dispatcher.process("{[Room][Status][RM01,RM02][3]}\n")
        assert replies == ["{[ACK][Status][RM01][3]}\n", "{[ACK][Status][RM02][3]}\n"]
        assert listener.room_state_changed.call_args_list == [
            call("RM01", "3", "status", False),
            call("RM02", "3", "status", False),
        ]

    def test_mute_is_left_to_the_listener(self, dispatcher, listener, replies):
        dispatcher.process("{[Room][Mute][RM02][1]}\n")
        assert replies == []
        listener.mute_requested.assert_called_once_with(2, True)
        listener.room_state_changed.assert_called_once_with("RM02", "1", "mute", False)

    def test_mute_all_rooms(self, dispatcher, listener):
        dispatcher.process("{[Room][Mute][0][0]}\n")
        listener.mute_requested.assert_called_once_with(0, False)

    def test_mute_room_list(self, dispatcher, listener):
        dispatcher.process("{[Room][Mute][RM01,RM03][1]}\n")
        assert listener.mute_requested.call_args_list == [call(1, True), call(3, True)]

    def test_non_numeric_value_rejected(self, dispatcher, listener, replies):
        dispatcher.process("{[Room][Status][RM01][on]}\n")
        assert replies == ["{[ERR][Bad][Room][Status][RM01][on]}\n"]
        listener.room_state_changed.assert_not_called()


class TestPaging:
    """Test Paging commands."""

    def test_route_to_outputs(self, dispatcher, listener):
        dispatcher.process("{[Paging][Route][2][1,2,3]}\n")
        assert listener.route_requested.call_args_list == [
            call(2, 1, True, False),
            call(2, 2, True, False),
            call(2, 3, True, False),
        ]

    def test_route_to_all_rooms(self, dispatcher, listener):
        dispatcher.process("{[Paging][Route][2][0]}\n")
        listener.route_requested.assert_called_once_with(2, 0, True, True)

    def test_zone_recalls_preset(self, dispatcher, listener):
        dispatcher.process("{[Paging][Zone][6][North]}\n")
        listener.preset_requested.assert_called_once_with("Input_6_North")

    def test_clear_all_recalls_clear_preset(self, dispatcher, listener):
        dispatcher.process("{[Paging][Clear][6][0]}\n")
        listener.preset_requested.assert_called_once_with("Input_6_Clear")
        listener.route_requested.assert_not_called()

    def test_clear_outputs_unroutes(self, dispatcher, listener):
        dispatcher.process("{[Paging][Clear][6][6,7]}\n")
        assert listener.route_requested.call_args_list == [
            call(6, 6, False, False),
            call(6, 7, False, False),
        ]

    def test_clear_then_route_in_one_frame(self, dispatcher, listener):
        dispatcher.process("{[Paging][Clear][2][0],[Paging][Route][2][1,2]}\n")
        listener.preset_requested.assert_called_once_with("Input_2_Clear")
        assert listener.route_requested.call_count == 2


class TestMessageAndRequest:
    """Test Message, Request and ACK commands."""

    @pytest.mark.parametrize("verb", ["Play", "Record", "Delete", "Stop"])
    def test_message_verbs(self, dispatcher, listener, verb):
        dispatcher.process(f"{{[Message][{verb}][1][7]}}\n")
        getattr(listener, f"message_{verb.lower()}").assert_called_once_with(1, 7)

    def test_request_status(self, dispatcher, listener):
        dispatcher.process("{[Request][Status][RM01,RM02]}\n")
        listener.status_requested.assert_called_once_with(["RM01", "RM02"])

    def test_request_status_without_rooms(self, dispatcher, listener):
        dispatcher.process("{[Request][Status]}\n")
        listener.status_requested.assert_called_once_with(["0"])

    def test_request_ping(self, dispatcher, listener, replies):
        dispatcher.process("{[Request][Ping]}\n")
        listener.ping_received.assert_called_once_with(False)
        assert replies == []

    def test_unimplemented_request_is_accepted(self, dispatcher, listener, replies):
        dispatcher.process("{[Request][Header]}\n")
        assert replies == []

    def test_ack_ping(self, dispatcher, listener, replies):
        dispatcher.process("{[ACK][Ping]}\n")
        listener.ping_received.assert_called_once_with(True)
        assert replies == []

    def test_several_frames_in_one_chunk(self, dispatcher, listener):
        dispatcher.process("{[Request][Ping]}\n{[Message][Stop][2][0]}\n")
        listener.ping_received.assert_called_once_with(False)
        listener.message_stop.assert_called_once_with(2, 0)

    def test_dispatch_directly(self, dispatcher, listener):
        assert dispatcher.dispatch(MESSAGE, 0, ["1", "2"]) is True
        listener.message_play.assert_called_once_with(1, 2)
        assert dispatcher.dispatch(MESSAGE, 0, ["x", "2"]) is False
