"""Unit tests for the EMS frame codec."""

from pyems.frame import (
    ack,
    encode_commands,
    encode_frame,
    error,
    extract_frame,
    parse_fields,
    split_commands,
)


class TestExtractFrame:
    """Test extract_frame."""

    def test_complete_frame(self):
        frame, remainder = extract_frame("{[Room][Status][RM01][1]}\n")
        assert frame == "{[Room][Status][RM01][1]}\n"
        assert remainder == ""

    def test_crlf_terminated_frame(self):
        frame, _ = extract_frame("{[Request][Ping]}\r\n")
        assert frame == "{[Request][Ping]}\r\n"

    def test_missing_line_ending_is_incomplete(self):
        assert extract_frame("{[Room][Status][RM01][1]}") is None

    def test_missing_brace_is_incomplete(self):
        assert extract_frame("{[Room][Status][RM01][1]\n") is None

    def test_frame_preceded_by_noise(self):
        frame, remainder = extract_frame("garbage{[Request][Ping]}\nrest")
        assert frame == "{[Request][Ping]}\n"
        assert remainder == "rest"

    def test_first_of_two_frames(self):
        frame, remainder = extract_frame("{[Request][Ping]}\n{[ACK][Ping]}\n")
        assert frame == "{[Request][Ping]}\n"
        assert remainder == "{[ACK][Ping]}\n"


class TestSplitCommands:
    """Test split_commands and parse_fields."""

    def test_single_command(self):
        assert split_commands("{[Room][Status][RM01][1]}\n") == ["[Room][Status][RM01][1]"]

    def test_multiple_commands(self):
        commands = split_commands("{[Paging][Clear][2][0],[Paging][Route][2][1,2,3,4,5]}\r\n")
        assert commands == ["[Paging][Clear][2][0]", "[Paging][Route][2][1,2,3,4,5]"]

    def test_comma_inside_field_does_not_split(self):
        commands = split_commands("{[Room][Status][RM01,RM02][1]}\n")
        assert commands == ["[Room][Status][RM01,RM02][1]"]

    def test_parse_fields(self):
        assert parse_fields("[Paging][Route][2][1,2,3]") == ["Paging", "Route", "2", "1,2,3"]

    def test_parse_fields_empty_field(self):
        assert parse_fields("[Request][Status][]") == ["Request", "Status", ""]


class TestEncode:
    """Test reply frame builders."""

    def test_ack(self):
        assert ack("Pan", "10.0.0.5", -3) == "{[ACK][Pan][10.0.0.5][-3]}\n"

    def test_ack_without_arguments(self):
        assert ack("Ping") == "{[ACK][Ping]}\n"

    def test_encode_frame(self):
        assert encode_frame("Room", "Mute", "RM02", 1) == "{[Room][Mute][RM02][1]}\n"

    def test_encode_commands(self):
        frame = encode_commands([("ACK", "Status", "RM01", 2), ("ACK", "Status", "RM02", 5)])
        assert frame == "{[ACK][Status][RM01][2],[ACK][Status][RM02][5]}\n"

    def test_error_keeps_raw_command_brackets(self):
        assert error("Bad", "[Room][Bogus][RM01][1]") == "{[ERR][Bad][Room][Bogus][RM01][1]}\n"

    def test_error_wraps_plain_text(self):
        assert error("Incomplete", "hello") == "{[ERR][Incomplete][hello]}\n"

    def test_encoded_frame_is_extractable(self):
        frame = ack("Mute", "RM01", 1)
        assert extract_frame(frame) == (frame, "")
