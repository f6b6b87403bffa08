import re
from typing import Optional

# EMS frames are bracketed field lists wrapped in braces and terminated by a newline
# {[Paging][Clear][2][0],[Paging][Route][2][1,2,3,4,5]}\n
# Windows clients (PuTTY etc.) terminate with \r\n, so the \r is optional
FRAME = re.compile(r"\{(\[.*?\])+(,(\[.*?\])+)*\}(\r?\n)")

# A single field inside a command: [Paging] -> Paging
FIELD = re.compile(r"\[(.*?)\]")

# Commands inside a frame are separated by ",[" (a plain "," can appear inside a field: [1,2])
COMMAND_SEPARATOR = ",["

DELIMITER = "\n"


def extract_frame(buffer: str) -> Optional[tuple[str, str]]:
    """Find the first complete frame in a received chunk.

    Returns (frame, remainder) where remainder is the text following the frame's
    line ending, or None when the chunk holds no complete frame. Partial input
    is not kept between calls.
    """
    match = FRAME.search(buffer)
    if not match:
        return None
    return match.group(0), buffer[match.end():]


def split_commands(frame: str) -> list[str]:
    """Split a complete frame into its raw commands, keeping their brackets."""
    body = frame.strip().replace("\r", "").replace("\n", "")
    if body.startswith("{"):
        body = body[1:]
    if body.endswith("}"):
        body = body[:-1]
    pieces = body.split(COMMAND_SEPARATOR)
    return [pieces[0]] + ["[" + piece for piece in pieces[1:]]


def parse_fields(command: str) -> list[str]:
    """Return the bracketed fields of a raw command in order."""
    return FIELD.findall(command)


def encode_command(*fields) -> str:
    return "".join(f"[{field}]" for field in fields)


def encode_commands(commands: list[tuple]) -> str:
    """Build a frame holding several commands: [("ACK", "Mute", "RM01", 1), ...]."""
    body = ",".join(encode_command(*command) for command in commands)
    return "{" + body + "}" + DELIMITER


def encode_frame(*fields) -> str:
    return "{" + encode_command(*fields) + "}" + DELIMITER


def ack(*fields) -> str:
    """{[ACK][Pan][10.0.0.5][3]}"""
    return encode_frame("ACK", *fields)


def error(kind: str, raw: str) -> str:
    """{[ERR][Bad][Room][Bogus][RM01][1]}

    A raw command keeps its own brackets; any other text is wrapped in one field.
    """
    if not raw.startswith("["):
        raw = f"[{raw}]"
    return "{[ERR]" + f"[{kind}]" + raw + "}" + DELIMITER
