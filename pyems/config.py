"""Bridge configuration, loaded from the two-column EMS_Config.csv.

Every row is ``key,value``. Keys ending in ``[n]`` fill the n-th (1-based)
entry of a list setting:

    Server_IP,192.168.254.59
    Server_Port,53125
    Biamp_IP[1],192.168.254.10
    Room_ID[1],RM01
    Room_Label[1],Lecture Hall
"""

import csv
import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

DEFAULT_CONFIG_FILE = "EMS_Config.csv"

_logger = logging.getLogger(__name__)

_LIST_KEY = re.compile(r"^(\w+)\[(\d+)\]$")


class ConfigError(Exception):
    """The configuration file is missing or holds a malformed value."""


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "on", "yes"):
        return True
    if lowered in ("0", "false", "off", "no", ""):
        return False
    raise ValueError(f"not a boolean: {value}")


# CSV key -> (field name, parser)
SCALAR_KEYS = {
    "Listen_Host": ("listen_host", str),
    "Listen_Port": ("listen_port", int),
    "Server_IP": ("server_ip", str),
    "Server_Port": ("server_port", int),
    "Username": ("username", str),
    "Password": ("password", str),
    "Paging_Matrix_Quantity": ("matrix_quantity", int),
    "Paging_Matrix_Offset": ("matrix_offset", int),
    "Player_Offset": ("player_offset", int),
    "Play_Delay": ("play_delay", int),
    "Paging_Keyword": ("paging_keyword", str),
    "Idle_Timeout": ("idle_timeout", float),
    "Command_Pacing": ("pacing", float),
    "Debug": ("debug", _parse_bool),
}

# CSV key -> list field name
LIST_KEYS = {
    "Biamp_IP": "biamp_ips",
    "Camera_IP": "camera_ips",
    "Camera_Label": "camera_labels",
    "Room_ID": "room_ids",
    "Room_Label": "room_labels",
}


@dataclass
class EMSConfig:
    # EMS server role: where EMS peers connect to us
    listen_host: str = "0.0.0.0"
    listen_port: int = 53124

    # EMS client role: the EMS server we send room and camera requests to
    server_ip: str = "0.0.0.0"
    server_port: int = 0

    # Biamp Tesira SSH shell
    biamp_ips: list[Optional[str]] = field(default_factory=lambda: ["0.0.0.0", "0.0.0.0"])
    username: str = "admin"
    password: str = "password"

    # Paging matrix
    matrix_quantity: int = 1
    matrix_offset: int = 5

    # Message players
    player_offset: int = 0
    play_delay: int = 50  # ms
    paging_keyword: str = "Spk"

    camera_ips: list[Optional[str]] = field(default_factory=list)
    camera_labels: list[Optional[str]] = field(default_factory=list)
    room_ids: list[Optional[str]] = field(default_factory=list)
    room_labels: list[Optional[str]] = field(default_factory=list)

    idle_timeout: float = 8.0
    pacing: float = 0.5
    debug: bool = False

    @property
    def biamp_ip(self) -> str:
        return self.biamp_ips[0] if self.biamp_ips and self.biamp_ips[0] else "0.0.0.0"

    def configured_rooms(self) -> list[tuple[int, str, Optional[str]]]:
        """(1-based slot, room ID, label) for every configured room."""
        return [
            (slot, room_id, _slot(self.room_labels, slot))
            for slot, room_id in enumerate(self.room_ids, start=1)
            if room_id
        ]

    def configured_cameras(self) -> list[tuple[int, str, Optional[str]]]:
        """(1-based slot, IP address, label) for every configured camera."""
        return [
            (slot, ip_address, _slot(self.camera_labels, slot))
            for slot, ip_address in enumerate(self.camera_ips, start=1)
            if ip_address
        ]

    def apply_args_override(self, args: Any) -> "EMSConfig":
        """Return a copy with CLI argument overrides applied."""
        values = asdict(self)

        arg_mappings = {
            "listen_host": "listen_host",
            "listen_port": "listen_port",
            "server_ip": "server_ip",
            "server_port": "server_port",
            "biamp_ip": "biamp_ips",
            "debug": "debug",
        }

        for arg_name, config_key in arg_mappings.items():
            val = getattr(args, arg_name, None)
            if val is None:
                continue
            if config_key == "biamp_ips":
                values[config_key] = [val] + values[config_key][1:]
            else:
                values[config_key] = val

        return EMSConfig(**values)

    def to_dict(self) -> dict[str, Any]:
        values = asdict(self)
        values["password"] = "********"
        return values


def _slot(values: list, slot: int):
    return values[slot - 1] if slot <= len(values) else None


def _set_slot(values: list, slot: int, value: str):
    while len(values) < slot:
        values.append(None)
    values[slot - 1] = value


def load_config(path: str | Path = DEFAULT_CONFIG_FILE) -> EMSConfig:
    """Read a configuration CSV. Unknown keys are ignored.

    Raises ConfigError when the file cannot be read or a numeric value is malformed.
    """
    path = Path(path)
    _logger.info(f"Loading config from file: {path}")
    config = EMSConfig()

    try:
        with path.open("r", newline="", encoding="utf-8-sig") as f:
            rows = list(csv.reader(f))
    except OSError as e:
        raise ConfigError(f"Config file could not be read: {path} ({e})") from e

    for line_number, row in enumerate(rows, start=1):
        if len(row) < 2 or not row[0].strip():
            continue
        key = row[0].strip()
        # Values may themselves contain commas (labels), keep everything after the key
        value = ",".join(row[1:]).strip()

        list_key = _LIST_KEY.match(key)
        if list_key:
            name, slot = list_key.group(1), int(list_key.group(2))
            field_name = LIST_KEYS.get(name)
            if field_name is None:
                _logger.debug(f"Ignoring unknown config key {key}")
                continue
            if slot < 1:
                raise ConfigError(f"{path}:{line_number}: {key} slots start at 1")
            _set_slot(getattr(config, field_name), slot, value)
            continue

        if key not in SCALAR_KEYS:
            _logger.debug(f"Ignoring unknown config key {key}")
            continue
        field_name, parse = SCALAR_KEYS[key]
        try:
            setattr(config, field_name, parse(value))
        except ValueError as e:
            raise ConfigError(f"{path}:{line_number}: bad value for {key}: {value!r}") from e

    _logger.debug(f"Loaded config: {config.to_dict()}")
    return config
