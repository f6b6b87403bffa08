"""Shared pytest configuration and fixtures for the pyems test suite."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pyems.dispatch import CommandDispatcher
from pyems.listener import EMSListener


@pytest.fixture
def listener() -> MagicMock:
    """Listener mock that records every event."""
    return MagicMock(spec=EMSListener)


@pytest.fixture
def replies() -> list:
    """Frames a dispatcher writes back to the EMS peers."""
    return []


@pytest.fixture
def dispatcher(listener, replies) -> CommandDispatcher:
    return CommandDispatcher(listener, replies.append)


@pytest.fixture
def config_file(tmp_path) -> Path:
    """A configuration file with three rooms and two cameras."""
    path = tmp_path / "EMS_Config.csv"
    path.write_text(
        "Server_IP,127.0.0.1\n"
        "Server_Port,53125\n"
        "Biamp_IP[1],10.0.0.10\n"
        "Biamp_IP[2],10.0.0.11\n"
        "Paging_Matrix_Quantity,2\n"
        "Paging_Matrix_Offset,5\n"
        "Player_Offset,1\n"
        "Play_Delay,75\n"
        "Paging_Keyword,Page\n"
        "Camera_IP[1],10.0.0.30\n"
        "Camera_Label[1],Front\n"
        "Camera_IP[2],10.0.0.31\n"
        "Room_ID[1],RM01\n"
        "Room_Label[1],\"Lecture Hall, North\"\n"
        "Room_ID[2],RM02\n"
        "Room_ID[3],RM03\n"
        "Mystery_Key,42\n",
        encoding="utf-8",
    )
    return path
