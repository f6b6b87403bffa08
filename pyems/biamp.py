import asyncio
import logging
from asyncio import Queue, Task
from enum import Enum
from typing import Any, Optional

import asyncssh

from pyems.listener import EMSListener
from pyems.objects import DeviceObject, extract_value, grab_value, matches_feedback

__all__ = ["BiampSession", "SessionState", "grab_value"]

# The Tesira shell drops commands sent faster than it can acknowledge them
COMMAND_PACING_SECONDS = 0.5


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class BiampSession:
    """Command/feedback session with a Biamp Tesira over an SSH shell.

    Commands are queued by `send` and written one at a time by a writer task,
    paced so the shell never receives them faster than it can answer. A reader
    task matches every feedback line against the registered device objects and
    hands matches to a feedback worker, which notifies the listener.
    """

    def __init__(
        self,
        hostname: str,
        username: str,
        password: str,
        callback: EMSListener,
        port: int = 22,
        pacing: float = COMMAND_PACING_SECONDS,
    ):
        self._logger = logging.getLogger(__name__)
        self._hostname = hostname
        self._port = port
        self._username = username
        self._password = password
        self._callback = callback
        self._pacing = pacing

        self._state = SessionState.DISCONNECTED
        self._connection: Optional[asyncssh.SSHClientConnection] = None
        self._process: Optional[asyncssh.SSHClientProcess] = None

        self._command_queue: Queue = Queue()
        # Most recent command written to the shell, cleared when a feedback line is claimed
        self._last_command: str = ""
        self._subscribed_objects: list[DeviceObject] = []
        # Matched feedback waiting to be delivered: (line, object or None, value or None)
        self._feedback_queue: Queue = Queue()

        self._writer_task: Optional[Task[Any]] = None
        self._reader_task: Optional[Task[Any]] = None
        self._feedback_task: Optional[Task[Any]] = None

    @property
    def hostname(self) -> str:
        return self._hostname

    @hostname.setter
    def hostname(self, hostname: str):
        self._hostname = hostname

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def last_command(self) -> str:
        return self._last_command

    @property
    def pending_commands(self) -> int:
        return self._command_queue.qsize()

    async def async_connect(self) -> bool:
        """Open the SSH shell and start the writer, reader and feedback tasks."""
        if self._state is not SessionState.DISCONNECTED:
            self._logger.warning(f"Biamp session already {self._state.value}")
            return self.is_connected

        self._state = SessionState.CONNECTING
        self._logger.info(f"Connecting to Biamp at {self._hostname}:{self._port}")
        try:
            # The Tesira asks for the password through a keyboard-interactive prompt,
            # asyncssh answers it with the password given here
            self._connection = await asyncssh.connect(
                self._hostname,
                port=self._port,
                username=self._username,
                password=self._password,
                known_hosts=None,
            )
            self._process = await self._connection.create_process(
                term_type="xterm", term_size=(80, 24)
            )
        except (OSError, asyncssh.Error) as e:
            self._logger.error(f"Connection to Biamp at {self._hostname} failed: {e}")
            self._notify("error", f"Connection to Biamp at {self._hostname} failed: {e}")
            self._close_transport()
            self._state = SessionState.DISCONNECTED
            return False

        self._state = SessionState.CONNECTED
        self._logger.info("Biamp client connected to shell")

        loop = asyncio.get_running_loop()
        self._writer_task = loop.create_task(self._command_writer())
        self._reader_task = loop.create_task(self._feedback_reader())
        if self._feedback_task is None or self._feedback_task.done():
            self._feedback_task = loop.create_task(self._feedback_worker())

        self._notify("device_connected")
        return True

    def disconnect(self) -> bool:
        """Close the shell and stop the writer and reader tasks."""
        if self._state is SessionState.DISCONNECTED:
            return False
        self._teardown()
        return True

    async def close(self):
        """Disconnect and stop delivering feedback."""
        self.disconnect()
        if self._feedback_task is not None:
            self._feedback_task.cancel()
            self._feedback_task = None

    def send(self, command: str):
        """Queue a command for the shell. Never blocks."""
        self._logger.debug(f"QUEUE: {command} (queue size ~= {self._command_queue.qsize() + 1})")
        self._command_queue.put_nowait(command)

    def subscribe(self, obj: DeviceObject):
        """Register an object to be matched against incoming feedback lines."""
        if obj not in self._subscribed_objects:
            self._subscribed_objects.append(obj)

    def recall_preset_by_name(self, name: str):
        self._logger.info(f"Recalling preset {name}")
        self.send(f"DEVICE recallPresetByName {name}")

    async def _command_writer(self):
        """Write queued commands to the shell one at a time."""
        try:
            while self._state is SessionState.CONNECTED:
                command = await self._command_queue.get()
                try:
                    self._logger.info(f"SEND: {command}")
                    self._last_command = command
                    self._process.stdin.write(command + "\n")
                    await self._process.stdin.drain()
                finally:
                    self._command_queue.task_done()
                await asyncio.sleep(self._pacing)
        except asyncio.CancelledError:
            self._logger.debug("Biamp writer cancelled")
            raise
        except Exception as e:
            self._logger.error(f"Error writing to Biamp shell: {e}", exc_info=True)
            self._notify("error", f"Error writing to Biamp shell: {e}")
        finally:
            self._teardown()

    async def _feedback_reader(self):
        """Read feedback lines and match them against registered objects."""
        try:
            while self._state is SessionState.CONNECTED:
                line = await self._process.stdout.readline()
                if not line:
                    self._logger.info("Biamp shell closed the stream")
                    break
                line = line.rstrip("\r\n")
                if not line:
                    continue
                self._logger.debug(f"RECV: {line}")
                obj, value = self._match_feedback(line)
                self._feedback_queue.put_nowait((line, obj, value))
        except asyncio.CancelledError:
            self._logger.debug("Biamp reader cancelled")
            raise
        except Exception as e:
            self._logger.error(f"Error reading from Biamp shell: {e}", exc_info=True)
            self._notify("error", f"Error reading from Biamp shell: {e}")
        finally:
            self._teardown()

    def _match_feedback(self, line: str) -> tuple[Optional[DeviceObject], Optional[str]]:
        # Objects registered first win if two could claim the same line
        for obj in list(self._subscribed_objects):
            if matches_feedback(obj, line, self._last_command):
                self._last_command = ""
                return obj, extract_value(obj, line)
        return None, None

    async def _feedback_worker(self):
        """Deliver matched feedback to the listener outside of the reader task."""
        while True:
            try:
                line, obj, value = await self._feedback_queue.get()
            except asyncio.CancelledError:
                self._logger.debug("Biamp feedback worker cancelled")
                break
            self._notify("device_line_received", line)
            if obj is not None:
                self._logger.info(f"Feedback for {obj.label}: {value}")
                self._notify("device_feedback", obj, value)
            self._feedback_queue.task_done()

    def _notify(self, event: str, *args):
        try:
            getattr(self._callback, event)(*args)
        except Exception as e:
            self._logger.error(f"Exception in {event}() callback: {e}", exc_info=True)

    def _teardown(self):
        """Release the shell and the SSH connection. Safe to call from any of the session tasks."""
        if self._state is SessionState.DISCONNECTED:
            return
        self._state = SessionState.DISCONNECTED

        current = asyncio.current_task()
        for task in (self._writer_task, self._reader_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._writer_task = None
        self._reader_task = None
        self._last_command = ""

        self._close_transport()
        self._logger.info(f"Biamp client disconnected from {self._hostname}")
        self._notify("device_disconnected")

    def _close_transport(self):
        if self._process is not None:
            self._process.close()
            self._process = None
        if self._connection is not None:
            self._connection.close()
            self._connection = None
