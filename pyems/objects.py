"""Biamp Tesira control objects.

Each object is identified by its instance tag and index (crosspoints carry a
second index). Level and Mute objects subscribe once and are recognized by the
publish token the DSP embeds in every notification:

    ! "publishToken":"Mute1_3" "value":true

Crosspoint, router input and logic state objects are not subscribed. Every
change is followed by a get command, and the reply is only recognized when the
last command written to the DSP is that object's get command:

    Router1 get crosspointLevelState 6 7
    +OK "value":true
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pyems.biamp import BiampSession

# Notification prefix for subscribed objects, followed by the value
PUBLISH_FEEDBACK = '! "publishToken":"{token}" "value":'
# Reply to a get command
PULL_FEEDBACK = 'OK "value"'
# Minimum interval (ms) between notifications for a subscription
SUBSCRIBE_RATE = 500


def grab_value(feedback_line: str) -> str:
    """Return the value of a feedback line (the text after its final ':')."""
    value = feedback_line.split(":")[-1]
    if value.startswith("true"):
        return "true"
    if value.startswith("false"):
        return "false"
    return value


@dataclass(eq=False)
class DeviceObject:
    session: "BiampSession" = field(repr=False)
    instance: str
    index: int

    @property
    def label(self) -> str:
        return f"{self.instance}_{self.index}"

    def subscribe(self):
        self.session.send(subscribe_command(self))

    def _send(self, command: str):
        self.session.send(command)

    def _get(self):
        self.session.send(get_command(self))


@dataclass(eq=False)
class Level(DeviceObject):

    def set_level(self, value: int):
        self._send(f"{self.instance} set level {self.index} {value}")

    def increment(self, value: int):
        self._send(f"{self.instance} increment level {self.index} {value}")

    def decrement(self, value: int):
        self._send(f"{self.instance} decrement level {self.index} {value}")


@dataclass(eq=False)
class Mute(DeviceObject):

    def set_mute_on(self):
        self._send(f"{self.instance} set mute {self.index} true")

    def set_mute_off(self):
        self._send(f"{self.instance} set mute {self.index} false")

    def toggle(self):
        self._send(f"{self.instance} toggle mute {self.index}")


@dataclass(eq=False)
class Crosspoint(DeviceObject):
    index2: int

    @property
    def label(self) -> str:
        return f"{self.instance}_{self.index}_{self.index2}"

    def set_on(self):
        self._send(f"{self.instance} set crosspointLevelState {self.index} {self.index2} true")
        self._get()

    def set_off(self):
        self._send(f"{self.instance} set crosspointLevelState {self.index} {self.index2} false")
        self._get()

    def toggle(self):
        self._send(f"{self.instance} toggle crosspointLevelState {self.index} {self.index2}")
        self._get()


@dataclass(eq=False)
class RouterInput(DeviceObject):

    def set(self, value: int):
        self._send(f"{self.instance} set input {self.index} {value}")
        self._get()

    def increment(self, value: int):
        self._send(f"{self.instance} increment input {self.index} {value}")
        self._get()

    def decrement(self, value: int):
        self._send(f"{self.instance} decrement input {self.index} {value}")
        self._get()


@dataclass(eq=False)
class LogicState(DeviceObject):

    def set_on(self):
        self._send(f"{self.instance} set state {self.index} true")
        self._get()

    def set_off(self):
        self._send(f"{self.instance} set state {self.index} false")
        self._get()

    def toggle(self):
        self._send(f"{self.instance} toggle state {self.index}")
        self._get()


def subscribe_command(obj: DeviceObject) -> str:
    match obj:
        case Level():
            return f"{obj.instance} subscribe level {obj.index} {obj.label} {SUBSCRIBE_RATE}"
        case Mute():
            return f"{obj.instance} subscribe mute {obj.index} {obj.label} {SUBSCRIBE_RATE}"
        case _:
            raise NotImplementedError(f"{type(obj).__name__} objects are polled, not subscribed")


def get_command(obj: DeviceObject) -> str:
    match obj:
        case Crosspoint():
            return f"{obj.instance} get crosspointLevelState {obj.index} {obj.index2}"
        case RouterInput():
            return f"{obj.instance} get input {obj.index}"
        case LogicState():
            return f"{obj.instance} get state {obj.index}"
        case _:
            raise NotImplementedError(f"{type(obj).__name__} objects are subscribed, not polled")


def _is_get_command(last_command: str, expected: str) -> bool:
    """Compare a sent command with an object's get command, indexes numerically."""
    sent = last_command.split()
    wanted = expected.split()
    if len(sent) < len(wanted):
        return False
    if sent[:3] != wanted[:3]:
        return False
    try:
        return all(int(a) == int(b) for a, b in zip(sent[3:len(wanted)], wanted[3:]))
    except ValueError:
        return False


def matches_feedback(obj: DeviceObject, feedback_line: str, last_command: str) -> bool:
    """Whether a feedback line from the DSP belongs to this object."""
    match obj:
        case Level() | Mute():
            return PUBLISH_FEEDBACK.format(token=obj.label) in feedback_line
        case Crosspoint() | RouterInput() | LogicState():
            if not last_command or PULL_FEEDBACK not in feedback_line:
                return False
            return _is_get_command(last_command, get_command(obj))
        case _:
            raise TypeError(f"Unknown device object: {obj!r}")


def extract_value(obj: DeviceObject, feedback_line: str) -> str:
    match obj:
        case Level() | Mute() | Crosspoint():
            return grab_value(feedback_line)
        case RouterInput() | LogicState():
            return feedback_line.split(":")[-1]
        case _:
            raise TypeError(f"Unknown device object: {obj!r}")


class DeviceRegistry:
    """Device objects realized on first use and kept for the life of the session.

    Creating an object registers it with the session for feedback matching and,
    for Level and Mute objects, sends its subscribe command once.
    """

    def __init__(self, session: "BiampSession"):
        self._session = session
        self._objects: dict[tuple, DeviceObject] = {}

    def level(self, instance: str, index: int) -> Level:
        return self._get_or_create(Level, instance, index)

    def mute(self, instance: str, index: int) -> Mute:
        return self._get_or_create(Mute, instance, index)

    def crosspoint(self, instance: str, index1: int, index2: int) -> Crosspoint:
        return self._get_or_create(Crosspoint, instance, index1, index2)

    def router_input(self, instance: str, index: int) -> RouterInput:
        return self._get_or_create(RouterInput, instance, index)

    def logic_state(self, instance: str, index: int) -> LogicState:
        return self._get_or_create(LogicState, instance, index)

    @property
    def objects(self) -> list[DeviceObject]:
        return list(self._objects.values())

    def __len__(self) -> int:
        return len(self._objects)

    def resubscribe(self):
        """Send the subscribe command of every push object again, e.g. after a reconnect."""
        for obj in self._objects.values():
            match obj:
                case Level() | Mute():
                    obj.subscribe()

    def _get_or_create(self, kind, instance: str, *indexes: int):
        key = (kind.__name__, instance, *indexes)
        obj = self._objects.get(key)
        if obj is None:
            obj = kind(self._session, instance, *indexes)
            self._objects[key] = obj
            self._session.subscribe(obj)
            # Disconnected sessions pick this up from resubscribe() on connect
            if self._session.is_connected:
                match obj:
                    case Level() | Mute():
                        obj.subscribe()
        return obj
