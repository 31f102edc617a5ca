"""
Recording session state machine.

Idle -> Recording -> {Paused <-> Recording} -> Idle, driven by an explicit
transition table. Commands that are not in the table are rejected instead of
being silently ignored.
"""

from enum import Enum
from typing import Dict, Tuple

from .errors import InvalidTransition


class RecordingState(Enum):
    IDLE = 'idle'
    RECORDING = 'recording'
    PAUSED = 'paused'


class Command(Enum):
    START = 'start'
    PAUSE = 'pause'
    RESUME = 'resume'
    STOP = 'stop'


TRANSITIONS: Dict[Tuple[RecordingState, Command], RecordingState] = {
    (RecordingState.IDLE, Command.START): RecordingState.RECORDING,
    (RecordingState.RECORDING, Command.PAUSE): RecordingState.PAUSED,
    (RecordingState.PAUSED, Command.RESUME): RecordingState.RECORDING,
    (RecordingState.RECORDING, Command.STOP): RecordingState.IDLE,
    (RecordingState.PAUSED, Command.STOP): RecordingState.IDLE,
}


class RecordingStateMachine:
    """Single authoritative recording state."""

    def __init__(self):
        self._state = RecordingState.IDLE

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state is RecordingState.IDLE

    def can(self, command: Command) -> bool:
        return (self._state, command) in TRANSITIONS

    def transition(self, command: Command) -> RecordingState:
        """
        Apply a command.

        Args:
            command: Command to apply

        Returns:
            The new state

        Raises:
            InvalidTransition: If the current state does not accept the command
        """
        try:
            self._state = TRANSITIONS[(self._state, command)]
        except KeyError:
            raise InvalidTransition(self._state, command) from None
        return self._state

    def reset(self) -> None:
        """Force the machine back to Idle after a fatal error."""
        self._state = RecordingState.IDLE
