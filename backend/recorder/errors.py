"""
Recorder exception taxonomy.

Every failure the recorder can report derives from RecorderError, so the
controller can catch at its command boundaries and turn any of them into a
user-visible notice.
"""


class RecorderError(RuntimeError):
    """Base class for all recorder failures."""


class UnsupportedFormat(RecorderError):
    """The requested codec/mime is not supported by the capture backend."""


class DeviceUnavailable(RecorderError):
    """The requested input device could not be bound."""


class DecodeError(RecorderError):
    """Captured bytes are not a valid encoding of the configured format."""


class NoAudioCaptured(RecorderError):
    """Every track was empty when the session stopped."""


class StorageError(RecorderError):
    """A write or existence check failed in the persistence backend."""


class CaptureError(RecorderError):
    """A capture stream faulted mid-session or while flushing."""

    def __init__(self, message, track_index=None):
        super().__init__(message)
        self.track_index = track_index


class InvalidTransition(RecorderError):
    """A command was issued in a state that does not accept it."""

    def __init__(self, state, command):
        super().__init__(f"Cannot {command.value} while {state.value}")
        self.state = state
        self.command = command
