"""
Multi-track audio recorder.

Coordinates simultaneous capture streams, bounces them into one WAV file or
saves them per track, and links the results into the active document.
"""

from .controller import RecorderController
from .errors import (
    RecorderError,
    UnsupportedFormat,
    DeviceUnavailable,
    DecodeError,
    NoAudioCaptured,
    StorageError,
    CaptureError,
)
from .settings import RecorderSettings, SettingsStore
from .state import RecordingState
from .wav import encode_wav


def create_controller(settings, vault_root='.', note_path=None, settings_store=None, **kwargs):
    """
    Factory for a controller wired to the local machine.

    Capture uses sounddevice + ffmpeg, decoding uses ffmpeg, files go under
    vault_root and links are appended to note_path when given.

    Returns:
        RecorderController
    """
    # PortAudio is only loaded when real devices are needed
    from .decoder import FfmpegDecoder
    from .device_manager import DeviceManager
    from .document import MarkdownNoteDocument, NullDocument
    from .sounddevice_backend import SoundDeviceCaptureBackend
    from .storage import FileSystemStorage

    document = MarkdownNoteDocument(note_path) if note_path else NullDocument()
    return RecorderController(
        settings,
        SoundDeviceCaptureBackend(),
        FfmpegDecoder(debug=settings.debug),
        FileSystemStorage(vault_root),
        devices=DeviceManager(),
        document=document,
        settings_store=settings_store,
        **kwargs
    )


__all__ = [
    'create_controller',
    'RecorderController',
    'RecorderSettings',
    'SettingsStore',
    'RecordingState',
    'encode_wav',
    'RecorderError',
    'UnsupportedFormat',
    'DeviceUnavailable',
    'DecodeError',
    'NoAudioCaptured',
    'StorageError',
    'CaptureError',
]
