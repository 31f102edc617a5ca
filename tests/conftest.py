"""Shared fixtures: in-process fakes for every external capability.

- FakeCaptureBackend / FakeCaptureStream: push-style chunk delivery driven by the test
- FakeDecoder: decodes payloads that are raw interleaved float32
- InMemoryStorage: dict-backed persistence with injectable failures
- RecordingDocument: collects inserted text
- FakeDevices: static device registry
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

import numpy as np
import pytest

from recorder.capture import CaptureBackend, CaptureStream
from recorder.controller import RecorderController
from recorder.decoder import DecodeBackend, DecodedAudio
from recorder.document import DocumentSink
from recorder.errors import CaptureError, DecodeError, DeviceUnavailable, StorageError
from recorder.settings import RecorderSettings
from recorder.storage import StorageBackend

FIXED_TIME = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
FIXED_STAMP = "2024-01-02T03-04-05-678Z"


# =============================================================================
# Signal helpers
# =============================================================================

def sine(freq: float = 440.0, seconds: float = 1.0, rate: int = 44100, amplitude: float = 0.5) -> np.ndarray:
    n = int(round(seconds * rate))
    t = np.arange(n, dtype=np.float64) / rate
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def float_chunks(samples: np.ndarray, count: int = 4) -> List[bytes]:
    """Split float32 samples into `count` byte chunks on sample boundaries."""
    return [part.astype('<f4').tobytes() for part in np.array_split(np.asarray(samples), count)]


# =============================================================================
# Capture
# =============================================================================

class FakeCaptureStream(CaptureStream):
    def __init__(self, source_id, sample_rate, mime_type, on_chunk, on_error, channel_count=1):
        self.source_id = source_id
        self.sample_rate = sample_rate
        self.channel_count = channel_count
        self.mime_type = mime_type
        self._on_chunk = on_chunk
        self._on_error = on_error
        self.calls: List[str] = []
        self.started = False
        self.paused = False
        self.stopped = False
        self.final_chunks: List[bytes] = []
        self.stop_error: Optional[Exception] = None
        self.start_error: Optional[Exception] = None

    def emit(self, chunk: bytes):
        """Deliver a chunk as the platform would (dropped while paused)."""
        if self.started and not self.paused and not self.stopped:
            self._on_chunk(chunk)

    def fault(self, exc: Exception):
        self._on_error(exc)

    def start(self):
        self.calls.append('start')
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def pause(self):
        self.calls.append('pause')
        self.paused = True

    def resume(self):
        self.calls.append('resume')
        self.paused = False

    async def stop(self):
        self.calls.append('stop')
        await asyncio.sleep(0)
        for chunk in self.final_chunks:
            self._on_chunk(chunk)
        self.stopped = True
        if self.stop_error is not None:
            raise self.stop_error


class FakeCaptureBackend(CaptureBackend):
    def __init__(self, supported: Optional[set] = None, unavailable: Optional[set] = None,
                 native_rate: Optional[int] = None, start_failures: Optional[dict] = None):
        self.supported = supported
        self.unavailable = unavailable or set()
        self.start_failures = start_failures or {}
        self.native_rate = native_rate
        self.streams: List[FakeCaptureStream] = []
        self.support_checks: List[str] = []

    def is_type_supported(self, mime_type: str) -> bool:
        self.support_checks.append(mime_type)
        return self.supported is None or mime_type in self.supported

    async def open(self, source_id, sample_rate, mime_type, bitrate, on_chunk, on_error):
        await asyncio.sleep(0)
        if source_id in self.unavailable:
            raise DeviceUnavailable(f"Device {source_id} is busy")
        stream = FakeCaptureStream(source_id, self.native_rate or sample_rate, mime_type,
                                   on_chunk, on_error)
        stream.start_error = self.start_failures.get(source_id)
        self.streams.append(stream)
        return stream


# =============================================================================
# Decode / storage / document / devices
# =============================================================================

class FakeDecoder(DecodeBackend):
    """Payloads are interleaved little-endian float32; b'BAD' prefix is corrupt."""

    def __init__(self, sample_rate: int = 44100, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels
        self.calls: List[int] = []

    async def decode(self, data: bytes, mime_hint: str) -> DecodedAudio:
        await asyncio.sleep(0)
        self.calls.append(len(data))
        if data.startswith(b'BAD') or len(data) % (4 * self.channels):
            raise DecodeError("corrupt or partial chunk")
        frames = np.frombuffer(data, dtype='<f4').reshape(-1, self.channels)
        return DecodedAudio(
            channels=[frames[:, c].copy() for c in range(self.channels)],
            sample_rate=self.sample_rate,
        )


class InMemoryStorage(StorageBackend):
    def __init__(self, existing: Optional[Dict[str, bytes]] = None, fail_writes: Optional[set] = None):
        self.files: Dict[str, bytes] = dict(existing or {})
        self.fail_writes = fail_writes or set()
        self.writes: List[str] = []
        self.probes: List[str] = []

    async def exists(self, path: str) -> bool:
        self.probes.append(path)
        return path in self.files

    async def write_binary(self, path: str, data: bytes) -> str:
        if any(marker in path for marker in self.fail_writes):
            raise StorageError(f"disk full: {path}")
        self.files[path] = bytes(data)
        self.writes.append(path)
        return path


class RecordingDocument(DocumentSink):
    def __init__(self):
        self.inserted: List[str] = []

    def insert_at_cursor(self, text: str) -> None:
        self.inserted.append(text)


class FakeDevices:
    def __init__(self, devices=None):
        self.devices = devices if devices is not None else [
            {"id": "1", "label": "USB Mic #1"},
            {"id": "2", "label": "Studio-Interface (2)"},
        ]

    def list_audio_input_devices(self):
        return list(self.devices)

    def get_device_label(self, device_id):
        for device in self.devices:
            if device["id"] == device_id:
                return device["label"]
        return None


class MemorySettingsStore:
    def __init__(self):
        self.saved = []

    def save(self, settings):
        self.saved.append(settings.to_dict())


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def backend() -> FakeCaptureBackend:
    return FakeCaptureBackend()


@pytest.fixture
def decoder() -> FakeDecoder:
    return FakeDecoder()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def document() -> RecordingDocument:
    return RecordingDocument()


@pytest.fixture
def notices() -> List[str]:
    return []


@pytest.fixture
def make_controller(backend, decoder, storage, document, notices):
    """Build a controller over the fakes; keyword arguments override settings."""
    def _make(devices=None, settings_store=None, **overrides):
        values = dict(file_prefix='rec', save_folder='Recordings')
        values.update(overrides)
        settings = RecorderSettings(**values)
        return RecorderController(
            settings,
            backend,
            decoder,
            storage,
            devices=devices if devices is not None else FakeDevices(),
            document=document,
            settings_store=settings_store,
            notify=notices.append,
            clock=lambda: FIXED_TIME,
        )
    return _make
