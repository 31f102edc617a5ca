"""
Stream capture driver.

Owns one capture stream per track. Streams deliver encoded chunks through a
push-style callback; the driver appends them to the track's buffer in
arrival order. Stopping is a joined wait over every stream, so the buffers
are complete only once every backend has flushed its final chunk.
"""

import asyncio
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

from .buffers import TrackCapture
from .errors import CaptureError, DeviceUnavailable, RecorderError


ChunkCallback = Callable[[bytes], None]
ErrorCallback = Callable[[Exception], None]


class CaptureStream(ABC):
    """One open capture stream, bound to one device."""

    sample_rate: int = 0
    channel_count: int = 0

    @abstractmethod
    def start(self):
        """Begin delivering chunks."""
        pass

    @abstractmethod
    def pause(self):
        """Stop capturing without closing the stream."""
        pass

    @abstractmethod
    def resume(self):
        """Continue capturing after pause()."""
        pass

    @abstractmethod
    async def stop(self):
        """
        Close the stream.

        Resolves only after the final chunk has been delivered to the chunk
        callback.
        """
        pass


class CaptureBackend(ABC):
    """Platform capture capability."""

    @abstractmethod
    def is_type_supported(self, mime_type: str) -> bool:
        pass

    @abstractmethod
    async def open(
        self,
        source_id: str,
        sample_rate: int,
        mime_type: str,
        bitrate: Optional[int],
        on_chunk: ChunkCallback,
        on_error: ErrorCallback
    ) -> CaptureStream:
        """
        Open a capture stream.

        Args:
            source_id: Device identifier ('' = default device)
            sample_rate: Requested capture rate
            mime_type: Container/codec to encode chunks in
            bitrate: Requested bitrate for compressed codecs
            on_chunk: Called on the event loop with each encoded chunk, in order
            on_error: Called on the event loop if the stream faults mid-session

        Raises:
            DeviceUnavailable: If the device cannot be bound
        """
        pass


@dataclass
class StreamHandle:
    track: TrackCapture
    stream: CaptureStream

    @property
    def track_index(self) -> int:
        return self.track.index


class StreamCaptureDriver:
    """Opens and controls the per-track capture streams of a session."""

    def __init__(
        self,
        backend: CaptureBackend,
        mime_type: str,
        bitrate: Optional[int] = None,
        on_fault: Optional[Callable[[int, Exception], None]] = None,
        debug: bool = False
    ):
        self.backend = backend
        self.mime_type = mime_type
        self.bitrate = bitrate
        self.on_fault = on_fault
        self.debug = debug

    def _chunk_sink(self, track: TrackCapture) -> ChunkCallback:
        def on_chunk(chunk: bytes):
            if track.sealed:
                if self.debug:
                    print(f"[capture] track={track.index} late chunk dropped bytes={len(chunk)}",
                          file=sys.stderr)
                return
            track.append(chunk)
        return on_chunk

    def _error_sink(self, track: TrackCapture) -> ErrorCallback:
        def on_error(exc: Exception):
            print(f"Capture fault on track {track.index}: {exc}", file=sys.stderr)
            if self.on_fault is not None:
                self.on_fault(track.index, exc)
        return on_error

    async def open(self, track: TrackCapture, sample_rate: int) -> StreamHandle:
        """
        Open a stream for a track.

        Raises:
            DeviceUnavailable: If the backend cannot bind the track's device
        """
        device = track.source_id or 'default device'
        try:
            stream = await self.backend.open(
                track.source_id,
                sample_rate,
                self.mime_type,
                self.bitrate,
                self._chunk_sink(track),
                self._error_sink(track),
            )
        except RecorderError:
            raise
        except Exception as e:
            raise DeviceUnavailable(f"Track {track.index}: could not open {device}: {e}") from e

        track.sample_rate = stream.sample_rate or sample_rate
        track.channel_count = stream.channel_count
        print(f"✓ Track {track.index} stream opened ({device}, {track.sample_rate} Hz, "
              f"{track.channel_count} channel(s))", file=sys.stderr)
        return StreamHandle(track=track, stream=stream)

    def start(self, handle: StreamHandle):
        """
        Start one stream.

        Raises:
            DeviceUnavailable: If the backend cannot start capturing
        """
        try:
            handle.stream.start()
        except RecorderError:
            raise
        except Exception as e:
            raise DeviceUnavailable(f"Track {handle.track_index}: could not start capture: {e}") from e

    def pause(self, handle: StreamHandle):
        handle.stream.pause()

    def resume(self, handle: StreamHandle):
        handle.stream.resume()

    async def stop(self, handle: StreamHandle):
        """Stop one stream; wraps backend failures as CaptureError."""
        try:
            await handle.stream.stop()
        except CaptureError as e:
            if e.track_index is None:
                e.track_index = handle.track_index
            raise
        except Exception as e:
            raise CaptureError(f"Track {handle.track_index}: {e}", track_index=handle.track_index) from e

        if self.debug:
            print(f"[capture] track={handle.track_index} flushed chunks={len(handle.track.chunks)} "
                  f"bytes={handle.track.byte_count}", file=sys.stderr)

    async def stop_all(self, handles: List[StreamHandle]) -> List[CaptureError]:
        """
        Stop every stream and wait for all of them to flush.

        A failing stream never prevents the others from flushing.

        Returns:
            The per-track failures, in track order
        """
        results = await asyncio.gather(*(self.stop(h) for h in handles), return_exceptions=True)
        failures = []
        for handle, result in zip(handles, results):
            if isinstance(result, CaptureError):
                failures.append(result)
            elif isinstance(result, BaseException):
                failures.append(CaptureError(f"Track {handle.track_index}: {result}",
                                             track_index=handle.track_index))
        return failures
