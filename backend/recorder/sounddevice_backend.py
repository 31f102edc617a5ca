"""
Capture backend using sounddevice for input and ffmpeg for encoding.

PCM from the PortAudio callback is handed to the event loop, written to an
ffmpeg process encoding the configured container, and ffmpeg's stdout is
read back as the stream's chunks. The PortAudio callback runs on its own
thread and only ever schedules work onto the loop.
"""

import asyncio
import sys
from typing import Optional

import sounddevice as sd

from .capture import CaptureBackend, CaptureStream, ChunkCallback, ErrorCallback
from .codecs import build_encode_command, format_for_mime, is_mime_supported
from .constants import DEFAULT_CHUNK_SIZE, ENCODED_READ_SIZE, MAX_CAPTURE_CHANNELS
from .errors import CaptureError, DeviceUnavailable


def resolve_device(source_id: str):
    """
    Resolve a source id to a PortAudio device index.

    Args:
        source_id: Device index as a string, or '' for the default input

    Returns:
        (device_index or None for default, device info dict)

    Raises:
        DeviceUnavailable: If the id does not name an input device
    """
    try:
        if not source_id:
            return None, sd.query_devices(kind='input')
        index = int(source_id)
        info = sd.query_devices(index)
    except (ValueError, sd.PortAudioError) as e:
        raise DeviceUnavailable(f"Input device {source_id or 'default'} not found: {e}") from e

    if info['max_input_channels'] < 1:
        raise DeviceUnavailable(f"Device {source_id} ({info['name']}) has no input channels")
    return index, info


class FfmpegCaptureStream(CaptureStream):
    """One PortAudio input stream encoded through one ffmpeg process."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        stream: sd.RawInputStream,
        proc: asyncio.subprocess.Process,
        on_chunk: ChunkCallback,
        on_error: ErrorCallback
    ):
        self._loop = loop
        self._stream = stream
        self._proc = proc
        self._on_chunk = on_chunk
        self._on_error = on_error
        self._paused = False
        self._stopping = False
        self._reader: Optional[asyncio.Task] = None
        self.sample_rate = int(stream.samplerate)
        self.channel_count = stream.channels

    def _audio_callback(self, indata, frames, time_info, status):
        if status:
            print(f"Capture status: {status}", file=sys.stderr)
        if self._paused or self._stopping:
            return
        self._loop.call_soon_threadsafe(self._feed, bytes(indata))

    def _feed(self, pcm: bytes):
        stdin = self._proc.stdin
        if self._stopping or stdin is None or stdin.is_closing():
            return
        try:
            stdin.write(pcm)
        except (BrokenPipeError, ConnectionResetError) as e:
            self._fault(CaptureError(f"Encoder pipe closed: {e}"))

    def _fault(self, exc: Exception):
        if not self._stopping:
            self._on_error(exc)

    async def _read_encoded(self):
        while True:
            chunk = await self._proc.stdout.read(ENCODED_READ_SIZE)
            if not chunk:
                break
            self._on_chunk(chunk)
        if not self._stopping:
            self._fault(CaptureError("Encoder exited while recording"))

    def start(self):
        self._reader = self._loop.create_task(self._read_encoded())
        self._stream.start()

    def pause(self):
        self._paused = True

    def resume(self):
        self._paused = False

    async def stop(self):
        self._stopping = True
        input_error = None
        for step in (self._stream.stop, self._stream.close):
            try:
                await asyncio.to_thread(step)
            except sd.PortAudioError as e:
                print(f"Input stream {step.__name__} failed: {e}", file=sys.stderr)
                input_error = input_error or e

        stdin = self._proc.stdin
        if stdin is not None and not stdin.is_closing():
            try:
                await stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                pass
            stdin.close()

        if self._reader is not None:
            await self._reader
        stderr = await self._proc.stderr.read()
        returncode = await self._proc.wait()
        if returncode != 0:
            raise CaptureError(
                f"Encoder exited with code {returncode}: {stderr.decode(errors='replace').strip()}"
            )
        if input_error is not None:
            raise CaptureError(f"Input stream did not stop cleanly: {input_error}") from input_error


class SoundDeviceCaptureBackend(CaptureBackend):
    """Captures from PortAudio devices, encoding with ffmpeg."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def is_type_supported(self, mime_type: str) -> bool:
        return is_mime_supported(mime_type)

    async def open(
        self,
        source_id: str,
        sample_rate: int,
        mime_type: str,
        bitrate: Optional[int],
        on_chunk: ChunkCallback,
        on_error: ErrorCallback
    ) -> CaptureStream:
        recording_format = format_for_mime(mime_type)
        device_index, info = resolve_device(source_id)
        channels = max(1, min(int(info['max_input_channels']), MAX_CAPTURE_CHANNELS))
        loop = asyncio.get_running_loop()

        holder = {}

        def callback(indata, frames, time_info, status):
            stream = holder.get('stream')
            if stream is not None:
                stream._audio_callback(indata, frames, time_info, status)

        try:
            pa_stream = sd.RawInputStream(
                device=device_index,
                channels=channels,
                samplerate=sample_rate,
                dtype='int16',
                blocksize=self.chunk_size,
                callback=callback,
            )
        except sd.PortAudioError as e:
            raise DeviceUnavailable(
                f"Failed to open input stream on {info['name']} at {sample_rate} Hz: {e}"
            ) from e

        actual_rate = int(pa_stream.samplerate)
        if actual_rate != sample_rate:
            print(f"  Device {info['name']} runs at {actual_rate} Hz (requested {sample_rate} Hz)",
                  file=sys.stderr)

        cmd = build_encode_command(recording_format, actual_rate, channels, bitrate)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            pa_stream.close()
            raise CaptureError(f"Could not launch ffmpeg: {e}") from e

        stream = FfmpegCaptureStream(loop, pa_stream, proc, on_chunk, on_error)
        holder['stream'] = stream
        return stream

