"""
ffmpeg command building and probing.

ffmpeg encodes live PCM into the configured capture container and decodes
captured payloads back into float samples; ffprobe reports what a payload
actually contains. Both are driven over pipes, never through temp files.
"""

import asyncio
import json
import shutil
import sys
from typing import Dict, List, Optional, Tuple

from .constants import (
    CODEC_TABLE,
    FFMPEG_BINARY,
    FFPROBE_BINARY,
    PROBE_TIMEOUT_SECONDS,
)
from .errors import DecodeError, UnsupportedFormat


def ffmpeg_available() -> bool:
    """Check that both ffmpeg and ffprobe are on PATH."""
    return shutil.which(FFMPEG_BINARY) is not None and shutil.which(FFPROBE_BINARY) is not None


def mime_for_format(recording_format: str) -> str:
    """
    Build the capture mime type for a recording format.

    Args:
        recording_format: One of SUPPORTED_FORMATS (e.g. 'ogg')

    Returns:
        Mime string such as 'audio/ogg;codecs=opus'. Unknown formats fall back
        to opus so the pre-flight support check can reject them.
    """
    codec = CODEC_TABLE.get(recording_format, (None, None, 'opus', []))[2]
    return f"audio/{recording_format};codecs={codec}"


def parse_mime(mime_type: str) -> Tuple[str, Optional[str]]:
    """
    Split 'audio/<container>;codecs=<codec>' into (container, codec).

    Raises:
        UnsupportedFormat: If the string is not an audio mime type
    """
    main, _, params = mime_type.partition(';')
    kind, _, container = main.strip().partition('/')
    if kind != 'audio' or not container:
        raise UnsupportedFormat(f"Not an audio mime type: {mime_type!r}")

    codec = None
    for param in params.split(';'):
        key, _, value = param.strip().partition('=')
        if key == 'codecs' and value:
            codec = value.strip('"\' ')
    return container, codec


def format_for_mime(mime_type: str) -> str:
    """
    Resolve a mime type to a recording format in the codec table.

    Raises:
        UnsupportedFormat: If the container/codec combination has no encoder
    """
    container, codec = parse_mime(mime_type)
    entry = CODEC_TABLE.get(container)
    if entry is None:
        raise UnsupportedFormat(f"The format {mime_type} is not supported")
    if codec is not None and codec != entry[2]:
        raise UnsupportedFormat(
            f"The format {mime_type} is not supported "
            f"({container} is captured as {entry[2]}, not {codec})"
        )
    return container


def is_mime_supported(mime_type: str) -> bool:
    try:
        format_for_mime(mime_type)
    except UnsupportedFormat:
        return False
    return ffmpeg_available()


def build_encode_command(
    recording_format: str,
    sample_rate: int,
    channels: int,
    bitrate: Optional[int] = None
) -> List[str]:
    """
    ffmpeg command reading s16le PCM on stdin and writing the container on stdout.

    Args:
        recording_format: Key into CODEC_TABLE
        sample_rate: Rate of the incoming PCM
        channels: Channel count of the incoming PCM
        bitrate: Target bitrate in bits per second (ignored for PCM)
    """
    muxer, encoder, _, muxer_args = CODEC_TABLE[recording_format]
    cmd = [
        FFMPEG_BINARY,
        '-hide_banner',
        '-loglevel', 'error',
        '-f', 's16le',
        '-ar', str(sample_rate),
        '-ac', str(channels),
        '-i', 'pipe:0',
        '-c:a', encoder,
    ]
    if bitrate and not encoder.startswith('pcm_'):
        cmd += ['-b:a', str(bitrate)]
    cmd += muxer_args
    cmd += ['-f', muxer, 'pipe:1']
    return cmd


def build_decode_command(channels: int, sample_rate: int) -> List[str]:
    """ffmpeg command decoding any payload on stdin to native-rate float32 on stdout."""
    return [
        FFMPEG_BINARY,
        '-hide_banner',
        '-loglevel', 'error',
        '-i', 'pipe:0',
        '-f', 'f32le',
        '-acodec', 'pcm_f32le',
        '-ac', str(channels),
        '-ar', str(sample_rate),
        'pipe:1',
    ]


def build_probe_command() -> List[str]:
    return [
        FFPROBE_BINARY,
        '-v', 'error',
        '-show_format',
        '-show_streams',
        '-of', 'json',
        '-i', 'pipe:0',
    ]


def parse_probe_output(output: str) -> Dict:
    """
    Extract audio stream information from ffprobe JSON output.

    Returns:
        Dict with 'codec', 'sample_rate', 'channels' and, when known,
        'duration'; empty dict if there is no audio stream
    """
    try:
        probe_data = json.loads(output or '{}')
    except json.JSONDecodeError:
        return {}

    info = {}
    for stream in probe_data.get('streams', []):
        if stream.get('codec_type') == 'audio':
            info['codec'] = stream.get('codec_name', 'unknown')
            info['sample_rate'] = int(stream.get('sample_rate', 0))
            info['channels'] = int(stream.get('channels', 0))
            break
    else:
        return {}

    duration = probe_data.get('format', {}).get('duration')
    if duration not in (None, 'N/A'):
        info['duration'] = float(duration)
    return info


async def run_pipe(cmd: List[str], data: bytes, timeout: Optional[float] = None) -> Tuple[int, bytes, bytes]:
    """Run a command with data on stdin; return (returncode, stdout, stderr)."""
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(data), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return proc.returncode, stdout, stderr


async def probe_bytes(data: bytes) -> Dict:
    """
    Probe an in-memory payload with ffprobe.

    Raises:
        DecodeError: If ffprobe is missing, times out, or finds no audio stream
    """
    if shutil.which(FFPROBE_BINARY) is None:
        raise DecodeError("ffprobe not found in PATH")

    try:
        returncode, stdout, stderr = await run_pipe(build_probe_command(), data, PROBE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        raise DecodeError("ffprobe timed out") from None

    if returncode != 0:
        raise DecodeError(f"ffprobe failed: {stderr.decode(errors='replace').strip()}")

    info = parse_probe_output(stdout.decode(errors='replace'))
    if not info or info.get('channels', 0) < 1 or info.get('sample_rate', 0) < 1:
        print("  Probe found no usable audio stream", file=sys.stderr)
        raise DecodeError("No audio stream in captured data")
    return info
