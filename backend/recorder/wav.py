"""
Canonical PCM WAVE encoding.

Serializes float samples into a 44-byte-header RIFF/WAVE container with
16-bit little-endian PCM data. Everything here is pure: no I/O, the same
input always produces the same bytes.
"""

import struct
from dataclasses import dataclass

import numpy as np

from .constants import (
    WAV_HEADER_SIZE,
    WAV_FMT_CHUNK_SIZE,
    WAV_PCM_FORMAT_TAG,
    WAV_BITS_PER_SAMPLE,
    WAV_BYTES_PER_SAMPLE,
    PCM_NEGATIVE_SCALE,
    PCM_POSITIVE_SCALE,
)

# RIFF id, RIFF size, WAVE, fmt id, fmt size, format tag, channels,
# sample rate, byte rate, block align, bits per sample, data id, data size
_HEADER_STRUCT = struct.Struct('<4sI4s4sIHHIIHH4sI')


@dataclass(frozen=True)
class WavInfo:
    channels: int
    sample_rate: int
    bits_per_sample: int
    byte_rate: int
    block_align: int
    data_size: int
    riff_size: int

    @property
    def frames(self) -> int:
        return self.data_size // self.block_align if self.block_align else 0

    @property
    def file_size(self) -> int:
        return self.riff_size + 8


def build_header(frames: int, sample_rate: int, channels: int) -> bytes:
    """
    Build the 44-byte canonical header.

    Args:
        frames: Number of sample frames in the data chunk
        sample_rate: Sample rate in Hz
        channels: Number of interleaved channels

    Returns:
        Header bytes
    """
    block_align = channels * WAV_BYTES_PER_SAMPLE
    data_size = frames * block_align
    return _HEADER_STRUCT.pack(
        b'RIFF',
        data_size + 36,
        b'WAVE',
        b'fmt ',
        WAV_FMT_CHUNK_SIZE,
        WAV_PCM_FORMAT_TAG,
        channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        WAV_BITS_PER_SAMPLE,
        b'data',
        data_size,
    )


def quantize(samples) -> np.ndarray:
    """
    Quantize float samples to 16-bit PCM.

    Samples are clamped to [-1, 1], scaled by 32768 when negative and 32767
    otherwise, and truncated toward zero.
    """
    clamped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clamped < 0, clamped * PCM_NEGATIVE_SCALE, clamped * PCM_POSITIVE_SCALE)
    return np.trunc(scaled).astype('<i2')


def encode_wav(samples, sample_rate: int, channels: int) -> bytes:
    """
    Encode float samples into a WAV file.

    Args:
        samples: Either a (frames, channels) array or a flat, channel-interleaved
                 sequence of floats
        sample_rate: Sample rate to record in the header; must be the true rate
                     of the samples
        channels: Number of channels

    Returns:
        Complete WAV file bytes (44-byte header + PCM data)
    """
    if channels < 1:
        raise ValueError(f"channels must be >= 1, got {channels}")
    if sample_rate < 1:
        raise ValueError(f"sample_rate must be >= 1, got {sample_rate}")

    data = np.asarray(samples, dtype=np.float64)
    if data.ndim == 2:
        if data.shape[1] != channels:
            raise ValueError(f"Expected {channels} channels, got array with {data.shape[1]}")
        data = data.reshape(-1)
    elif data.ndim != 1:
        raise ValueError(f"Samples must be 1-D or 2-D, got {data.ndim}-D")

    if len(data) % channels != 0:
        raise ValueError(
            f"Interleaved sample count {len(data)} is not a multiple of {channels} channels"
        )

    frames = len(data) // channels
    return build_header(frames, sample_rate, channels) + quantize(data).tobytes()


def encode_mixed(signal) -> bytes:
    """Encode a MixedSignal at its own sample rate."""
    return encode_wav(signal.samples, signal.sample_rate, signal.channel_count)


def read_wav_header(data: bytes) -> WavInfo:
    """
    Parse a canonical 44-byte WAV header.

    Raises:
        ValueError: If the bytes are not a canonical PCM WAV header
    """
    if len(data) < WAV_HEADER_SIZE:
        raise ValueError(f"WAV data too short: {len(data)} bytes")

    (riff, riff_size, wave_id, fmt_id, fmt_size, format_tag, channels, sample_rate,
     byte_rate, block_align, bits, data_id, data_size) = _HEADER_STRUCT.unpack_from(data)

    if riff != b'RIFF' or wave_id != b'WAVE':
        raise ValueError("Not a RIFF/WAVE file")
    if fmt_id != b'fmt ' or fmt_size != WAV_FMT_CHUNK_SIZE or format_tag != WAV_PCM_FORMAT_TAG:
        raise ValueError("Not a canonical PCM fmt chunk")
    if data_id != b'data':
        raise ValueError("Missing data chunk after fmt chunk")

    return WavInfo(
        channels=channels,
        sample_rate=sample_rate,
        bits_per_sample=bits,
        byte_rate=byte_rate,
        block_align=block_align,
        data_size=data_size,
        riff_size=riff_size,
    )


def read_wav_samples(data: bytes) -> np.ndarray:
    """Return the PCM data of a canonical WAV file as a (frames, channels) int16 array."""
    info = read_wav_header(data)
    pcm = np.frombuffer(data, dtype='<i2', count=info.data_size // WAV_BYTES_PER_SAMPLE,
                        offset=WAV_HEADER_SIZE)
    return pcm.reshape(-1, info.channels)
