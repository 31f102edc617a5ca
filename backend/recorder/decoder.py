"""
Decoding captured payloads into per-channel float samples.
"""

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

import numpy as np

from .codecs import build_decode_command, probe_bytes, run_pipe
from .errors import DecodeError


@dataclass
class DecodedAudio:
    """Decoder output: one float32 array per channel, at the native rate."""
    channels: List[np.ndarray]
    sample_rate: int


class DecodeBackend(ABC):
    """Abstract decode capability."""

    @abstractmethod
    async def decode(self, data: bytes, mime_hint: str) -> DecodedAudio:
        """
        Decode a complete captured payload.

        Args:
            data: Concatenated chunks of one track
            mime_hint: Mime type the payload was captured in

        Returns:
            DecodedAudio at the payload's native sample rate

        Raises:
            DecodeError: If the bytes are not a valid encoding
        """
        pass


class FfmpegDecoder(DecodeBackend):
    """Decodes payloads by piping them through ffprobe and ffmpeg."""

    def __init__(self, debug: bool = False):
        self.debug = debug

    async def decode(self, data: bytes, mime_hint: str) -> DecodedAudio:
        if not data:
            raise DecodeError("Empty payload")

        info = await probe_bytes(data)
        channels = info['channels']
        sample_rate = info['sample_rate']
        if self.debug:
            print(f"[decoder] probe codec={info.get('codec')} channels={channels} "
                  f"rate={sample_rate} bytes={len(data)} mime={mime_hint}", file=sys.stderr)

        try:
            returncode, stdout, stderr = await run_pipe(build_decode_command(channels, sample_rate), data)
        except FileNotFoundError:
            raise DecodeError("ffmpeg not found in PATH") from None

        if returncode != 0:
            raise DecodeError(f"ffmpeg decode failed: {stderr.decode(errors='replace').strip()}")

        usable = len(stdout) - len(stdout) % (4 * channels)
        samples = np.frombuffer(stdout[:usable], dtype='<f4').reshape(-1, channels)
        if self.debug:
            print(f"[decoder] decoded frames={samples.shape[0]} channels={channels}", file=sys.stderr)

        return DecodedAudio(
            channels=[samples[:, c].copy() for c in range(channels)],
            sample_rate=sample_rate,
        )
