"""
Multi-track audio mixing.

Decodes every captured track, brings them to one sample rate and one
length, and sums them onto a fixed stereo bed. No normalization is applied;
the sum is hard-clamped to [-1.0, 1.0] so the 16-bit encode never wraps.
"""

import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import soxr

from .constants import MIX_CHANNELS
from .errors import DecodeError, NoAudioCaptured


@dataclass
class DecodedTrack:
    """Per-channel float samples of one decoded track."""
    channels: List[np.ndarray]
    sample_rate: int
    index: int = 0

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def sample_count(self) -> int:
        return len(self.channels[0]) if self.channels else 0

    @property
    def duration(self) -> float:
        return self.sample_count / self.sample_rate if self.sample_rate else 0.0

    def channel(self, c: int) -> np.ndarray:
        """Channel c, wrapping around when the track has fewer channels."""
        return self.channels[c % self.channel_count]


@dataclass
class MixedSignal:
    """Mix result: (frames, channels) float32 samples at sample_rate."""
    samples: np.ndarray
    sample_rate: int

    @property
    def frames(self) -> int:
        return self.samples.shape[0]

    @property
    def channel_count(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate

    def interleaved(self) -> np.ndarray:
        return self.samples.reshape(-1)


def resample(channel_data: np.ndarray, original_rate: int, target_rate: int) -> np.ndarray:
    """
    Resample one channel using soxr (high-quality, fast resampling).

    Args:
        channel_data: Input audio as float32 numpy array (-1.0 to 1.0)
        original_rate: Original sample rate in Hz
        target_rate: Target sample rate in Hz

    Returns:
        Resampled audio as float32 numpy array
    """
    if original_rate == target_rate:
        return channel_data

    return soxr.resample(
        np.asarray(channel_data, dtype=np.float32),
        original_rate,
        target_rate,
        quality='VHQ'
    ).astype(np.float32)


def align_sample_rate(track: DecodedTrack, target_rate: int) -> DecodedTrack:
    """Return the track resampled to target_rate (unchanged if it already matches)."""
    if track.sample_rate == target_rate:
        return track
    return DecodedTrack(
        channels=[resample(ch, track.sample_rate, target_rate) for ch in track.channels],
        sample_rate=target_rate,
        index=track.index,
    )


def mix_tracks(
    tracks: Sequence[DecodedTrack],
    sample_rate: int,
    channels: int = MIX_CHANNELS
) -> MixedSignal:
    """
    Sum decoded tracks onto a fixed channel bed.

    Output channel c at sample n is the sum over tracks of
    track.channel(c % track.channel_count)[n], or 0 past a track's end.
    The bed is as long as the longest track; shorter tracks are zero-padded.

    Args:
        tracks: Decoded tracks, all already at sample_rate
        sample_rate: Rate of every track and of the output
        channels: Output channel count (default: stereo)

    Returns:
        MixedSignal clamped to [-1.0, 1.0]

    Raises:
        NoAudioCaptured: If there are no tracks to mix
    """
    if not tracks:
        raise NoAudioCaptured("No tracks with audio to mix")

    target_length = max(track.sample_count for track in tracks)
    mixed = np.zeros((target_length, channels), dtype=np.float64)

    for track in tracks:
        if track.channel_count == 0:
            continue
        length = track.sample_count
        for c in range(channels):
            mixed[:length, c] += track.channel(c)[:length]

    np.clip(mixed, -1.0, 1.0, out=mixed)
    return MixedSignal(samples=mixed.astype(np.float32), sample_rate=sample_rate)


class AudioMixer:
    """
    Produces one MixedSignal from a session's captured tracks.

    Tracks are decoded through the decode backend. The output rate is the
    decode context rate: the configured context_rate if given, otherwise
    the native rate of the first decoded track. It is never the configured
    capture rate, which the device may not have honored.
    """

    def __init__(self, decoder, context_rate: Optional[int] = None, debug: bool = False):
        self.decoder = decoder
        self.context_rate = context_rate
        self.debug = debug

    async def decode_track(self, track, mime_hint: str) -> DecodedTrack:
        payload = track.payload()
        if self.debug:
            print(f"[mixer] decode track={track.index} chunks={len(track.chunks)} "
                  f"bytes={len(payload)} mime={mime_hint}", file=sys.stderr)
        try:
            audio = await self.decoder.decode(payload, mime_hint)
        except DecodeError as e:
            raise DecodeError(f"Track {track.index}: {e}") from e

        decoded = DecodedTrack(
            channels=[np.asarray(ch, dtype=np.float32) for ch in audio.channels],
            sample_rate=audio.sample_rate,
            index=track.index,
        )
        if decoded.channel_count == 0:
            raise DecodeError(f"Track {track.index}: decoder returned no channels")
        if self.debug:
            print(f"[mixer] decoded track={track.index} channels={decoded.channel_count} "
                  f"samples={decoded.sample_count} rate={decoded.sample_rate}", file=sys.stderr)
        return decoded

    async def mix(self, captures, mime_hint: str) -> MixedSignal:
        """
        Decode and mix every non-empty capture.

        Args:
            captures: TrackCapture objects (empty ones are skipped)
            mime_hint: Mime type the tracks were captured in

        Returns:
            MixedSignal at the decode context rate

        Raises:
            NoAudioCaptured: If every track is empty
            DecodeError: If a track's bytes cannot be decoded
        """
        non_empty = [capture for capture in captures if not capture.is_empty]
        if not non_empty:
            raise NoAudioCaptured("No audio captured on any track")

        print(f"Mixing {len(non_empty)} track(s)...", file=sys.stderr)

        decoded = []
        for capture in non_empty:
            decoded.append(await self.decode_track(capture, mime_hint))

        target_rate = self.context_rate or decoded[0].sample_rate
        aligned = []
        for track in decoded:
            if track.sample_rate != target_rate:
                print(f"  Resampling track {track.index}: {track.sample_rate} Hz → {target_rate} Hz",
                      file=sys.stderr)
            aligned.append(align_sample_rate(track, target_rate))

        signal = mix_tracks(aligned, target_rate)
        print(f"  Mixed length: {signal.frames} frames ({signal.duration:.2f} seconds at {target_rate} Hz)",
              file=sys.stderr)
        if self.debug:
            peak = float(np.max(np.abs(signal.samples))) if signal.frames else 0.0
            print(f"[mixer] mixed frames={signal.frames} channels={signal.channel_count} "
                  f"rate={signal.sample_rate} peak={peak:.4f}", file=sys.stderr)
        return signal
