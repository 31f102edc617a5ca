"""
Per-track capture buffers.

Each track accumulates the encoded chunks delivered by its capture stream,
in arrival order. Appends are O(1) so they are safe to run from chunk
callbacks; once the session is stopped the buffers are sealed.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .errors import CaptureError


@dataclass
class TrackCapture:
    """One track's capture state."""
    index: int
    source_id: str = ''
    label: Optional[str] = None
    sample_rate: int = 0
    channel_count: int = 0
    chunks: List[bytes] = field(default_factory=list)
    sealed: bool = False

    def append(self, chunk: bytes) -> bool:
        """
        Append one chunk in receipt order.

        Zero-length chunks are ignored.

        Returns:
            True if the chunk was stored
        """
        if self.sealed:
            raise CaptureError(
                f"Track {self.index} is sealed; late chunk of {len(chunk)} bytes rejected",
                track_index=self.index
            )
        if not chunk:
            return False
        self.chunks.append(bytes(chunk))
        return True

    def payload(self) -> bytes:
        return b''.join(self.chunks)

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    @property
    def byte_count(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)

    def seal(self) -> None:
        self.sealed = True

    def clear(self) -> None:
        self.chunks = []


class TrackBufferStore:
    """Ordered mapping from track index (1..N) to its TrackCapture."""

    def __init__(self):
        self._tracks: Dict[int, TrackCapture] = {}

    def add_track(self, index: int, source_id: str = '', label: Optional[str] = None) -> TrackCapture:
        if index in self._tracks:
            raise ValueError(f"Track {index} already exists")
        track = TrackCapture(index=index, source_id=source_id, label=label)
        self._tracks[index] = track
        return track

    def get(self, index: int) -> TrackCapture:
        return self._tracks[index]

    def append(self, index: int, chunk: bytes) -> bool:
        return self._tracks[index].append(chunk)

    def non_empty(self) -> List[TrackCapture]:
        return [track for track in self if not track.is_empty]

    def seal(self) -> None:
        for track in self._tracks.values():
            track.seal()

    def clear(self) -> None:
        for track in self._tracks.values():
            track.clear()

    def __iter__(self) -> Iterator[TrackCapture]:
        for index in sorted(self._tracks):
            yield self._tracks[index]

    def __len__(self) -> int:
        return len(self._tracks)
