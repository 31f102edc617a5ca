"""The live recording session: one Start->Stop lifetime covering all tracks."""

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from .buffers import TrackBufferStore, TrackCapture


class RecordingSession:
    """
    A single in-progress capture.

    Owned exclusively by the controller, which holds at most one at a time.
    Tracks are numbered from 1 in configuration order.
    """

    def __init__(
        self,
        sources: Sequence[Tuple[str, Optional[str]]],
        mime_type: str,
        multi_track: bool = False,
        started_at: Optional[datetime] = None
    ):
        """
        Args:
            sources: (source_id, label) per track, in track order
            mime_type: Capture mime the streams are encoding
            multi_track: Whether the session runs in multi-track mode
            started_at: Session start time (default: now, UTC)
        """
        if not sources:
            raise ValueError("A session needs at least one track")
        self.mime_type = mime_type
        self.multi_track = multi_track
        self.started_at = started_at or datetime.now(timezone.utc)
        self.tracks = TrackBufferStore()
        for index, (source_id, label) in enumerate(sources, start=1):
            self.tracks.add_track(index, source_id=source_id, label=label)

    @property
    def track_count(self) -> int:
        return len(self.tracks)

    def track(self, index: int) -> TrackCapture:
        return self.tracks.get(index)

    def non_empty_tracks(self) -> List[TrackCapture]:
        return self.tracks.non_empty()

    def seal(self) -> None:
        """Freeze the buffers once every stream has flushed."""
        self.tracks.seal()

    def discard(self) -> None:
        self.tracks.clear()
