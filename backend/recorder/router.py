"""
Output routing: turns a stopped session into saved files.

Depending on the settings a session produces one stereo WAV bounce of all
tracks, one file per track in the captured format, or (single-device mode)
the one track's captured bytes. Every saved file is then linked into the
active document.
"""

import posixpath
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .constants import (
    FILENAME_FORBIDDEN_CHARS,
    MIXDOWN_EXTENSION,
    MULTITRACK_LABEL,
    OUTPUT_MODE_MULTIPLE,
    UNKNOWN_DEVICE_LABEL,
)
from .document import DocumentSink, NullDocument, embed_link
from .errors import NoAudioCaptured, StorageError
from .wav import encode_mixed

_FORBIDDEN_RE = re.compile('[' + re.escape(FILENAME_FORBIDDEN_CHARS) + ']')
_NON_ALNUM_RE = re.compile(r'[^A-Za-z0-9]')


def iso_timestamp(moment: datetime) -> str:
    """
    Filename-safe ISO 8601 UTC timestamp with millisecond precision.

    2023-07-21T15:30:00.000Z becomes 2023-07-21T15-30-00-000Z.
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    iso = moment.strftime('%Y-%m-%dT%H:%M:%S') + f".{moment.microsecond // 1000:03d}Z"
    return iso.replace(':', '-').replace('.', '-')


def sanitize_filename(name: str) -> str:
    return _FORBIDDEN_RE.sub('-', name)


def sanitize_label(label: Optional[str]) -> str:
    """Reduce a device label to alphanumerics; UnknownDevice if nothing is left."""
    cleaned = _NON_ALNUM_RE.sub('', label or '')
    return cleaned or UNKNOWN_DEVICE_LABEL


def build_filename(prefix: str, timestamp: str, extension: str, source_label: Optional[str] = None) -> str:
    """
    {prefix}-[{source_label}-]{timestamp}.{extension}, with characters that
    are invalid in filenames replaced by '-'.
    """
    parts = [prefix]
    if source_label:
        parts.append(source_label)
    parts.append(timestamp)
    return sanitize_filename('-'.join(parts) + f".{extension}")


def join_path(folder: str, filename: str) -> str:
    return posixpath.join(folder, filename) if folder else filename


async def next_free_path(storage, path: str) -> str:
    """
    Find a path that does not exist yet.

    rec-X.wav -> rec-X_1.wav -> rec-X_2.wav ... Callers serialize their
    writes, so the probe cannot race another writer of the same session.
    """
    if not await storage.exists(path):
        return path

    stem, ext = posixpath.splitext(path)
    n = 1
    while True:
        candidate = f"{stem}_{n}{ext}"
        if not await storage.exists(candidate):
            return candidate
        n += 1


@dataclass
class RouteResult:
    saved_paths: List[str] = field(default_factory=list)
    failed_tracks: List[int] = field(default_factory=list)

    @property
    def saved_count(self) -> int:
        return len(self.saved_paths)


class OutputRouter:
    """Decides what a session produces and hands the bytes to storage."""

    def __init__(
        self,
        storage,
        mixer,
        settings,
        document: Optional[DocumentSink] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            storage: StorageBackend receiving the files
            mixer: AudioMixer used for the single-file bounce
            settings: RecorderSettings (read at route time)
            document: Active document for links (default: none)
            clock: Returns the timestamp used in filenames (default: now, UTC)
        """
        self.storage = storage
        self.mixer = mixer
        self.settings = settings
        self.document = document or NullDocument()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def _save(self, filename: str, data: bytes) -> str:
        path = await next_free_path(self.storage, join_path(self.settings.save_folder, filename))
        print(f"Saving file to: {path}", file=sys.stderr)
        return await self.storage.write_binary(path, data)

    async def route(self, session) -> RouteResult:
        """
        Produce and persist the session's output files.

        Raises:
            NoAudioCaptured: If every track is empty (nothing is written)
            DecodeError: If the bounce cannot decode a track
            StorageError: If the single output file cannot be written
        """
        tracks = session.non_empty_tracks()
        if not tracks:
            raise NoAudioCaptured("No audio captured on any track")

        timestamp = iso_timestamp(self.clock())
        prefix = self.settings.file_prefix or 'recording'

        if not session.multi_track:
            result = await self._route_passthrough(tracks[0], prefix, timestamp)
        elif self.settings.output_mode == OUTPUT_MODE_MULTIPLE:
            result = await self._route_per_track(tracks, prefix, timestamp)
        else:
            result = await self._route_bounce(session, tracks, prefix, timestamp)

        self._insert_links(result.saved_paths)
        return result

    async def _route_passthrough(self, track, prefix: str, timestamp: str) -> RouteResult:
        filename = build_filename(prefix, timestamp, self.settings.recording_format)
        path = await self._save(filename, track.payload())
        return RouteResult(saved_paths=[path])

    async def _route_bounce(self, session, tracks, prefix: str, timestamp: str) -> RouteResult:
        signal = await self.mixer.mix(tracks, session.mime_type)
        data = encode_mixed(signal)
        if self.settings.debug:
            print(f"[encoder] frames={signal.frames} channels={signal.channel_count} "
                  f"rate={signal.sample_rate} bytes={len(data)}", file=sys.stderr)
        filename = build_filename(prefix, timestamp, MIXDOWN_EXTENSION, MULTITRACK_LABEL)
        path = await self._save(filename, data)
        return RouteResult(saved_paths=[path])

    async def _route_per_track(self, tracks, prefix: str, timestamp: str) -> RouteResult:
        result = RouteResult()
        for track in tracks:
            label = sanitize_label(track.label)
            filename = build_filename(prefix, timestamp, self.settings.recording_format, label)
            try:
                result.saved_paths.append(await self._save(filename, track.payload()))
            except StorageError as e:
                print(f"Error saving track {track.index}: {e}", file=sys.stderr)
                result.failed_tracks.append(track.index)
        return result

    def _insert_links(self, paths: List[str]) -> None:
        if not paths:
            return
        self.document.insert_at_cursor('\n'.join(embed_link(path) for path in paths))
        print(f"Inserted link(s) to {len(paths)} file(s)", file=sys.stderr)
