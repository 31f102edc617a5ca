"""
Recorder settings and their JSON persistence.

Settings are stored as a flat key/value JSON object using the same
camelCase keys the host application exposes. Loading merges the stored
values over the defaults, so new keys pick up their default silently.
"""

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any

from .codecs import mime_for_format
from .constants import (
    DEFAULT_RECORDING_FORMAT,
    DEFAULT_FILE_PREFIX,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_BITRATE,
    DEFAULT_MAX_TRACKS,
    MIN_TRACKS,
    MAX_TRACKS,
    OUTPUT_MODE_SINGLE,
    OUTPUT_MODES,
    DEFAULT_START_STOP_HOTKEY,
    DEFAULT_PAUSE_HOTKEY,
    DEFAULT_RESUME_HOTKEY,
    DEFAULT_SETTINGS_FILE,
    SAMPLE_RATE_OPTIONS,
    SUPPORTED_FORMATS,
)

# attribute name -> persisted key
_KEYS = {
    'recording_format': 'recordingFormat',
    'save_folder': 'saveFolder',
    'file_prefix': 'filePrefix',
    'audio_device_id': 'audioDeviceId',
    'sample_rate': 'sampleRate',
    'bitrate': 'bitrate',
    'enable_multi_track': 'enableMultiTrack',
    'max_tracks': 'maxTracks',
    'output_mode': 'outputMode',
    'track_audio_sources': 'trackAudioSources',
    'debug': 'debug',
    'start_stop_hotkey': 'startStopHotkey',
    'pause_hotkey': 'pauseHotkey',
    'resume_hotkey': 'resumeHotkey',
}


@dataclass
class RecorderSettings:
    recording_format: str = DEFAULT_RECORDING_FORMAT
    save_folder: str = ''
    file_prefix: str = DEFAULT_FILE_PREFIX
    audio_device_id: str = ''
    sample_rate: int = DEFAULT_SAMPLE_RATE
    bitrate: int = DEFAULT_BITRATE
    enable_multi_track: bool = False
    max_tracks: int = DEFAULT_MAX_TRACKS
    output_mode: str = OUTPUT_MODE_SINGLE
    track_audio_sources: Dict[int, str] = field(default_factory=dict)
    debug: bool = False
    start_stop_hotkey: str = DEFAULT_START_STOP_HOTKEY
    pause_hotkey: str = DEFAULT_PAUSE_HOTKEY
    resume_hotkey: str = DEFAULT_RESUME_HOTKEY

    def __post_init__(self):
        self.max_tracks = max(MIN_TRACKS, min(MAX_TRACKS, int(self.max_tracks)))
        if self.output_mode not in OUTPUT_MODES:
            print(f"Warning: unknown output mode {self.output_mode!r}, using {OUTPUT_MODE_SINGLE!r}",
                  file=sys.stderr)
            self.output_mode = OUTPUT_MODE_SINGLE
        if self.recording_format not in SUPPORTED_FORMATS:
            print(f"Warning: unsupported recording format {self.recording_format!r}, "
                  f"using {DEFAULT_RECORDING_FORMAT!r}", file=sys.stderr)
            self.recording_format = DEFAULT_RECORDING_FORMAT
        self.sample_rate = int(self.sample_rate)
        if self.sample_rate not in SAMPLE_RATE_OPTIONS:
            print(f"Warning: unsupported sample rate {self.sample_rate}, using {DEFAULT_SAMPLE_RATE}",
                  file=sys.stderr)
            self.sample_rate = DEFAULT_SAMPLE_RATE
        self.bitrate = int(self.bitrate)
        self.track_audio_sources = {
            int(index): str(device_id or '')
            for index, device_id in (self.track_audio_sources or {}).items()
        }

    def track_count(self) -> int:
        """Number of tracks a session opens."""
        return self.max_tracks if self.enable_multi_track else 1

    def source_for_track(self, index: int) -> str:
        """Device id for track `index` (1-based); '' means the default device."""
        if not self.enable_multi_track:
            return self.audio_device_id
        return self.track_audio_sources.get(index, '')

    def mime_type(self) -> str:
        return mime_for_format(self.recording_format)

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for name, key in _KEYS.items():
            value = getattr(self, name)
            if name == 'track_audio_sources':
                value = {str(index): device_id for index, device_id in sorted(value.items())}
            data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecorderSettings':
        """Build settings from stored key/values, ignoring unknown keys."""
        by_key = {key: name for name, key in _KEYS.items()}
        kwargs = {}
        for key, value in (data or {}).items():
            name = by_key.get(key)
            if name is not None:
                kwargs[name] = value
        return cls(**kwargs)


class SettingsStore:
    """Persists RecorderSettings as JSON on disk."""

    def __init__(self, path: str = DEFAULT_SETTINGS_FILE):
        self.path = Path(path)

    def load(self) -> RecorderSettings:
        """
        Load settings, creating the file with defaults if it does not exist.

        Returns:
            RecorderSettings with stored values merged over the defaults
        """
        if not self.path.exists():
            settings = RecorderSettings()
            self.save(settings)
            return settings

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            print(f"Warning: settings file {self.path} is not valid JSON ({e}), using defaults",
                  file=sys.stderr)
            return RecorderSettings()

        return RecorderSettings.from_dict(data)

    def save(self, settings: RecorderSettings) -> None:
        """Save settings to the JSON file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(settings.to_dict(), f, indent=2, ensure_ascii=False)

