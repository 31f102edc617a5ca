"""
Recorder constants and configuration defaults.

Centralizes magic numbers and configuration values for the recording system.
"""

# Sample rates
DEFAULT_SAMPLE_RATE = 44100  # Hz - capture rate requested from the device
SAMPLE_RATE_OPTIONS = [8000, 16000, 22050, 44100, 48000]

# Bitrate for compressed capture formats
DEFAULT_BITRATE = 128000  # bits per second

# Capture formats
DEFAULT_RECORDING_FORMAT = 'ogg'
SUPPORTED_FORMATS = ['ogg', 'webm', 'mp3', 'm4a', 'mp4', 'wav']

# format -> (ffmpeg muxer, ffmpeg encoder, mime codec, extra muxer args)
# mp4/m4a must be fragmented, otherwise the muxer needs a seekable output
CODEC_TABLE = {
    'ogg': ('ogg', 'libopus', 'opus', []),
    'webm': ('webm', 'libopus', 'opus', []),
    'mp3': ('mp3', 'libmp3lame', 'mp3', []),
    'm4a': ('mp4', 'aac', 'mp4a', ['-movflags', 'frag_keyframe+empty_moov']),
    'mp4': ('mp4', 'aac', 'mp4a', ['-movflags', 'frag_keyframe+empty_moov']),
    'wav': ('wav', 'pcm_s16le', '1', []),
}

# Channels
MIX_CHANNELS = 2  # Bounce bed is always stereo
MAX_CAPTURE_CHANNELS = 2  # Never open more than stereo per device

# Tracks
MIN_TRACKS = 1
MAX_TRACKS = 8
DEFAULT_MAX_TRACKS = 2

# Output routing
OUTPUT_MODE_SINGLE = 'single'
OUTPUT_MODE_MULTIPLE = 'multiple'
OUTPUT_MODES = [OUTPUT_MODE_SINGLE, OUTPUT_MODE_MULTIPLE]
DEFAULT_FILE_PREFIX = 'recording'
MULTITRACK_LABEL = 'multitrack'
UNKNOWN_DEVICE_LABEL = 'UnknownDevice'
MIXDOWN_EXTENSION = 'wav'
FILENAME_FORBIDDEN_CHARS = '\\/:*?"<>|'

# WAV container (canonical 16-bit PCM)
WAV_HEADER_SIZE = 44
WAV_FMT_CHUNK_SIZE = 16
WAV_PCM_FORMAT_TAG = 1
WAV_BITS_PER_SAMPLE = 16
WAV_BYTES_PER_SAMPLE = WAV_BITS_PER_SAMPLE // 8
PCM_NEGATIVE_SCALE = 32768.0
PCM_POSITIVE_SCALE = 32767.0

# Buffer sizes
DEFAULT_CHUNK_SIZE = 4096  # frames per PortAudio buffer
ENCODED_READ_SIZE = 16384  # bytes per read from the encoder pipe

# ffmpeg / ffprobe
FFMPEG_BINARY = 'ffmpeg'
FFPROBE_BINARY = 'ffprobe'
PROBE_TIMEOUT_SECONDS = 30

# Hotkeys (carried as data, bound by the host application)
DEFAULT_START_STOP_HOTKEY = 'Ctrl+R'
DEFAULT_PAUSE_HOTKEY = 'Ctrl+P'
DEFAULT_RESUME_HOTKEY = 'Ctrl+E'

# Settings persistence
DEFAULT_SETTINGS_FILE = 'recorder_settings.json'

# Status indicator
STATUS_RECORDING = 'Recording 🎙️...'
STATUS_PAUSED = 'Recording paused'
STATUS_IDLE = ''
