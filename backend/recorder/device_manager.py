"""
Audio Device Manager - Enumerates available audio input devices.

Uses sounddevice (PortAudio) for enumeration. Device ids are PortAudio
indices rendered as strings, the form capture backends accept as source ids.
"""

import sys
from typing import Dict, List, Optional

import sounddevice as sd

# System mappers/drivers that only duplicate real devices
BLOCKED_DEVICE_NAMES = [
    "Microsoft Sound Mapper",
    "Primary Sound Capture Driver",
    "Primary Sound Driver",
]


class DeviceManager:
    """Manages audio input device enumeration and lookup."""

    def list_audio_input_devices(self) -> List[Dict[str, str]]:
        """
        Enumerate input devices.
        Filters duplicates and system virtual devices.

        Returns:
            List of {'id', 'label', 'channels', 'sample_rate'} sorted by label
        """
        seen_inputs = {}

        try:
            devices = sd.query_devices()
        except sd.PortAudioError as e:
            print(f"Warning: Could not query audio devices: {e}", file=sys.stderr)
            return []

        for i, device in enumerate(devices):
            name = device.get('name', 'Unknown')

            if device.get('max_input_channels', 0) < 1:
                continue

            if any(blocked in name for blocked in BLOCKED_DEVICE_NAMES):
                continue

            device_data = {
                "id": str(i),
                "label": name,
                "channels": int(device['max_input_channels']),
                "sample_rate": int(device.get('default_samplerate', 44100)),
            }

            # Same device exposed through several host APIs: keep the higher rate
            if name not in seen_inputs:
                seen_inputs[name] = device_data
            elif device_data["sample_rate"] > seen_inputs[name]["sample_rate"]:
                seen_inputs[name] = device_data

        input_devices = list(seen_inputs.values())
        input_devices.sort(key=lambda x: x['label'])
        return input_devices

    def get_device_label(self, device_id: str) -> Optional[str]:
        """
        Label of a device.

        Args:
            device_id: Device id ('' = default input)

        Returns:
            The device name, or None if it cannot be resolved
        """
        try:
            if not device_id:
                return sd.query_devices(kind='input')['name']
            return sd.query_devices(int(device_id))['name']
        except (ValueError, sd.PortAudioError) as e:
            print(f"Warning: Could not resolve device {device_id!r}: {e}", file=sys.stderr)
            return None

    def get_default_input(self) -> str:
        """
        Get the default input device id.

        Returns:
            Device id, or '' if there is no default input
        """
        try:
            index = sd.default.device[0]
        except (IndexError, TypeError):
            return ''
        if index is None or index < 0:
            return ''
        return str(index)
