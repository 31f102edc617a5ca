"""
Command-line interface for the recorder.

  audio-recorder-plus devices
  audio-recorder-plus record [--duration S] [--note FILE]
  audio-recorder-plus select-device [ID] [--track N]

Machine-readable output (device lists, status, results) goes to stdout as
JSON lines; everything else goes to stderr.
"""

import argparse
import asyncio
import json
import sys

from . import create_controller
from .constants import DEFAULT_SETTINGS_FILE
from .settings import SettingsStore
from .state import RecordingState

STDIN_COMMANDS = ['toggle', 'start', 'stop', 'pause', 'resume', 'quit']


def _emit(message: dict):
    print(json.dumps(message), flush=True)


def _print_status(text: str):
    _emit({"type": "status", "text": text})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Multi-track audio recorder")
    parser.add_argument('--config', default=DEFAULT_SETTINGS_FILE, help='Settings JSON file')
    parser.add_argument('--vault', default='.', help='Root folder output paths are relative to')
    parser.add_argument('--debug', action='store_true', help='Verbose decode/encode diagnostics')
    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    subparsers.add_parser('devices', help='List audio input devices as JSON')

    record = subparsers.add_parser('record', help='Record a session')
    record.add_argument('--duration', type=float, default=0,
                        help='Duration in seconds (0 for manual stop via stdin)')
    record.add_argument('--note', help='Markdown note that receives links to saved files')

    select = subparsers.add_parser('select-device', help='Select the input device')
    select.add_argument('device_id', nargs='?', help='Device id (interactive choice if omitted)')
    select.add_argument('--track', type=int, help='Bind the device to this track (multi-track mode)')

    return parser


def list_devices() -> int:
    from .device_manager import DeviceManager

    manager = DeviceManager()
    output = {
        "input_devices": manager.list_audio_input_devices(),
        "default_input": manager.get_default_input(),
    }
    print(json.dumps(output, indent=2))
    return 0


def _choose_device_interactively(devices) -> str:
    print("Available audio input devices:", file=sys.stderr)
    for i, device in enumerate(devices, 1):
        print(f"  {i}. {device['label']} (id {device['id']})", file=sys.stderr)

    choice = input("Select device number: ").strip()
    try:
        index = int(choice) - 1
    except ValueError:
        return ''
    if index < 0 or index >= len(devices):
        return ''
    return devices[index]['id']


async def select_device(args, settings, store) -> int:
    controller = create_controller(settings, vault_root=args.vault, settings_store=store)
    device_id = args.device_id
    if device_id is None:
        devices = controller.devices.list_audio_input_devices()
        if not devices:
            controller.notify("No audio input devices found")
            return 1
        device_id = _choose_device_interactively(devices)
        if not device_id:
            print("Invalid selection!", file=sys.stderr)
            return 1

    selected = await controller.select_input_device(device_id, track_index=args.track)
    return 0 if selected else 1


async def _read_stdin_commands(controller):
    loop = asyncio.get_running_loop()
    while not controller.state_machine.is_idle:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break

        command = line.strip().lower()
        if command in ('toggle', 'stop'):
            await controller.toggle_start()
        elif command == 'start':
            if controller.state_machine.is_idle:
                await controller.toggle_start()
        elif command == 'pause':
            await controller.pause()
        elif command == 'resume':
            await controller.resume()
        elif command == 'quit':
            break
        elif command:
            print(f"Unknown command {command!r} (expected one of {', '.join(STDIN_COMMANDS)})",
                  file=sys.stderr)


async def record(args, settings, store) -> int:
    controller = create_controller(
        settings,
        vault_root=args.vault,
        note_path=args.note,
        settings_store=store,
        on_status=_print_status,
    )

    await controller.toggle_start()
    if controller.state is not RecordingState.RECORDING:
        return 1

    try:
        if args.duration > 0:
            await asyncio.sleep(args.duration)
        else:
            print("Recording... Send 'stop' to stdin or press Ctrl+C to stop", file=sys.stderr)
            await _read_stdin_commands(controller)
    finally:
        await controller.shutdown()

    result = controller.last_result
    if result is None:
        return 1
    _emit({
        "type": "result",
        "files": result.saved_paths,
        "failedTracks": result.failed_tracks,
    })
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'devices':
        return list_devices()

    store = SettingsStore(args.config)
    settings = store.load()
    if args.debug:
        settings.debug = True

    try:
        if args.command == 'record':
            return asyncio.run(record(args, settings, store))
        elif args.command == 'select-device':
            return asyncio.run(select_device(args, settings, store))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
