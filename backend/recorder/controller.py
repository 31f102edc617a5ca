"""
Recorder controller - the command surface of the recorder.

Owns the settings, the state machine and at most one RecordingSession.
Commands (start/stop, pause/resume, select input device) are serialized by
a lock, so a start/stop issued while a stop is still flushing waits for it
instead of opening a second session. Every failure is caught at the command
boundary, reported as a notice, and leaves the recorder Idle.
"""

import asyncio
import sys
import traceback
from typing import Callable, Dict, List, Optional

from .capture import StreamCaptureDriver, StreamHandle
from .constants import STATUS_IDLE, STATUS_PAUSED, STATUS_RECORDING
from .errors import (
    CaptureError,
    DeviceUnavailable,
    RecorderError,
    UnsupportedFormat,
)
from .mixer import AudioMixer
from .router import OutputRouter, RouteResult
from .session import RecordingSession
from .state import Command, RecordingState, RecordingStateMachine


def print_notice(message: str) -> None:
    print(f"[notice] {message}", file=sys.stderr)


class RecorderController:
    """
    Multi-track recording controller.

    Example:
        controller = RecorderController(settings, SoundDeviceCaptureBackend(),
                                        FfmpegDecoder(), FileSystemStorage('vault'))
        await controller.toggle_start()   # Idle -> Recording
        await controller.toggle_start()   # Recording -> Idle, files written
    """

    def __init__(
        self,
        settings,
        capture_backend,
        decoder,
        storage,
        devices=None,
        document=None,
        settings_store=None,
        notify: Optional[Callable[[str], None]] = None,
        on_status: Optional[Callable[[str], None]] = None,
        clock=None,
        context_rate: Optional[int] = None
    ):
        """
        Args:
            settings: RecorderSettings
            capture_backend: CaptureBackend opening the per-track streams
            decoder: DecodeBackend used by the multi-track bounce
            storage: StorageBackend receiving output files
            devices: Device registry used for labels and device selection
            document: DocumentSink receiving links to saved files
            settings_store: SettingsStore persisting device selection
            notify: Receives user-visible notices (default: stderr)
            on_status: Receives the status indicator text on every change
            clock: Timestamp source for output filenames
            context_rate: Decode context rate for the bounce (default: first track's native rate)
        """
        self.settings = settings
        self.capture_backend = capture_backend
        self.devices = devices
        self.settings_store = settings_store
        self.notify = notify or print_notice
        self.on_status = on_status
        self.state_machine = RecordingStateMachine()
        self.session: Optional[RecordingSession] = None
        self.last_result: Optional[RouteResult] = None
        self.mixer = AudioMixer(decoder, context_rate=context_rate, debug=settings.debug)
        self.router = OutputRouter(storage, self.mixer, settings, document=document, clock=clock)
        self._driver: Optional[StreamCaptureDriver] = None
        self._handles: List[StreamHandle] = []
        self._lock = asyncio.Lock()
        self._fault_tasks = set()

    # ------------------------------------------------------------------
    # State

    @property
    def state(self) -> RecordingState:
        return self.state_machine.state

    @property
    def status_text(self) -> str:
        if self.state is RecordingState.RECORDING:
            return STATUS_RECORDING
        if self.state is RecordingState.PAUSED:
            return STATUS_PAUSED
        return STATUS_IDLE

    def _update_status(self):
        if self.on_status is not None:
            self.on_status(self.status_text)

    def _report(self, error: Exception):
        print(f"ERROR: {error}", file=sys.stderr)
        if isinstance(error, DeviceUnavailable):
            self.notify(f"Error accessing media devices: {error}")
        elif isinstance(error, RecorderError):
            self.notify(str(error))
        else:
            self.notify(f"Error saving file: {error}")

    # ------------------------------------------------------------------
    # Commands

    async def toggle_start(self) -> RecordingState:
        """Start a session when Idle; otherwise stop the current one."""
        async with self._lock:
            if self.state_machine.is_idle:
                await self._start()
            else:
                await self._stop()
        return self.state

    async def toggle_pause_resume(self) -> RecordingState:
        async with self._lock:
            if self.state is RecordingState.RECORDING:
                self._pause_streams()
            elif self.state is RecordingState.PAUSED:
                self._resume_streams()
            else:
                self.notify("No active recording to pause")
        return self.state

    async def pause(self) -> RecordingState:
        async with self._lock:
            if self.state is RecordingState.RECORDING:
                self._pause_streams()
            else:
                self.notify("No active recording to pause")
        return self.state

    async def resume(self) -> RecordingState:
        async with self._lock:
            if self.state is RecordingState.PAUSED:
                self._resume_streams()
            else:
                self.notify("No paused recording to resume")
        return self.state

    async def select_input_device(self, device_id: str, track_index: Optional[int] = None) -> Optional[Dict]:
        """
        Select the input device for single-track mode, or for one track.

        Args:
            device_id: Id from the device registry
            track_index: Track to bind (multi-track mode); None binds audioDeviceId

        Returns:
            The selected device entry, or None if nothing was selected
        """
        async with self._lock:
            devices = self.devices.list_audio_input_devices() if self.devices is not None else []
            if not devices:
                self.notify("No audio input devices found")
                return None

            match = next((d for d in devices if d['id'] == device_id), None)
            if match is None:
                self.notify(f"Unknown audio device: {device_id}")
                return None

            if track_index is None:
                self.settings.audio_device_id = device_id
            else:
                self.settings.track_audio_sources[int(track_index)] = device_id
            if self.settings_store is not None:
                self.settings_store.save(self.settings)

            if track_index is None:
                self.notify(f"Selected audio device: {match['label']}")
            else:
                self.notify(f"Selected audio device for track {track_index}: {match['label']}")
            return match

    async def shutdown(self):
        """Stop any session in progress so nothing captured is lost."""
        if not self.state_machine.is_idle:
            await self.toggle_start()
        if self._fault_tasks:
            await asyncio.gather(*self._fault_tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Start / stop

    def _label_for(self, source_id: str) -> Optional[str]:
        if self.devices is None:
            return None
        return self.devices.get_device_label(source_id)

    async def _start(self):
        mime_type = self.settings.mime_type()
        if self.settings.debug:
            print(f"[controller] requested mime={mime_type}", file=sys.stderr)

        if not self.capture_backend.is_type_supported(mime_type):
            self._report(UnsupportedFormat(f"The format {mime_type} is not supported"))
            return

        sources = []
        for index in range(1, self.settings.track_count() + 1):
            source_id = self.settings.source_for_track(index)
            sources.append((source_id, self._label_for(source_id)))

        session = RecordingSession(sources, mime_type, multi_track=self.settings.enable_multi_track)
        driver = StreamCaptureDriver(
            self.capture_backend,
            mime_type,
            bitrate=self.settings.bitrate,
            on_fault=self._make_fault_handler(session),
            debug=self.settings.debug,
        )

        print(f"Starting recording ({session.track_count} track(s))...", file=sys.stderr)
        handles = []
        try:
            for track in session.tracks:
                handles.append(await driver.open(track, self.settings.sample_rate))
            for handle in handles:
                driver.start(handle)
        except RecorderError as e:
            await self._teardown(driver, handles, session)
            self._report(e)
            return

        self.session = session
        self._driver = driver
        self._handles = handles
        self.state_machine.transition(Command.START)
        self._update_status()

        if session.track_count > 1:
            self.notify(f"Recording started ({session.track_count} tracks)")
        else:
            self.notify("Recording started")

    async def _stop(self):
        session, driver, handles = self.session, self._driver, self._handles
        self.state_machine.transition(Command.STOP)
        self._update_status()
        print("Stopping recording...", file=sys.stderr)

        try:
            failures = await driver.stop_all(handles)
            session.seal()
            for failure in failures:
                self._report(failure)
            self.notify("Recording stopped")

            print("Streams stopped", file=sys.stderr)
            for track in session.tracks:
                print(f"  Track {track.index}: {len(track.chunks)} chunk(s), {track.byte_count} bytes",
                      file=sys.stderr)

            result = await self.router.route(session)
        except RecorderError as e:
            self._report(e)
        except Exception as e:
            print(f"ERROR in output processing: {e}", file=sys.stderr)
            traceback.print_exc(file=sys.stderr)
            self._report(e)
        else:
            self.last_result = result
            if result.failed_tracks:
                self.notify(f"Saved {result.saved_count} file(s); "
                            f"{len(result.failed_tracks)} track(s) could not be saved")
            else:
                self.notify(f"Saved {result.saved_count} file(s)")
        finally:
            self._clear_session(session)

    def _pause_streams(self):
        self.state_machine.transition(Command.PAUSE)
        for handle in self._handles:
            self._driver.pause(handle)
        self._update_status()
        self.notify("Recording paused")

    def _resume_streams(self):
        self.state_machine.transition(Command.RESUME)
        for handle in self._handles:
            self._driver.resume(handle)
        self._update_status()
        self.notify("Recording resumed")

    def _clear_session(self, session: RecordingSession):
        session.discard()
        if self.session is session:
            self.session = None
            self._driver = None
            self._handles = []

    async def _teardown(self, driver: StreamCaptureDriver, handles: List[StreamHandle],
                        session: RecordingSession):
        """Close streams of a session that is being abandoned."""
        failures = await driver.stop_all(handles)
        for failure in failures:
            print(f"  Ignoring close failure on track {failure.track_index}: {failure}", file=sys.stderr)
        session.seal()
        self._clear_session(session)
        self.state_machine.reset()
        self._update_status()

    # ------------------------------------------------------------------
    # Mid-session faults

    def _make_fault_handler(self, session: RecordingSession):
        def on_fault(track_index: int, exc: Exception):
            if self.session is not session or self.state_machine.is_idle:
                return
            task = asyncio.get_running_loop().create_task(self._abort(session, track_index, exc))
            self._fault_tasks.add(task)
            task.add_done_callback(self._fault_tasks.discard)
        return on_fault

    async def _abort(self, session: RecordingSession, track_index: int, exc: Exception):
        async with self._lock:
            if self.session is not session:
                return
            print(f"Aborting session after capture fault on track {track_index}", file=sys.stderr)
            await self._teardown(self._driver, self._handles, session)
            self._report(CaptureError(f"Recording failed on track {track_index}: {exc}",
                                      track_index=track_index))
