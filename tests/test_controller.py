"""Tests for the recorder controller: commands, notices and full sessions."""

import asyncio

import numpy as np
import pytest

from recorder.state import RecordingState
from recorder.wav import read_wav_header, read_wav_samples

from conftest import FIXED_STAMP, FakeDevices, MemorySettingsStore, float_chunks, sine

TWO_TRACKS = dict(enable_multi_track=True, max_tracks=2, track_audio_sources={1: '1', 2: '2'})


async def settle(controller):
    """Wait for any abort scheduled by a capture fault."""
    if controller._fault_tasks:
        await asyncio.gather(*controller._fault_tasks)


class TestStartStop:
    @pytest.mark.asyncio
    async def test_start_single_track(self, make_controller, backend, notices):
        controller = make_controller()

        state = await controller.toggle_start()

        assert state is RecordingState.RECORDING
        assert controller.status_text == 'Recording 🎙️...'
        assert len(backend.streams) == 1
        assert backend.streams[0].calls == ['start']
        assert backend.support_checks == ['audio/ogg;codecs=opus']
        assert notices == ["Recording started"]

    @pytest.mark.asyncio
    async def test_start_multi_track(self, make_controller, backend, notices):
        controller = make_controller(**TWO_TRACKS)

        await controller.toggle_start()

        assert [s.source_id for s in backend.streams] == ['1', '2']
        assert notices == ["Recording started (2 tracks)"]

    @pytest.mark.asyncio
    async def test_stop_saves_and_returns_to_idle(self, make_controller, backend, storage, document, notices):
        controller = make_controller()
        await controller.toggle_start()
        backend.streams[0].emit(b'chunk-1')
        backend.streams[0].final_chunks = [b'chunk-2']

        state = await controller.toggle_start()

        path = f"Recordings/rec-{FIXED_STAMP}.ogg"
        assert state is RecordingState.IDLE
        assert controller.status_text == ''
        assert controller.session is None
        assert storage.files == {path: b'chunk-1chunk-2'}
        assert document.inserted == [f"![[{path}]]"]
        assert notices[-2:] == ["Recording stopped", "Saved 1 file(s)"]
        assert controller.last_result.saved_paths == [path]

    @pytest.mark.asyncio
    async def test_status_callback(self, backend, decoder, storage):
        from recorder.controller import RecorderController
        from recorder.settings import RecorderSettings

        statuses = []
        controller = RecorderController(RecorderSettings(), backend, decoder, storage,
                                        notify=lambda message: None, on_status=statuses.append)

        await controller.toggle_start()
        await controller.pause()
        await controller.resume()
        await controller.toggle_start()

        assert statuses == ['Recording 🎙️...', 'Recording paused', 'Recording 🎙️...', '']

    @pytest.mark.asyncio
    async def test_nothing_captured(self, make_controller, storage, document, notices):
        controller = make_controller(**TWO_TRACKS)
        await controller.toggle_start()

        await controller.toggle_start()

        assert controller.state is RecordingState.IDLE
        assert storage.files == {}
        assert document.inserted == []
        assert notices[-1] == "No audio captured on any track"

    @pytest.mark.asyncio
    async def test_concurrent_toggles_are_serialized(self, make_controller, backend, notices):
        controller = make_controller()

        await asyncio.gather(controller.toggle_start(), controller.toggle_start())

        assert controller.state is RecordingState.IDLE
        assert len(backend.streams) == 1
        assert backend.streams[0].calls == ['start', 'stop']
        assert notices[0] == "Recording started"


class TestStartFailures:
    @pytest.mark.asyncio
    async def test_unsupported_format(self, make_controller, backend, notices):
        backend.supported = set()
        controller = make_controller(recording_format='webm')

        state = await controller.toggle_start()

        assert state is RecordingState.IDLE
        assert backend.streams == []
        assert notices == ["The format audio/webm;codecs=opus is not supported"]

    @pytest.mark.asyncio
    async def test_device_unavailable_closes_opened_streams(self, make_controller, backend, storage, notices):
        backend.unavailable = {'2'}
        controller = make_controller(**TWO_TRACKS)

        state = await controller.toggle_start()

        assert state is RecordingState.IDLE
        assert controller.session is None
        assert len(backend.streams) == 1
        assert backend.streams[0].calls == ['stop']
        assert storage.files == {}
        assert notices == ["Error accessing media devices: Device 2 is busy"]

    @pytest.mark.asyncio
    async def test_stream_that_fails_to_start_stops_the_others(self, make_controller, backend, storage, notices):
        backend.start_failures = {'2': OSError("PortAudio: Invalid device")}
        controller = make_controller(**TWO_TRACKS)

        state = await controller.toggle_start()

        assert state is RecordingState.IDLE
        assert controller.session is None
        assert [stream.calls for stream in backend.streams] == [['start', 'stop'], ['start', 'stop']]
        assert storage.files == {}
        assert notices == [
            "Error accessing media devices: Track 2: could not start capture: PortAudio: Invalid device"
        ]

    @pytest.mark.asyncio
    async def test_can_start_again_after_failure(self, make_controller, backend):
        backend.unavailable = {'2'}
        controller = make_controller(**TWO_TRACKS)
        await controller.toggle_start()

        backend.unavailable = set()
        state = await controller.toggle_start()

        assert state is RecordingState.RECORDING


class TestPauseResume:
    @pytest.mark.asyncio
    async def test_paused_audio_is_not_captured(self, make_controller, backend, storage, notices):
        controller = make_controller()
        await controller.toggle_start()
        stream = backend.streams[0]

        stream.emit(b'one-')
        assert await controller.toggle_pause_resume() is RecordingState.PAUSED
        stream.emit(b'dropped-')
        assert await controller.toggle_pause_resume() is RecordingState.RECORDING
        stream.emit(b'two')
        await controller.toggle_start()

        assert storage.files[f"Recordings/rec-{FIXED_STAMP}.ogg"] == b'one-two'
        assert stream.calls == ['start', 'pause', 'resume', 'stop']
        assert "Recording paused" in notices
        assert "Recording resumed" in notices

    @pytest.mark.asyncio
    async def test_stop_while_paused(self, make_controller, backend, storage):
        controller = make_controller()
        await controller.toggle_start()
        backend.streams[0].emit(b'data')
        await controller.pause()

        assert await controller.toggle_start() is RecordingState.IDLE
        assert len(storage.files) == 1

    @pytest.mark.asyncio
    async def test_pause_when_idle_is_a_noop(self, make_controller, backend, notices):
        controller = make_controller()

        assert await controller.pause() is RecordingState.IDLE
        assert await controller.toggle_pause_resume() is RecordingState.IDLE
        assert backend.streams == []
        assert notices == ["No active recording to pause", "No active recording to pause"]

    @pytest.mark.asyncio
    async def test_resume_when_recording(self, make_controller, backend, notices):
        controller = make_controller()
        await controller.toggle_start()

        assert await controller.resume() is RecordingState.RECORDING
        assert notices[-1] == "No paused recording to resume"
        assert backend.streams[0].calls == ['start']


class TestCaptureFaults:
    @pytest.mark.asyncio
    async def test_fault_aborts_session(self, make_controller, backend, storage, notices):
        controller = make_controller(**TWO_TRACKS)
        await controller.toggle_start()
        backend.streams[0].emit(b'partial')

        backend.streams[1].fault(RuntimeError("device unplugged"))
        await settle(controller)

        assert controller.state is RecordingState.IDLE
        assert controller.session is None
        assert storage.files == {}
        assert all(stream.calls[-1] == 'stop' for stream in backend.streams)
        assert notices[-1] == "Recording failed on track 2: device unplugged"

    @pytest.mark.asyncio
    async def test_stop_failure_on_one_track(self, make_controller, backend, storage, notices):
        controller = make_controller(output_mode='multiple', **TWO_TRACKS)
        await controller.toggle_start()
        backend.streams[0].emit(b'first')
        backend.streams[1].emit(b'second')
        backend.streams[0].stop_error = RuntimeError("encoder exited with code 1")

        await controller.toggle_start()

        assert "Track 1: encoder exited with code 1" in notices
        assert storage.files[f"Recordings/rec-StudioInterface2-{FIXED_STAMP}.ogg"] == b'second'
        assert controller.state is RecordingState.IDLE

    @pytest.mark.asyncio
    async def test_storage_failure_is_reported(self, make_controller, backend, storage, notices):
        storage.fail_writes = {'Recordings'}
        controller = make_controller()
        await controller.toggle_start()
        backend.streams[0].emit(b'data')

        await controller.toggle_start()

        assert controller.state is RecordingState.IDLE
        assert notices[-1].startswith("disk full")


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_two_tracks_single_output(self, make_controller, backend, storage, document, notices):
        controller = make_controller(**TWO_TRACKS)
        await controller.toggle_start()
        for stream in backend.streams:
            for chunk in float_chunks(sine(440.0, seconds=1.0, rate=44100)):
                stream.emit(chunk)

        await controller.toggle_start()

        path = f"Recordings/rec-multitrack-{FIXED_STAMP}.wav"
        data = storage.files[path]
        assert len(data) == 176444
        info = read_wav_header(data)
        assert (info.channels, info.sample_rate, info.bits_per_sample) == (2, 44100, 16)
        pcm = read_wav_samples(data)
        assert pcm.shape == (44100, 2)
        assert np.abs(pcm.astype(np.int32)).max() > 0
        assert document.inserted == [f"![[{path}]]"]
        assert notices[-1] == "Saved 1 file(s)"

    @pytest.mark.asyncio
    async def test_two_tracks_multiple_outputs(self, make_controller, backend, storage, decoder, document):
        controller = make_controller(output_mode='multiple', **TWO_TRACKS)
        await controller.toggle_start()
        backend.streams[0].emit(b'track-one-bytes')
        backend.streams[1].emit(b'track-two-bytes')

        await controller.toggle_start()

        first = f"Recordings/rec-USBMic1-{FIXED_STAMP}.ogg"
        second = f"Recordings/rec-StudioInterface2-{FIXED_STAMP}.ogg"
        assert storage.files == {first: b'track-one-bytes', second: b'track-two-bytes'}
        assert decoder.calls == []
        assert document.inserted == [f"![[{first}]]\n![[{second}]]"]

    @pytest.mark.asyncio
    async def test_shutdown_flushes_active_session(self, make_controller, backend, storage):
        controller = make_controller()
        await controller.toggle_start()
        backend.streams[0].emit(b'unsaved')

        await controller.shutdown()

        assert controller.state is RecordingState.IDLE
        assert list(storage.files.values()) == [b'unsaved']


class TestSelectDevice:
    @pytest.mark.asyncio
    async def test_select_default_device(self, make_controller, notices):
        store = MemorySettingsStore()
        controller = make_controller(settings_store=store)

        selected = await controller.select_input_device('2')

        assert selected['label'] == 'Studio-Interface (2)'
        assert controller.settings.audio_device_id == '2'
        assert store.saved[-1]['audioDeviceId'] == '2'
        assert notices == ["Selected audio device: Studio-Interface (2)"]

    @pytest.mark.asyncio
    async def test_select_for_track(self, make_controller, notices):
        store = MemorySettingsStore()
        controller = make_controller(settings_store=store, **TWO_TRACKS)

        await controller.select_input_device('1', track_index=2)

        assert controller.settings.track_audio_sources == {1: '1', 2: '1'}
        assert store.saved[-1]['trackAudioSources'] == {'1': '1', '2': '1'}
        assert notices == ["Selected audio device for track 2: USB Mic #1"]

    @pytest.mark.asyncio
    async def test_unknown_device(self, make_controller, notices):
        store = MemorySettingsStore()
        controller = make_controller(settings_store=store)

        assert await controller.select_input_device('9') is None
        assert controller.settings.audio_device_id == ''
        assert store.saved == []
        assert notices == ["Unknown audio device: 9"]

    @pytest.mark.asyncio
    async def test_no_devices(self, make_controller, notices):
        controller = make_controller(devices=FakeDevices(devices=[]))

        assert await controller.select_input_device('1') is None
        assert notices == ["No audio input devices found"]
