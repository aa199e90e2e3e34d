import asyncio

import pytest

from voicehub.audio.devices import MicrophoneArbiter
from voicehub.config import VoiceCallConfig
from voicehub.core.chat import ChatResult
from voicehub.core.recorder import AudioClip
from voicehub.core.voice_call import (
    CallAction,
    CallEvent,
    CallPhase,
    TurnResult,
    VoiceCallController,
    VoiceTurnPipeline,
    average_bin_level,
    call_transition,
)
from voicehub.errors import ResourceBusyError
from voicehub.pipelines.base import STTResponse, TTSResponse

LOUD = 100
QUIET = 0


class GatedPipeline:
    """Turn pipeline that blocks until the test opens the gate."""

    def __init__(self, result=None, error=None):
        self.clips = []
        self.gate = asyncio.Event()
        self.result = result or TurnResult(transcript="hello")
        self.error = error
        self.saw_inactive = None

    async def run_turn(self, clip, is_active):
        self.clips.append(clip)
        await self.gate.wait()
        self.saw_inactive = not is_active()
        if self.error is not None:
            raise self.error
        return self.result


def make_controller(device, scheduler, pipeline, **kwargs):
    phases = []
    controller = VoiceCallController(
        device,
        scheduler,
        pipeline,
        VoiceCallConfig(),
        on_phase=phases.append,
        **kwargs,
    )
    return controller, phases


def speak_then_pause(device, scheduler):
    device.analyser.set_level(LOUD)
    scheduler.advance(0.1)
    device.analyser.set_level(QUIET)
    scheduler.advance(0.1)
    scheduler.advance(1.6)


class TestCallTransition:
    def test_start(self):
        result = call_transition(CallPhase.INACTIVE, CallEvent.START_CALL)
        assert result.phase is CallPhase.LISTENING
        assert result.actions == (CallAction.START_SAMPLER,)

    def test_speech_while_listening_starts_recorder(self):
        assert call_transition(CallPhase.LISTENING, CallEvent.SPEECH).actions == (CallAction.START_RECORDER,)

    def test_speech_while_processing_is_ignored(self):
        result = call_transition(CallPhase.PROCESSING, CallEvent.SPEECH)
        assert result.phase is CallPhase.PROCESSING
        assert result.actions == ()

    @pytest.mark.parametrize("phase", [CallPhase.LISTENING, CallPhase.RECORDING, CallPhase.PROCESSING])
    def test_end_call_from_any_active_phase(self, phase):
        result = call_transition(phase, CallEvent.END_CALL)
        assert result.phase is CallPhase.INACTIVE
        assert CallAction.RELEASE in result.actions

    def test_quiet_while_listening_does_nothing(self):
        assert call_transition(CallPhase.LISTENING, CallEvent.QUIET).actions == ()

    def test_raw_bin_level(self):
        assert average_bin_level([10, 50]) == 30
        assert average_bin_level([]) == 0.0


class TestVoiceCallController:
    @pytest.mark.asyncio
    async def test_full_turn(self, audio_device, scheduler):
        pipeline = GatedPipeline()
        controller, phases = make_controller(audio_device, scheduler, pipeline)

        await controller.start_call()
        assert controller.phase is CallPhase.LISTENING

        speak_then_pause(audio_device, scheduler)
        assert controller.phase is CallPhase.PROCESSING
        await asyncio.sleep(0)
        assert len(pipeline.clips) == 1
        assert pipeline.clips[0].data == audio_device.payload

        pipeline.gate.set()
        await controller.wait_for_turn()

        assert controller.phase is CallPhase.LISTENING
        assert controller.last_result.transcript == "hello"
        assert phases == [CallPhase.LISTENING, CallPhase.RECORDING, CallPhase.PROCESSING, CallPhase.LISTENING]

    @pytest.mark.asyncio
    async def test_speech_during_processing_is_ignored(self, audio_device, scheduler):
        pipeline = GatedPipeline()
        controller, _ = make_controller(audio_device, scheduler, pipeline)
        await controller.start_call()
        speak_then_pause(audio_device, scheduler)

        audio_device.analyser.set_level(LOUD)
        scheduler.advance(3.0)

        assert controller.phase is CallPhase.PROCESSING
        assert len(audio_device.recorders) == 1
        assert controller.turns_started == 1

        pipeline.gate.set()
        await controller.wait_for_turn()
        scheduler.advance(0.1)
        assert controller.phase is CallPhase.RECORDING
        assert len(audio_device.recorders) == 2

    @pytest.mark.asyncio
    async def test_brief_sound_keeps_recording(self, audio_device, scheduler):
        controller, _ = make_controller(audio_device, scheduler, GatedPipeline())
        await controller.start_call()

        audio_device.analyser.set_level(LOUD)
        scheduler.advance(0.1)
        audio_device.analyser.set_level(QUIET)
        scheduler.advance(1.0)
        audio_device.analyser.set_level(LOUD)
        scheduler.advance(0.1)
        audio_device.analyser.set_level(QUIET)
        scheduler.advance(1.0)

        assert controller.phase is CallPhase.RECORDING
        assert controller.turns_started == 0

    @pytest.mark.asyncio
    async def test_short_clip_returns_to_listening(self, make_audio_device, scheduler):
        device = make_audio_device(payload=b"\x01" * 100)
        pipeline = GatedPipeline()
        controller, _ = make_controller(device, scheduler, pipeline)
        await controller.start_call()

        speak_then_pause(device, scheduler)

        assert controller.phase is CallPhase.LISTENING
        assert controller.turns_started == 0
        assert pipeline.clips == []

    @pytest.mark.asyncio
    async def test_end_call_releases_and_cancels_turn_tail(self, audio_device, scheduler):
        pipeline = GatedPipeline()
        arbiter = MicrophoneArbiter()
        controller, _ = make_controller(audio_device, scheduler, pipeline, arbiter=arbiter)
        await controller.start_call()
        analyser = audio_device.analyser
        speak_then_pause(audio_device, scheduler)

        await controller.end_call()
        pipeline.gate.set()
        await controller.wait_for_turn()

        assert controller.phase is CallPhase.INACTIVE
        assert pipeline.saw_inactive is True
        assert audio_device.live_tracks() == 0
        assert analyser.closed is True
        assert arbiter.owner is None
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_turn_failure_is_reported_and_call_continues(self, audio_device, scheduler):
        errors = []
        pipeline = GatedPipeline(error=RuntimeError("stt down"))
        controller, _ = make_controller(audio_device, scheduler, pipeline, on_error=errors.append)
        await controller.start_call()
        speak_then_pause(audio_device, scheduler)

        pipeline.gate.set()
        await controller.wait_for_turn()

        assert str(errors[0]) == "stt down"
        assert controller.phase is CallPhase.LISTENING

    @pytest.mark.asyncio
    async def test_analyser_failure_ends_call_and_releases(self, audio_device, scheduler):
        errors = []
        arbiter = MicrophoneArbiter()
        controller, _ = make_controller(audio_device, scheduler, GatedPipeline(), arbiter=arbiter, on_error=errors.append)
        await controller.start_call()
        analyser = audio_device.analyser

        def unplugged():
            raise OSError("device unplugged")

        analyser.frequency_data = unplugged
        scheduler.advance(0.2)

        assert controller.phase is CallPhase.INACTIVE
        assert [str(e) for e in errors] == ["device unplugged"]
        assert arbiter.owner is None
        assert audio_device.live_tracks() == 0
        assert analyser.closed is True
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_recorder_failure_ends_call(self, audio_device, scheduler):
        errors = []
        arbiter = MicrophoneArbiter()
        controller, _ = make_controller(audio_device, scheduler, GatedPipeline(), arbiter=arbiter, on_error=errors.append)
        await controller.start_call()

        def no_recorder(stream, mime_type):
            raise RuntimeError("encoder unavailable")

        audio_device.create_recorder = no_recorder
        audio_device.analyser.set_level(LOUD)
        scheduler.advance(0.1)

        assert controller.phase is CallPhase.INACTIVE
        assert [str(e) for e in errors] == ["encoder unavailable"]
        assert arbiter.owner is None
        assert audio_device.live_tracks() == 0
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_mute_disables_tracks(self, audio_device, scheduler):
        controller, _ = make_controller(audio_device, scheduler, GatedPipeline())
        await controller.start_call()

        controller.set_muted(True)
        assert controller.muted is True
        assert all(not t.enabled for t in audio_device.streams[0].tracks)

        controller.set_muted(False)
        assert all(t.enabled for t in audio_device.streams[0].tracks)

    @pytest.mark.asyncio
    async def test_recorder_holding_microphone_blocks_call(self, audio_device, scheduler):
        arbiter = MicrophoneArbiter()
        arbiter.acquire("recorder")
        controller, _ = make_controller(audio_device, scheduler, GatedPipeline(), arbiter=arbiter)

        with pytest.raises(ResourceBusyError):
            await controller.start_call()

        assert controller.phase is CallPhase.INACTIVE
        assert audio_device.streams == []


class FakeVoiceService:
    def __init__(self, transcript="what time is it"):
        self.transcript = transcript
        self.synthesized = []

    async def transcribe_clip(self, user_id, clip):
        return STTResponse(text=self.transcript, provider="whisper")

    async def synthesize(self, user_id, text):
        self.synthesized.append(text)
        return TTSResponse(audio_url="data:audio/mpeg;base64,AA==", provider="elevenlabs", voice="v")


class FakeOrchestrator:
    def __init__(self, failed=False):
        self.sent = []
        self.failed = failed
        self.content = "It is noon."

    async def send_message(self, user_id, conversation_id, text):
        self.sent.append((user_id, conversation_id, text))
        return ChatResult(message_id=1, content=self.content, token_count=5, provider="openai", model="gpt-4", failed=self.failed)


class FakePlayer:
    def __init__(self):
        self.played = []

    async def play(self, url, speed=1.0):
        self.played.append((url, speed))


CLIP = AudioClip(data=b"\x01" * 6000, mime_type="audio/wav", file_name="recording-1.wav")


class TestVoiceTurnPipeline:
    @pytest.mark.asyncio
    async def test_complete_turn_plays_reply(self):
        voice, orchestrator, player = FakeVoiceService(), FakeOrchestrator(), FakePlayer()
        pipeline = VoiceTurnPipeline(voice, orchestrator, player, "u1", 7, speed=1.25)

        result = await pipeline.run_turn(CLIP, lambda: True)

        assert orchestrator.sent == [("u1", 7, "what time is it")]
        assert voice.synthesized == ["It is noon."]
        assert player.played == [("data:audio/mpeg;base64,AA==", 1.25)]
        assert result.played is True

    @pytest.mark.asyncio
    async def test_whitespace_transcript_skips_chat(self):
        voice, orchestrator, player = FakeVoiceService(transcript="   "), FakeOrchestrator(), FakePlayer()
        pipeline = VoiceTurnPipeline(voice, orchestrator, player, "u1", 7)

        result = await pipeline.run_turn(CLIP, lambda: True)

        assert orchestrator.sent == []
        assert player.played == []
        assert result.reply is None

    @pytest.mark.asyncio
    async def test_failed_chat_error_text_is_spoken(self):
        voice, orchestrator, player = FakeVoiceService(), FakeOrchestrator(failed=True), FakePlayer()
        orchestrator.content = "Error: No API key configured for Mistral AI"
        pipeline = VoiceTurnPipeline(voice, orchestrator, player, "u1", 7)

        result = await pipeline.run_turn(CLIP, lambda: True)

        assert voice.synthesized == ["Error: No API key configured for Mistral AI"]
        assert player.played == [("data:audio/mpeg;base64,AA==", 1.0)]
        assert result.played is True

    @pytest.mark.asyncio
    async def test_inactive_call_skips_remaining_steps(self):
        voice, orchestrator, player = FakeVoiceService(), FakeOrchestrator(), FakePlayer()
        pipeline = VoiceTurnPipeline(voice, orchestrator, player, "u1", 7)

        result = await pipeline.run_turn(CLIP, lambda: False)

        assert orchestrator.sent == []
        assert player.played == []
        assert result.transcript == "what time is it"
