"""
Pydantic models for VoiceHub configuration.

Every section has defaults so an empty YAML file yields a runnable
configuration; secrets are injected from the environment by
``voicehub.config.security`` before validation.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant with voice capabilities. "
    "Provide clear, concise, and helpful responses."
)


class DatabaseConfig(BaseModel):
    path: str = Field(default="data/voicehub.db")


class StorageConfig(BaseModel):
    base_dir: str = Field(default="data/objects")
    # When set, stored objects are addressed as {public_base_url}/{key}; otherwise file:// URIs.
    public_base_url: Optional[str] = None


class OpenAIProviderConfig(BaseModel):
    # Deployment-owned key for the built-in text/STT channel.
    api_key: Optional[str] = None
    organization: Optional[str] = None
    chat_base_url: str = Field(default="https://api.openai.com/v1")
    stt_base_url: str = Field(default="https://api.openai.com/v1/audio/transcriptions")
    tts_base_url: str = Field(default="https://api.openai.com/v1/audio/speech")
    chat_model: str = Field(default="gpt-4o")
    stt_model: str = Field(default="whisper-1")
    tts_model: str = Field(default="tts-1")
    voice: str = Field(default="alloy")
    response_timeout_sec: float = Field(default=60.0)


class AnthropicProviderConfig(BaseModel):
    base_url: str = Field(default="https://api.anthropic.com/v1/messages")
    api_version: str = Field(default="2023-06-01")
    model: str = Field(default="claude-3-5-sonnet-20241022")
    response_timeout_sec: float = Field(default=60.0)


class OpenRouterProviderConfig(BaseModel):
    base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions")
    model: str = Field(default="mistralai/mistral-7b-instruct")
    referer: str = Field(default="http://localhost:8000")
    response_timeout_sec: float = Field(default=60.0)


class MistralProviderConfig(BaseModel):
    base_url: str = Field(default="https://api.mistral.ai/v1/chat/completions")
    model: str = Field(default="mistral-small-latest")
    response_timeout_sec: float = Field(default=60.0)


class DeepgramProviderConfig(BaseModel):
    base_url: str = Field(default="https://api.deepgram.com/v1/listen")
    model: str = Field(default="nova-2")
    language: str = Field(default="en")
    response_timeout_sec: float = Field(default=60.0)


class ElevenLabsProviderConfig(BaseModel):
    base_url: str = Field(default="https://api.elevenlabs.io/v1")
    voice_id: str = Field(default="ZF6FPAbjXT4488VcRRnw")
    model_id: str = Field(default="eleven_turbo_v2_5")
    stability: float = Field(default=0.5)
    similarity_boost: float = Field(default=0.75)
    style: float = Field(default=0.0)
    use_speaker_boost: bool = Field(default=True)
    response_timeout_sec: float = Field(default=60.0)


class HumeProviderConfig(BaseModel):
    base_url: str = Field(default="https://api.hume.ai/v0/tts/batch")
    voice: str = Field(default="default")
    response_timeout_sec: float = Field(default=60.0)


class ProvidersConfig(BaseModel):
    openai: OpenAIProviderConfig = Field(default_factory=OpenAIProviderConfig)
    anthropic: AnthropicProviderConfig = Field(default_factory=AnthropicProviderConfig)
    openrouter: OpenRouterProviderConfig = Field(default_factory=OpenRouterProviderConfig)
    mistral: MistralProviderConfig = Field(default_factory=MistralProviderConfig)
    deepgram: DeepgramProviderConfig = Field(default_factory=DeepgramProviderConfig)
    elevenlabs: ElevenLabsProviderConfig = Field(default_factory=ElevenLabsProviderConfig)
    hume: HumeProviderConfig = Field(default_factory=HumeProviderConfig)


class DefaultsConfig(BaseModel):
    llm_provider: str = Field(default="openai")
    llm_model: str = Field(default="gpt-4o")
    stt_provider: str = Field(default="whisper")
    stt_model: str = Field(default="whisper-1")
    tts_provider: str = Field(default="elevenlabs")
    tts_voice: str = Field(default="ZF6FPAbjXT4488VcRRnw")
    tts_model: str = Field(default="eleven_turbo_v2_5")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)
    temperature: int = Field(default=70, ge=0, le=200)
    max_tokens: int = Field(default=2000, gt=0)
    # None replays the full conversation history on every turn.
    max_history_messages: Optional[int] = Field(default=None, gt=0)


class CaptureConfig(BaseModel):
    vad_sensitivity: int = Field(default=70, ge=0, le=100)
    silence_threshold_ms: int = Field(default=1500, ge=500, le=3000)
    frame_interval_ms: float = Field(default=1000.0 / 60.0, gt=0)
    min_clip_bytes: int = Field(default=5000)
    max_clip_bytes: int = Field(default=16 * 1024 * 1024)
    mime_type: str = Field(default="audio/wav")
    sample_rate_hz: int = Field(default=16000)
    fft_size: int = Field(default=512)
    smoothing: float = Field(default=0.8, ge=0.0, lt=1.0)
    chunk_ms: int = Field(default=100)


class VoiceCallConfig(BaseModel):
    # Average frequency-bin level (0-255 scale) above which a frame counts as speech.
    speech_level: float = Field(default=30.0)
    poll_interval_ms: int = Field(default=100, gt=0)
    silence_duration_ms: int = Field(default=1500, gt=0)
    tts_speed: float = Field(default=1.0)


class SecurityConfig(BaseModel):
    credential_encryption_key: Optional[str] = None


class LoggingConfig(BaseModel):
    level: str = Field(default="info")
    format: str = Field(default="json")
    to_file: bool = Field(default=False)
    file_path: str = Field(default="voicehub.log")


class AppConfig(BaseModel):
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    voice_call: VoiceCallConfig = Field(default_factory=VoiceCallConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    # Extra HTTP headers per provider id, e.g. {"openrouter": {"X-Title": "VoiceHub"}}.
    extra_headers: Dict[str, Dict[str, str]] = Field(default_factory=dict)
