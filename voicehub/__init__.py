"""VoiceHub: a voice-enabled, multi-provider chat hub."""

__version__ = "0.4.0"
