"""
Error taxonomy shared by adapters, services and the HTTP layer.

Adapters raise these; the chat orchestrator converts a subset into
conversation content, everything else propagates to the caller.
"""

from typing import Optional


class VoiceHubError(Exception):
    """Base class for all VoiceHub errors."""


class ConfigurationError(VoiceHubError):
    """A provider needs a credential or setting that is not available."""


class UnsupportedProviderError(VoiceHubError):
    """The requested provider id is not registered for the capability."""

    def __init__(self, capability: str, provider_id: str):
        self.capability = capability
        self.provider_id = provider_id
        super().__init__(f"Unsupported {capability} provider: {provider_id}")


class AdapterError(VoiceHubError):
    """A vendor API returned a non-success status or could not be reached."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        self.raw_message = message
        if status is not None:
            super().__init__(f"{provider} API error ({status}): {message}")
        else:
            super().__init__(f"{provider} API error: {message}")


class NotFoundError(VoiceHubError):
    """Entity does not exist or is not owned by the requesting user."""


class ClipValidationError(VoiceHubError):
    """A recorded clip failed size validation and must not be uploaded."""

    def __init__(self, message: str, size: int):
        self.size = size
        super().__init__(message)


class TooShortError(ClipValidationError):
    pass


class TooLargeError(ClipValidationError):
    pass


class MicrophoneUnavailableError(VoiceHubError):
    """Microphone permission was denied or no capture device exists."""


class ResourceBusyError(VoiceHubError):
    """An exclusive resource (the microphone) is held by another owner."""
