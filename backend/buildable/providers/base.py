"""Base provider interface."""

import base64
import binascii
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional
from pydantic import BaseModel

from ..core.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimited,
    ProviderUnavailable,
)

# Message fragments that identify throttling across providers
RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "429", "too many requests", "quota", "throttl")

DEFAULT_MAX_TOKENS = 8000


class ProviderResponse(BaseModel):
    """Standardized response from AI providers."""
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


def is_rate_limit_message(message: str) -> bool:
    """Check whether an error message describes throttling."""
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def translate_error(
    error: Exception,
    provider: str,
    model: str,
    status_code: Optional[int] = None,
) -> ProviderError:
    """
    Map an arbitrary SDK exception onto the provider error taxonomy.

    Args:
        error: Exception raised by the provider SDK
        provider: Provider identifier
        model: Model identifier
        status_code: HTTP status code, if the SDK exposes one

    Returns:
        ProviderRateLimited, ProviderAuthError or ProviderUnavailable
    """
    if isinstance(error, ProviderError):
        return error

    message = str(error) or error.__class__.__name__
    if status_code == 429 or is_rate_limit_message(message):
        cls = ProviderRateLimited
    elif status_code in (401, 403):
        cls = ProviderAuthError
    else:
        cls = ProviderUnavailable
    return cls(message, provider=provider, model=model, status_code=status_code)


def split_data_url(image: str) -> Optional[tuple[str, bytes]]:
    """
    Split a ``data:<mime>;base64,<payload>`` URL into mime type and bytes.

    Returns None for plain URLs or malformed payloads.
    """
    if not image.startswith("data:") or "," not in image:
        return None
    header, payload = image.split(",", 1)
    mime_type = header[5:].split(";")[0] or "application/octet-stream"
    try:
        return mime_type, base64.b64decode(payload)
    except (binascii.Error, ValueError):
        return None


class AIProvider(ABC):
    """
    Abstract base class for AI provider integrations.

    Adapters make exactly one attempt per call. Retrying and falling back to
    another provider is the execution engine's job, so every failure must be
    raised as one of the ProviderError subclasses.
    """

    provider_id: str = ""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        images: Optional[list[str]] = None,
    ) -> ProviderResponse:
        """
        Generate a response from the AI model.

        Args:
            system_prompt: System instructions
            user_prompt: User task prompt
            model: Model identifier
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            json_mode: Request a JSON object response
            images: Optional image payloads (data URLs or URLs)

        Returns:
            ProviderResponse with the generated content and token usage

        Raises:
            ProviderRateLimited, ProviderAuthError, ProviderUnavailable
        """
        pass

    @abstractmethod
    def generate_stream(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        """
        Stream response tokens from the AI model.

        Yields:
            Content chunks as they are generated
        """
        pass
