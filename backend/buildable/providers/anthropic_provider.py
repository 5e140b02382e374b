"""Anthropic Claude provider implementation."""

import logging
from typing import AsyncIterator, Optional
from anthropic import AsyncAnthropic, APIStatusError

from .base import (
    DEFAULT_MAX_TOKENS,
    AIProvider,
    ProviderResponse,
    split_data_url,
    translate_error,
)

logger = logging.getLogger(__name__)

JSON_INSTRUCTION = "\n\nRespond with a single valid JSON object and nothing else."


class AnthropicProvider(AIProvider):
    """Anthropic Claude API provider (last-resort fallback for most tasks)."""

    provider_id = "anthropic"

    def __init__(self, api_key: str):
        self.client = AsyncAnthropic(api_key=api_key)

    def _translate(self, error: Exception, model: str):
        status_code = error.status_code if isinstance(error, APIStatusError) else None
        return translate_error(error, self.provider_id, model, status_code)

    def _build_content(self, user_prompt: str, images: Optional[list[str]]):
        if not images:
            return user_prompt

        content = []
        for image in images:
            inline = split_data_url(image)
            if inline is None:
                content.append({"type": "image", "source": {"type": "url", "url": image}})
            else:
                mime_type, _ = inline
                data = image.split(",", 1)[1]
                content.append({
                    "type": "image",
                    "source": {"type": "base64", "media_type": mime_type, "data": data},
                })
        content.append({"type": "text", "text": user_prompt})
        return content

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
        """Generate response from Claude."""

        # Claude has no response_format switch, so JSON is requested in the prompt
        if json_mode:
            system_prompt = system_prompt + JSON_INSTRUCTION

        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=max_tokens or DEFAULT_MAX_TOKENS,
                temperature=temperature,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": self._build_content(user_prompt, images)}
                ]
            )
        except Exception as e:
            raise self._translate(e, model) from e

        content = ""
        for block in response.content:
            if hasattr(block, "text"):
                content += block.text

        return ProviderResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def generate_stream(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        """Stream response from Claude."""

        try:
            async with self.client.messages.stream(
                model=model,
                max_tokens=max_tokens or DEFAULT_MAX_TOKENS,
                temperature=temperature,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt}
                ]
            ) as stream:
                async for text in stream.text_stream:
                    yield text
        except Exception as e:
            raise self._translate(e, model) from e
