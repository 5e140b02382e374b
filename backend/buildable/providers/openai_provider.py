"""OpenAI provider implementation."""

import logging
from typing import AsyncIterator, Optional
from openai import AsyncOpenAI, APIStatusError

from .base import DEFAULT_MAX_TOKENS, AIProvider, ProviderResponse, translate_error

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI chat completions provider. Also the base for compatible APIs."""

    provider_id = "openai"

    # Newer OpenAI models reject max_tokens in favour of max_completion_tokens
    max_tokens_param = "max_completion_tokens"

    def __init__(self, api_key: str, base_url: Optional[str] = None):
        if base_url:
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        else:
            self.client = AsyncOpenAI(api_key=api_key)

    def _translate(self, error: Exception, model: str):
        status_code = error.status_code if isinstance(error, APIStatusError) else None
        return translate_error(error, self.provider_id, model, status_code)

    def _build_messages(
        self,
        system_prompt: str,
        user_prompt: str,
        images: Optional[list[str]] = None,
    ) -> list[dict]:
        messages = [{"role": "system", "content": system_prompt}]

        if images:
            content = [{"type": "text", "text": user_prompt}]
            content.extend(
                {"type": "image_url", "image_url": {"url": image}}
                for image in images
            )
            messages.append({"role": "user", "content": content})
        else:
            messages.append({"role": "user", "content": user_prompt})

        return messages

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
        """Generate response from an OpenAI-compatible chat model."""

        kwargs = {
            "model": model,
            "temperature": temperature,
            "messages": self._build_messages(system_prompt, user_prompt, images),
            self.max_tokens_param: max_tokens or DEFAULT_MAX_TOKENS,
        }

        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except Exception as e:
            raise self._translate(e, model) from e

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        input_tokens = 0
        output_tokens = 0
        if response.usage:
            input_tokens = response.usage.prompt_tokens or 0
            output_tokens = response.usage.completion_tokens or 0

        return ProviderResponse(
            content=content,
            model=response.model or model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def generate_stream(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        """Stream response from an OpenAI-compatible chat model."""

        kwargs = {
            "model": model,
            "temperature": temperature,
            "messages": self._build_messages(system_prompt, user_prompt),
            self.max_tokens_param: max_tokens or DEFAULT_MAX_TOKENS,
            "stream": True,
        }

        try:
            stream = await self.client.chat.completions.create(**kwargs)
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except Exception as e:
            raise self._translate(e, model) from e
