"""Google Gemini provider implementation."""

import logging
from typing import AsyncIterator, Optional
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .base import (
    DEFAULT_MAX_TOKENS,
    AIProvider,
    ProviderResponse,
    split_data_url,
    translate_error,
)
from ..core.errors import ProviderAuthError, ProviderRateLimited

logger = logging.getLogger(__name__)


class GeminiProvider(AIProvider):
    """Google Gemini API provider (primary for planning and multimodal)."""

    provider_id = "gemini"

    def __init__(self, api_key: str):
        genai.configure(api_key=api_key)

    def _translate(self, error: Exception, model: str):
        if isinstance(error, google_exceptions.ResourceExhausted):
            return ProviderRateLimited(str(error), provider=self.provider_id, model=model, status_code=429)
        if isinstance(error, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
            return ProviderAuthError(str(error), provider=self.provider_id, model=model, status_code=error.code)
        status_code = getattr(error, "code", None)
        if not isinstance(status_code, int):
            status_code = None
        return translate_error(error, self.provider_id, model, status_code)

    def _model(
        self,
        model: str,
        system_prompt: str,
        temperature: float,
        max_tokens: Optional[int],
        json_mode: bool = False,
    ) -> genai.GenerativeModel:
        generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_tokens or DEFAULT_MAX_TOKENS,
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        # Gemini uses system_instruction parameter for system prompts
        return genai.GenerativeModel(
            model_name=model,
            generation_config=generation_config,
            system_instruction=system_prompt,
        )

    def _build_contents(self, user_prompt: str, images: Optional[list[str]]) -> list:
        contents = [user_prompt]
        for image in images or []:
            inline = split_data_url(image)
            if inline is None:
                logger.warning("Gemini: skipping image that is not a base64 data URL")
                continue
            mime_type, data = inline
            contents.append({"mime_type": mime_type, "data": data})
        return contents

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
        """Generate response from Gemini."""

        gemini_model = self._model(model, system_prompt, temperature, max_tokens, json_mode)

        try:
            response = await gemini_model.generate_content_async(
                self._build_contents(user_prompt, images)
            )
            # .text raises ValueError when the candidate was blocked
            content = response.text
        except Exception as e:
            raise self._translate(e, model) from e

        input_tokens = 0
        output_tokens = 0
        if getattr(response, "usage_metadata", None):
            input_tokens = response.usage_metadata.prompt_token_count or 0
            output_tokens = response.usage_metadata.candidates_token_count or 0

        return ProviderResponse(
            content=content,
            model=model,
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
        """Stream response from Gemini."""

        gemini_model = self._model(model, system_prompt, temperature, max_tokens)

        try:
            response = await gemini_model.generate_content_async(user_prompt, stream=True)
            async for chunk in response:
                if chunk.text:
                    yield chunk.text
        except Exception as e:
            raise self._translate(e, model) from e
