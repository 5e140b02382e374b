"""xAI Grok provider implementation using OpenAI-compatible API."""

from .openai_provider import OpenAIProvider

# Grok API base URL
GROK_BASE_URL = "https://api.x.ai/v1"


class GrokProvider(OpenAIProvider):
    """xAI Grok provider (primary for coding, 2M context)."""

    provider_id = "grok"
    max_tokens_param = "max_tokens"

    def __init__(self, api_key: str):
        # Grok uses OpenAI-compatible API
        super().__init__(api_key=api_key, base_url=GROK_BASE_URL)
