from __future__ import annotations

from google import genai
from google.genai import types

from report_enricher.errors import ProviderFailure

from .llm_base import GenerationOptions, LLMAdapter, LLMResponse, is_transient


class GeminiAdapter(LLMAdapter):
    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise ValueError("An API key is required to build the Gemini client.")
        self.name = "gemini"
        self.client = genai.Client(api_key=api_key)

    def complete(self, prompt: str, model: str, options: GenerationOptions) -> LLMResponse:
        config = types.GenerateContentConfig(
            max_output_tokens=options.max_tokens,
            temperature=options.temperature,
            top_p=options.top_p,
            http_options=types.HttpOptions(timeout=int(options.timeout_seconds * 1000)),
        )
        try:
            response = self.client.models.generate_content(
                model=model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            raise ProviderFailure(f"{model}: {e}", transient=is_transient(e)) from e

        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise ProviderFailure(f"{model}: Gemini returned empty content.")
        usage = getattr(response, "usage_metadata", None)
        usage_payload = None
        if usage:
            usage_payload = {
                "prompt_tokens": getattr(usage, "prompt_token_count", None),
                "completion_tokens": getattr(usage, "candidates_token_count", None),
                "total_tokens": getattr(usage, "total_token_count", None),
            }
        return LLMResponse(raw_text=text, model=model, usage=usage_payload)
