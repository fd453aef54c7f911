from __future__ import annotations

from typing import Optional

from openai import OpenAI
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAIError, RateLimitError

from report_enricher.errors import ProviderFailure

from .llm_base import GenerationOptions, LLMAdapter, LLMResponse, is_transient


class OpenAIAdapter(LLMAdapter):
    """Chat completions against any OpenAI-compatible endpoint.

    With the Hugging Face router as ``base_url`` this reaches the hosted
    instruct models; without one it talks to OpenAI itself.
    """

    def __init__(self, api_key: str, base_url: Optional[str] = None, name: str = "openai") -> None:
        if not api_key:
            raise ValueError("An API key is required to build the OpenAI-compatible client.")
        self.name = name
        self.client = OpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    def complete(self, prompt: str, model: str, options: GenerationOptions) -> LLMResponse:
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=options.max_tokens,
                temperature=options.temperature,
                top_p=options.top_p,
                timeout=options.timeout_seconds,
            )
        except RateLimitError as exc:
            code = getattr(exc, "code", None) or getattr(getattr(exc, "error", None), "code", None)
            if code == "insufficient_quota":
                raise ProviderFailure(f"{model}: API quota exceeded.") from exc
            raise ProviderFailure(f"{model}: rate limited ({exc})", transient=True) from exc
        except APITimeoutError as exc:
            raise ProviderFailure(
                f"{model}: request timed out after {options.timeout_seconds}s", transient=True
            ) from exc
        except APIConnectionError as exc:
            raise ProviderFailure(f"{model}: connection failed ({exc})", transient=True) from exc
        except APIStatusError as exc:
            raise ProviderFailure(
                f"{model}: HTTP {exc.status_code} ({exc.message})",
                transient=exc.status_code >= 500 or is_transient(exc),
            ) from exc
        except OpenAIError as exc:
            raise ProviderFailure(f"{model}: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None)
        if not content or not content.strip():
            raise ProviderFailure(f"{model}: empty response")
        usage = getattr(response, "usage", None)
        usage_payload = None
        if usage:
            usage_payload = {
                "prompt_tokens": getattr(usage, "prompt_tokens", None),
                "completion_tokens": getattr(usage, "completion_tokens", None),
                "total_tokens": getattr(usage, "total_tokens", None),
            }
        return LLMResponse(raw_text=content, model=model, usage=usage_payload)
