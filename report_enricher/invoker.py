from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from report_enricher.adapters.gemini_adapter import GeminiAdapter
from report_enricher.adapters.llm_base import GenerationOptions, LLMAdapter, LLMResponse
from report_enricher.adapters.mock_adapter import MockAdapter
from report_enricher.adapters.openai_adapter import OpenAIAdapter
from report_enricher.config import CREDENTIAL_ENV_KEYS, EnricherConfig
from report_enricher.errors import (
    AllModelsExhausted,
    MalformedResponse,
    MissingCredentialError,
    ProviderFailure,
)
from report_enricher.gates.insight_validator import validate_insight
from report_enricher.prompt_builder import build_prompt, load_template

logger = logging.getLogger(__name__)


def build_adapter(mode: str, config: EnricherConfig) -> Optional[LLMAdapter]:
    """Return the configured adapter, or ``None`` when the credential is absent."""
    if mode == "mock":
        return MockAdapter()
    if not config.api_key:
        keys = " / ".join(CREDENTIAL_ENV_KEYS.get(config.provider, []))
        logger.warning("[%s] API key is MISSING (%s). Enrichment will use fallbacks.", config.provider, keys)
        return None
    logger.debug("[%s] API key found (prefix: %s...)", config.provider, config.api_key[:4])
    if config.provider == "gemini":
        return GeminiAdapter(config.api_key)
    return OpenAIAdapter(config.api_key, base_url=config.base_url, name=config.provider)


class InferenceInvoker:
    def __init__(
        self,
        adapter: Optional[LLMAdapter],
        models: Sequence[str],
        options: Optional[GenerationOptions] = None,
        cooldown_seconds: float = 2.0,
        attempts_per_model: int = 1,
        sleep: Callable[[float], None] = time.sleep,
        credential_hint: str = "provider API key",
    ) -> None:
        if not models:
            raise ValueError("At least one model is required.")
        self.adapter = adapter
        self.models: List[str] = list(models)
        self.options = options or GenerationOptions()
        self.cooldown_seconds = cooldown_seconds
        self.attempts_per_model = max(1, attempts_per_model)
        self._sleep = sleep
        self.credential_hint = credential_hint
        self._template: Optional[str] = None

    @classmethod
    def from_config(cls, config: EnricherConfig, mode: str = "live") -> "InferenceInvoker":
        return cls(
            adapter=build_adapter(mode, config),
            models=config.models,
            options=GenerationOptions(
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                top_p=config.top_p,
                timeout_seconds=config.timeout_seconds,
            ),
            cooldown_seconds=config.cooldown_seconds,
            attempts_per_model=config.attempts_per_model,
            credential_hint=" / ".join(CREDENTIAL_ENV_KEYS.get(config.provider, [])) or "provider API key",
        )

    def invoke(self, test: Dict) -> Dict:
        """Try each model in priority order and return the first valid insight."""
        if self.adapter is None:
            raise MissingCredentialError(
                f"No inference credential configured; set {self.credential_hint} to enable enrichment."
            )
        if self._template is None:
            self._template = load_template()
        prompt = build_prompt(test, self._template)
        title = test.get("fullTitle") or test.get("title") or "<untitled>"

        failures: List[Tuple[str, str]] = []
        for index, model in enumerate(self.models):
            if index > 0 and self.cooldown_seconds > 0:
                self._sleep(self.cooldown_seconds)
            logger.info("  > Analyzing with %s...", model)
            try:
                return self._attempt(model, prompt, test)
            except (ProviderFailure, MalformedResponse) as exc:
                logger.warning("    x Model %s failed: %s", model, exc)
                failures.append((model, str(exc)))
            except Exception as exc:
                logger.exception("    x Model %s failed unexpectedly", model)
                failures.append((model, f"{type(exc).__name__}: {exc}"))
        raise AllModelsExhausted(str(title), failures)

    def _attempt(self, model: str, prompt: str, test: Dict) -> Dict:
        for attempt in range(1, self.attempts_per_model + 1):
            try:
                response = self.adapter.complete(prompt, model, self.options)
                self._log_usage(model, response)
                return validate_insight(response.raw_text, test, model_used=model)
            except ProviderFailure as exc:
                if not exc.transient or attempt >= self.attempts_per_model:
                    raise
                logger.info(
                    "[%s] transient error on attempt %d/%d: %s",
                    model,
                    attempt,
                    self.attempts_per_model,
                    exc,
                )
                if self.cooldown_seconds > 0:
                    self._sleep(self.cooldown_seconds)
        raise ProviderFailure(f"{model}: no attempt was made")

    def _log_usage(self, model: str, response: LLMResponse) -> None:
        provider = getattr(self.adapter, "name", "provider")
        usage = response.usage
        if not usage:
            logger.debug("[%s] model=%s usage not provided by SDK", provider, model)
            return
        logger.info(
            "[%s] model=%s prompt_tokens=%s completion_tokens=%s total_tokens=%s",
            provider,
            model,
            usage.get("prompt_tokens"),
            usage.get("completion_tokens"),
            usage.get("total_tokens"),
        )
