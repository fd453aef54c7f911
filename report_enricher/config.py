from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, List, Optional

import yaml

DEFAULT_MODELS: Dict[str, List[str]] = {
    "huggingface": [
        "meta-llama/Meta-Llama-3-8B-Instruct",
        "mistralai/Mixtral-8x7B-Instruct-v0.1",
        "microsoft/Phi-3-mini-4k-instruct",
    ],
    "openai": ["gpt-4o-mini"],
    "gemini": ["gemini-flash-latest", "gemini-1.5-pro"],
}

CREDENTIAL_ENV_KEYS: Dict[str, List[str]] = {
    "huggingface": ["HUGGINGFACE_API_TOKEN", "HF_API_KEY", "HUGGINGFACEHUB_API_TOKEN"],
    "openai": ["OPENAI_API_KEY"],
    "gemini": ["GEMINI_API_KEY"],
}

HUGGINGFACE_BASE_URL = "https://router.huggingface.co/v1"


@dataclass
class EnricherConfig:
    reports_dir: Path = Path("cypress/reports/.jsons")
    fallback_report: Path = Path("cypress/reports/results.json")
    merged_report: Path = Path("cypress/reports/results.json")
    metrics_file: Path = Path("dashboard/data/runs.json")
    provider: str = "huggingface"
    models: List[str] = field(default_factory=lambda: list(DEFAULT_MODELS["huggingface"]))
    base_url: Optional[str] = HUGGINGFACE_BASE_URL
    api_key: Optional[str] = None
    timeout_seconds: float = 15.0
    cooldown_seconds: float = 2.0
    attempts_per_model: int = 1
    max_tokens: int = 500
    temperature: float = 0.3
    top_p: float = 0.95
    max_runs: int = 31

    @classmethod
    def from_env(cls) -> "EnricherConfig":
        provider = os.getenv("ENRICH_PROVIDER", "huggingface").strip().lower()
        if provider not in DEFAULT_MODELS:
            raise ValueError(f"Unsupported provider: {provider}")
        models_env = os.getenv("ENRICH_MODELS")
        models = (
            [item.strip() for item in models_env.split(",") if item.strip()]
            if models_env
            else list(DEFAULT_MODELS[provider])
        )
        base_url = os.getenv("ENRICH_BASE_URL") or (
            HUGGINGFACE_BASE_URL if provider == "huggingface" else None
        )
        return cls(
            reports_dir=Path(os.getenv("ENRICH_REPORTS_DIR", str(cls.reports_dir))),
            fallback_report=Path(os.getenv("ENRICH_FALLBACK_REPORT", str(cls.fallback_report))),
            merged_report=Path(os.getenv("ENRICH_MERGED_REPORT", str(cls.merged_report))),
            metrics_file=Path(os.getenv("ENRICH_METRICS_FILE", str(cls.metrics_file))),
            provider=provider,
            models=models,
            base_url=base_url,
            api_key=credential_from_env(provider),
            timeout_seconds=float(os.getenv("ENRICH_TIMEOUT_SECONDS", "15")),
            cooldown_seconds=float(os.getenv("ENRICH_COOLDOWN_SECONDS", "2")),
            attempts_per_model=int(os.getenv("ENRICH_ATTEMPTS_PER_MODEL", "1")),
            max_tokens=int(os.getenv("ENRICH_MAX_OUTPUT_TOKENS", "500")),
            temperature=float(os.getenv("ENRICH_TEMPERATURE", "0.3")),
            top_p=float(os.getenv("ENRICH_TOP_P", "0.95")),
            max_runs=int(os.getenv("ENRICH_MAX_RUNS", "31")),
        )

    def with_overrides(self, **overrides: object) -> "EnricherConfig":
        known = {item.name for item in fields(self)}
        unknown = sorted(key for key in overrides if key not in known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        cleaned = {key: value for key, value in overrides.items() if value is not None}
        for key in ("reports_dir", "fallback_report", "merged_report", "metrics_file"):
            if key in cleaned:
                cleaned[key] = Path(str(cleaned[key]))
        if "provider" in cleaned:
            provider = str(cleaned["provider"]).strip().lower()
            if provider not in DEFAULT_MODELS:
                raise ValueError(f"Unsupported provider: {provider}")
            cleaned["provider"] = provider
            if provider != self.provider:
                cleaned.setdefault("models", list(DEFAULT_MODELS[provider]))
                cleaned.setdefault("api_key", credential_from_env(provider))
                if provider != "huggingface" and self.base_url == HUGGINGFACE_BASE_URL:
                    cleaned.setdefault("base_url", None)
        if "models" in cleaned and isinstance(cleaned["models"], str):
            cleaned["models"] = [item.strip() for item in cleaned["models"].split(",") if item.strip()]
        return replace(self, **cleaned)


def credential_from_env(provider: str) -> Optional[str]:
    for key in CREDENTIAL_ENV_KEYS.get(provider, []):
        value = os.getenv(key)
        if value:
            return value
    return None


def load_config(path: Optional[Path] = None) -> EnricherConfig:
    config = EnricherConfig.from_env()
    if path is None:
        return config
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping.")
    return config.with_overrides(**data)
