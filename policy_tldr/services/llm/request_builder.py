"""Provider-specific chat completion requests for policy summaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

PROVIDER_ENDPOINTS = {
    "xai": "https://api.x.ai/v1/chat/completions",
    "openai": "https://api.openai.com/v1/chat/completions",
}
PROVIDER_DEFAULT_MODELS = {
    "xai": "grok-3-mini",
    "openai": "gpt-4o-mini",
}
DEFAULT_PROVIDER = "xai"
DEFAULT_AUTH_TEMPLATE = "Bearer {api_key}"

SYSTEM_PROMPT = """You are a privacy and data protection expert. Analyze the following privacy policy and provide:

1. A privacy abuse score from 0 to 10 where:
   - 0-2: Excellent privacy practices, minimal data collection, strong user rights
   - 3-4: Good privacy practices with some concerns
   - 5-6: Moderate privacy concerns, some problematic practices
   - 7-8: Significant privacy issues, excessive data collection
   - 9-10: Highly abusive practices, extensive data collection, weak user rights

2. A clear and concise summary in {lang} highlighting:
   - What personal data is collected and how
   - How that data is used
   - If it is shared with third parties and with whom
   - Any relevant risks or warnings for the user
   - What rights the user has over their data and how to exercise them
   - Any other important or unusual aspects

IMPORTANT: Respond ONLY with a valid JSON object in this exact format:
{{
  "privacy_score": <number from 0 to 10>,
  "score_explanation": "<brief explanation of the score>",
  "summary": "<markdown formatted summary>"
}}

The privacy_score must be a number between 0 and 10. The score_explanation must be an extremely brief, title-style phrase in {lang} (max 8 words, no trailing period). The summary should use Markdown formatting with headings, lists, and bold text to emphasize the most relevant information."""


@dataclass(frozen=True)
class ProviderConfig:
    provider: str
    endpoint: str
    model: str
    auth_header_template: str = DEFAULT_AUTH_TEMPLATE
    temperature: float = 0.2
    max_tokens: int = 1024
    timeout_s: float = 30.0
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderRequest:
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]


def provider_config_for(
    provider: str = DEFAULT_PROVIDER,
    *,
    model: str | None = None,
    endpoint: str | None = None,
    temperature: float = 0.2,
    max_tokens: int = 1024,
    timeout_s: float = 30.0,
    extra: Mapping[str, Any] | None = None,
) -> ProviderConfig:
    """Resolve a provider id into a full config, filling endpoint and model defaults."""
    provider_id = (provider or DEFAULT_PROVIDER).lower()
    if provider_id not in PROVIDER_ENDPOINTS:
        raise ValueError(f"Unknown LLM provider: {provider!r}")
    return ProviderConfig(
        provider=provider_id,
        endpoint=endpoint or PROVIDER_ENDPOINTS[provider_id],
        model=model or PROVIDER_DEFAULT_MODELS[provider_id],
        temperature=temperature,
        max_tokens=max_tokens,
        timeout_s=timeout_s,
        extra=dict(extra or {}),
    )


def build_messages(
    distilled_text: str, language: str, source_domain: str | None = None
) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT.format(lang=language)},
        {
            "role": "user",
            "content": f"Source domain: {source_domain or 'unknown'}\n\nPolicy text:\n\n{distilled_text}",
        },
    ]


def build_request(
    config: ProviderConfig,
    distilled_text: str,
    language: str,
    source_domain: str | None = None,
    *,
    api_key: str,
) -> ProviderRequest:
    """Build an inert request descriptor; the caller performs the POST."""
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": config.auth_header_template.format(api_key=api_key),
    }
    body: Dict[str, Any] = {
        "model": config.model,
        "temperature": config.temperature,
        "max_tokens": config.max_tokens,
        "response_format": {"type": "json_object"},
        **dict(config.extra),
        "messages": build_messages(distilled_text, language, source_domain),
    }
    return ProviderRequest(url=config.endpoint, headers=headers, body=body)
