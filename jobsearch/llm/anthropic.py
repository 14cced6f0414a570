"""Anthropic messages backend."""

from types import ModuleType

from jobsearch.llm.base import LLMProvider

# Scores are a short JSON object; no need for a long completion.
_MAX_TOKENS = 512


class AnthropicProvider(LLMProvider):
    provider_id = "anthropic"
    default_model = "claude-sonnet-4-20250514"
    env_var = "ANTHROPIC_API_KEY"
    sdk_module = "anthropic"

    def _send(self, sdk: ModuleType, api_key: str, prompt: str, model: str, system: str) -> str:
        message = sdk.Anthropic(api_key=api_key).messages.create(
            model=model,
            max_tokens=_MAX_TOKENS,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(getattr(block, "text", "") for block in message.content)
