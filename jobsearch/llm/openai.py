"""OpenAI chat completions backend."""

from types import ModuleType

from jobsearch.llm.base import LLMProvider


class OpenAIProvider(LLMProvider):
    provider_id = "openai"
    default_model = "gpt-4o-mini"
    env_var = "OPENAI_API_KEY"
    sdk_module = "openai"

    def _send(self, sdk: ModuleType, api_key: str, prompt: str, model: str, system: str) -> str:
        response = sdk.OpenAI(api_key=api_key).chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        )
        return response.choices[0].message.content or ""
