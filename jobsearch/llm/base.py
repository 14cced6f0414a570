"""Abstract base class for LLM providers.

A provider only implements ``_send``; ``complete`` resolves the API key,
imports the optional SDK and applies the default system prompt.
"""

import importlib
import logging
import os
from abc import ABC, abstractmethod
from types import ModuleType

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a recruiting assistant. Answer with a single JSON object and "
    "nothing else."
)


class LLMProvider(ABC):
    """Chat-style LLM backend used for relevance scoring."""

    provider_id: str
    default_model: str
    env_var: str
    sdk_module: str

    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        """Send one user message and return the raw response text.

        Raises:
            ValueError: If the API key variable is unset.
            ImportError: If the provider SDK is not installed.
        """
        api_key = os.environ.get(self.env_var)
        if not api_key:
            msg = f"{self.env_var} environment variable is required"
            raise ValueError(msg)

        sdk = self._load_sdk()
        use_model = model or self.default_model
        logger.debug("Scoring prompt via %s (%s)", self.provider_id, use_model)
        return self._send(
            sdk,
            api_key,
            prompt,
            use_model,
            DEFAULT_SYSTEM_PROMPT if system is None else system,
        )

    def _load_sdk(self) -> ModuleType:
        try:
            return importlib.import_module(self.sdk_module)
        except ImportError:
            msg = (
                f"{self.sdk_module} is required for relevance scoring. "
                f"Install with: pip install 'jobsearch-service[{self.sdk_module}]'"
            )
            raise ImportError(msg) from None

    @abstractmethod
    def _send(self, sdk: ModuleType, api_key: str, prompt: str, model: str, system: str) -> str:
        """Perform the SDK call."""
