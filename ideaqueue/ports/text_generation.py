from typing import Optional

from openai import OpenAI, OpenAIError

from ideaqueue.ports.base import TextGenerator
from ideaqueue.specs.common.errors import ConfigurationError, GenerationFailure
from ideaqueue.shared.logging_utils import info as log_info

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterTextGenerator(TextGenerator):
    """Chat completions through OpenRouter's OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "deepseek/deepseek-chat",
        *,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError("OPENROUTER_API_KEY is required for text generation")
            self._client = OpenAI(api_key=self._api_key, base_url=OPENROUTER_BASE_URL)
        return self._client

    def generate(self, prompt: str, *, system_prompt: Optional[str] = None, model: Optional[str] = None) -> str:
        use_model = model or self.model
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        log_info(None, "openrouter:request", model=use_model, promptLength=len(prompt))
        try:
            response = self._get_client().chat.completions.create(
                model=use_model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except OpenAIError as exc:
            raise GenerationFailure(f"OpenRouter request failed: {exc}", details={"model": use_model}) from exc

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        if not content.strip():
            raise GenerationFailure("OpenRouter returned an empty completion", details={"model": use_model})
        usage = getattr(response, "usage", None)
        log_info(
            None,
            "openrouter:completed",
            model=use_model,
            responseLength=len(content),
            tokens=getattr(usage, "total_tokens", None),
        )
        return content
