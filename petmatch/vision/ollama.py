"""Ollama local vision provider (OpenAI-compatible API)."""

import logging

from petmatch.vision.base import SYSTEM_PROMPT, VisionProvider, openai_user_content

logger = logging.getLogger(__name__)

_OLLAMA_BASE_URL = "http://localhost:11434/v1"


class OllamaProvider(VisionProvider):
    """Vision provider using a local Ollama instance via OpenAI-compatible API."""

    @property
    def provider_id(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return "llava"

    @property
    def env_var(self) -> None:
        return None

    def complete(
        self,
        prompt: str,
        images: list[str],
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        try:
            import openai
        except ImportError:
            msg = (
                "openai is required for Ollama (OpenAI-compatible API). "
                "Install with: pip install 'pet-match-engine[openai]'"
            )
            raise ImportError(msg) from None

        client = openai.OpenAI(base_url=_OLLAMA_BASE_URL, api_key="ollama")
        use_model = model or self.default_model
        use_system = system if system is not None else SYSTEM_PROMPT

        logger.info("Sending %d photo(s) to Ollama (%s)...", len(images), use_model)
        response = client.chat.completions.create(
            model=use_model,
            messages=[
                {"role": "system", "content": use_system},
                {"role": "user", "content": openai_user_content(prompt, images)},
            ],
        )

        return response.choices[0].message.content  # type: ignore[no-any-return]
