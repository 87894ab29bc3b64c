"""OpenRouter vision provider (OpenAI-compatible API, many free vision models)."""

import logging
import os

from petmatch.vision.base import SYSTEM_PROMPT, VisionProvider, openai_user_content

logger = logging.getLogger(__name__)

_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(VisionProvider):
    """Vision provider routing requests through OpenRouter."""

    @property
    def provider_id(self) -> str:
        return "openrouter"

    @property
    def default_model(self) -> str:
        return "openrouter/free"

    @property
    def env_var(self) -> str:
        return "OPENROUTER_API_KEY"

    def complete(
        self,
        prompt: str,
        images: list[str],
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        api_key = os.environ.get("OPENROUTER_API_KEY")
        if not api_key:
            msg = "OPENROUTER_API_KEY environment variable is required"
            raise ValueError(msg)

        try:
            import openai
        except ImportError:
            msg = (
                "openai is required for OpenRouter (OpenAI-compatible API). "
                "Install with: pip install 'pet-match-engine[openai]'"
            )
            raise ImportError(msg) from None

        client = openai.OpenAI(
            base_url=_OPENROUTER_BASE_URL,
            api_key=api_key,
            default_headers={"X-Title": "PetMatch"},
        )
        use_model = model or self.default_model
        use_system = system if system is not None else SYSTEM_PROMPT

        logger.info("Sending %d photo(s) to OpenRouter (%s)...", len(images), use_model)
        response = client.chat.completions.create(
            model=use_model,
            messages=[
                {"role": "system", "content": use_system},
                {"role": "user", "content": openai_user_content(prompt, images)},
            ],
        )

        return response.choices[0].message.content  # type: ignore[no-any-return]
