"""OpenAI vision provider."""

import logging
import os

from petmatch.vision.base import SYSTEM_PROMPT, VisionProvider, openai_user_content

logger = logging.getLogger(__name__)


class OpenAIProvider(VisionProvider):
    """Vision provider using the OpenAI Chat Completions API."""

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def env_var(self) -> str:
        return "OPENAI_API_KEY"

    def complete(
        self,
        prompt: str,
        images: list[str],
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            msg = "OPENAI_API_KEY environment variable is required"
            raise ValueError(msg)

        try:
            import openai
        except ImportError:
            msg = (
                "openai is required for photo comparison. "
                "Install with: pip install 'pet-match-engine[openai]'"
            )
            raise ImportError(msg) from None

        client = openai.OpenAI(api_key=api_key)
        use_model = model or self.default_model
        use_system = system if system is not None else SYSTEM_PROMPT

        logger.info("Sending %d photo(s) to OpenAI API (%s)...", len(images), use_model)
        response = client.chat.completions.create(
            model=use_model,
            messages=[
                {"role": "system", "content": use_system},
                {"role": "user", "content": openai_user_content(prompt, images)},
            ],
        )

        return response.choices[0].message.content  # type: ignore[no-any-return]
