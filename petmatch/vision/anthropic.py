"""Anthropic Claude vision provider."""

import logging
import os
from typing import Any

from petmatch.vision.base import SYSTEM_PROMPT, VisionProvider, is_remote, split_data_url

logger = logging.getLogger(__name__)


def _image_block(photo: str) -> dict[str, Any]:
    if is_remote(photo):
        return {"type": "image", "source": {"type": "url", "url": photo}}
    media_type, data = split_data_url(photo)
    return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}


class AnthropicProvider(VisionProvider):
    """Vision provider using the Anthropic Claude API."""

    @property
    def provider_id(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return "claude-sonnet-4-20250514"

    @property
    def env_var(self) -> str:
        return "ANTHROPIC_API_KEY"

    def complete(
        self,
        prompt: str,
        images: list[str],
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            msg = "ANTHROPIC_API_KEY environment variable is required"
            raise ValueError(msg)

        try:
            import anthropic
        except ImportError:
            msg = (
                "anthropic is required for photo comparison. "
                "Install with: pip install 'pet-match-engine[anthropic]'"
            )
            raise ImportError(msg) from None

        client = anthropic.Anthropic(api_key=api_key)
        use_model = model or self.default_model
        use_system = system if system is not None else SYSTEM_PROMPT

        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        content.extend(_image_block(photo) for photo in images)

        logger.info("Sending %d photo(s) to Anthropic API (%s)...", len(images), use_model)
        message = client.messages.create(
            model=use_model,
            max_tokens=2048,
            system=use_system,
            messages=[{"role": "user", "content": content}],
        )

        return message.content[0].text  # type: ignore[union-attr]
