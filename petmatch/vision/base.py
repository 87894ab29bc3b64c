"""Abstract base class for vision model providers and shared photo helpers."""

import re
from abc import ABC, abstractmethod
from typing import Any

SYSTEM_PROMPT = (
    "You are an expert in identifying individual pets from photographs. "
    "Compare animals by coat color and pattern, muzzle and ear shape, size, "
    "and distinctive marks. Answer only with the JSON requested."
)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


def strip_code_fences(raw_text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    cleaned = re.sub(r"^```(?:json)?\s*\n?", "", raw_text.strip())
    return re.sub(r"\n?```\s*$", "", cleaned)


def is_remote(photo: str) -> bool:
    return photo.startswith(("http://", "https://"))


def ensure_data_url(photo: str) -> str:
    """Return ``photo`` as a data URL, assuming JPEG for raw base64."""
    if photo.startswith("data:"):
        return photo
    return f"data:image/jpeg;base64,{photo}"


def split_data_url(photo: str) -> tuple[str, str]:
    """Split an inline photo into (mime type, base64 payload)."""
    match = _DATA_URL_RE.match(ensure_data_url(photo))
    if match is None:
        msg = "Photo is not a base64 image data URL"
        raise ValueError(msg)
    return match.group("mime"), match.group("data")


def image_url(photo: str) -> str:
    """URL form accepted by OpenAI-compatible chat APIs."""
    return photo if is_remote(photo) else ensure_data_url(photo)


def openai_user_content(prompt: str, images: list[str]) -> list[dict[str, Any]]:
    """Build an OpenAI-style multimodal message body: the prompt, then each image."""
    content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
    content.extend(
        {"type": "image_url", "image_url": {"url": image_url(photo)}} for photo in images
    )
    return content


class VisionProvider(ABC):
    """Base class that every vision provider must implement."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'openai')."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        images: list[str],
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        """Send a prompt plus photos to the model and return raw response text.

        Args:
            prompt: Instructions and report details for the model.
            images: Photo references in order: http(s) URLs, data URLs, or raw base64.
            model: Override the provider's default model. None uses default.
            system: Override the system prompt. None falls back to SYSTEM_PROMPT.

        Returns:
            Raw text response from the model (expected to be JSON).
        """

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable name for the API key, or None if not needed."""
