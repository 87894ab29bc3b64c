"""Vision provider registry with lazy loading.

Usage:
    from petmatch.vision import get_provider

    provider = get_provider("openai")
    raw = provider.complete(prompt, [source_photo, *candidate_photos])
"""

from __future__ import annotations

import importlib

from petmatch.vision.base import VisionProvider

__all__ = ["VisionProvider", "available_providers", "get_provider"]

# Lazy registry: maps provider name → (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "anthropic": ("petmatch.vision.anthropic", "AnthropicProvider"),
    "openai": ("petmatch.vision.openai", "OpenAIProvider"),
    "gemini": ("petmatch.vision.gemini", "GeminiProvider"),
    "ollama": ("petmatch.vision.ollama", "OllamaProvider"),
    "openrouter": ("petmatch.vision.openrouter", "OpenRouterProvider"),
}


def get_provider(name: str) -> VisionProvider:
    """Instantiate and return a vision provider by name.

    Args:
        name: Provider identifier (anthropic, openai, gemini, ollama, openrouter).

    Returns:
        A VisionProvider instance.

    Raises:
        ValueError: If the provider name is unknown.
    """
    if name not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown vision provider '{name}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[name]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls()  # type: ignore[no-any-return]


def available_providers() -> list[str]:
    """Return sorted list of registered provider names."""
    return sorted(_REGISTRY)
