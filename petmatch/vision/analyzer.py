"""Describe a pet from its photo so a report form can be pre-filled."""

import json
import logging

from pydantic import BaseModel, field_validator

from petmatch.core.schemas import Species
from petmatch.vision.base import VisionProvider, strip_code_fences

logger = logging.getLogger(__name__)

_ANALYSIS_SYSTEM_PROMPT = (
    "You describe animals in photos for a lost-and-found pet board.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation) with these fields:\n"
    '- species (string): "dog", "cat", or "other"\n'
    '- breed (string): the most likely breed, or "unknown"\n'
    "- color (string): the main coat color\n"
    "- description (string): one or two sentences on distinctive features"
)

_ANALYSIS_PROMPT = "Describe the animal in this photo."


class PhotoAnalysis(BaseModel):
    """Attributes a vision model read off a single pet photo."""

    species: Species = Species.OTHER
    breed: str = ""
    color: str = ""
    description: str = ""

    @field_validator("species", mode="before")
    @classmethod
    def normalize_species(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.lower().strip()
            if v not in {s.value for s in Species}:
                return Species.OTHER
        return v

    def to_summary(self) -> str:
        """One-line description suitable for a report's description field."""
        parts = [self.species.value.capitalize()]
        if self.breed:
            parts.append(f"breed: {self.breed}")
        if self.color:
            parts.append(f"color: {self.color}")
        summary = ", ".join(parts) + "."
        if self.description:
            summary += f" {self.description}"
        return summary


def parse_analysis(raw_text: str) -> PhotoAnalysis:
    """Parse a model response into PhotoAnalysis.

    Handles markdown-wrapped JSON (```json ... ```) and plain JSON.
    """
    try:
        data = json.loads(strip_code_fences(raw_text))
    except json.JSONDecodeError as e:
        msg = f"Failed to parse photo analysis as JSON: {e}"
        raise ValueError(msg) from e

    if not isinstance(data, dict):
        msg = "Photo analysis response must be a JSON object"
        raise ValueError(msg)
    return PhotoAnalysis.model_validate(data)


def analyze_photo(
    photo: str,
    provider: VisionProvider,
    model: str | None = None,
) -> PhotoAnalysis:
    """Ask the vision model what animal is in ``photo``.

    Raises:
        ValueError: If the provider's API key is missing or the response is malformed.
        ImportError: If the provider's SDK is not installed.
    """
    raw = provider.complete(_ANALYSIS_PROMPT, [photo], model, system=_ANALYSIS_SYSTEM_PROMPT)
    if not raw:
        msg = "Vision model returned an empty photo analysis"
        raise ValueError(msg)
    analysis = parse_analysis(raw)
    logger.info(
        "Photo analysis: %s / %s / %s", analysis.species.value, analysis.breed, analysis.color,
    )
    return analysis
