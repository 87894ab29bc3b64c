"""Visual comparison of a source report against a ranked candidate batch."""

import asyncio
import json
import logging

from petmatch.core.config import VisionConfig
from petmatch.core.errors import ComparisonFailedError
from petmatch.core.schemas import MatchResult, Report
from petmatch.vision import get_provider
from petmatch.vision.base import VisionProvider, strip_code_fences

logger = logging.getLogger(__name__)

_COMPARISON_SYSTEM_PROMPT = (
    "You are an expert in finding lost pets by comparing photographs.\n\n"
    "The first photo shows the animal being searched for; each following photo "
    "shows one candidate, in the order the candidates are listed. Compare the "
    "animals visually: coat color and pattern, muzzle and ear shape, size, and "
    "distinctive marks. Photo quality, pose, and background do not matter.\n\n"
    "Confidence scale:\n"
    "  80-100: Very likely the same animal\n"
    "  50-79:  Noticeable resemblance\n"
    "  0-49:   Unlikely to be the same animal\n\n"
    'Return ONLY a JSON object (no markdown, no explanation):\n'
    '{"matches": [{"id": "<candidate ID>", "confidence": <integer 0-100>, '
    '"reasoning": "<1-2 sentences>"}]}\n'
    "Include every candidate."
)


def _or_unknown(value: str) -> str:
    return value.strip() or "unknown"


def _build_user_prompt(source: Report, batch: list[Report]) -> str:
    """Assemble the prompt listing the source animal and the numbered candidates."""
    collar = "yes" if source.has_collar else "no"
    if source.has_collar and source.collar_color:
        collar = f"yes ({source.collar_color})"

    source_section = (
        f"SEARCHED ANIMAL ({source.kind.value} report, photo 1)\n"
        f"ID: {source.id}\n"
        f"Species: {source.species.value}\n"
        f"Breed: {_or_unknown(source.breed)}\n"
        f"Color: {_or_unknown(source.color)}\n"
        f"Special marks: {source.special_marks.strip() or 'none'}\n"
        f"Collar: {collar}\n"
    )
    if source.description:
        source_section += f"Description: {source.description}\n"

    lines = [
        f'{i}. ID: "{c.id}", Breed: {_or_unknown(c.breed)}, Color: {_or_unknown(c.color)}'
        + (f", Special marks: {c.special_marks.strip()}" if c.special_marks.strip() else "")
        for i, c in enumerate(batch, start=1)
    ]
    candidate_section = "CANDIDATES (photo 2 onward, same order)\n" + "\n".join(lines) + "\n"

    return f"{source_section}\n{candidate_section}"


def _parse_match_results(raw_text: str) -> list[MatchResult]:
    """Parse the model response into MatchResults.

    Accepts ``{"matches": [...]}`` or a bare list, with or without a markdown
    fence. Clamps confidence to 0-100; drops entries without an id or with a
    non-numeric confidence. Raises ValueError on malformed responses.
    """
    try:
        data = json.loads(strip_code_fences(raw_text))
    except json.JSONDecodeError as e:
        msg = f"Failed to parse comparison response as JSON: {e}"
        raise ValueError(msg) from e

    if isinstance(data, dict):
        if "matches" not in data:
            msg = "Comparison response missing 'matches' field"
            raise ValueError(msg)
        data = data["matches"]
    if not isinstance(data, list):
        msg = "Comparison 'matches' must be a list"
        raise ValueError(msg)

    results: list[MatchResult] = []
    for entry in data:
        if not isinstance(entry, dict) or not str(entry.get("id", "")).strip():
            logger.warning("Dropping comparison entry without an id: %r", entry)
            continue
        try:
            confidence = float(entry.get("confidence", 0))
        except (TypeError, ValueError):
            logger.warning("Dropping comparison entry with bad confidence: %r", entry)
            continue
        results.append(MatchResult(
            id=str(entry["id"]).strip(),
            confidence=max(0.0, min(100.0, confidence)),
            reasoning=str(entry.get("reasoning") or ""),
        ))
    return results


class VisualComparator:
    """Comparator backed by a multimodal model.

    Sends one request per search: the prompt, the source photo, then one photo
    per candidate. Configured models are tried in order until one answers.
    """

    def __init__(self, provider: VisionProvider, config: VisionConfig | None = None) -> None:
        self._provider = provider
        self._config = config or VisionConfig()

    @classmethod
    def from_config(cls, config: VisionConfig) -> "VisualComparator":
        return cls(get_provider(config.provider), config)

    async def __call__(self, source: Report, batch: list[Report]) -> list[MatchResult]:
        if not batch:
            return []
        prompt = _build_user_prompt(source, batch)
        images = [source.primary_photo, *(c.primary_photo for c in batch)]

        raw = await asyncio.to_thread(self._complete_with_fallback, prompt, images)
        try:
            results = _parse_match_results(raw)
        except ValueError as e:
            raise ComparisonFailedError(str(e)) from e

        logger.info("Comparator returned %d result(s) for %d candidate(s)", len(results), len(batch))
        return results

    def _complete_with_fallback(self, prompt: str, images: list[str]) -> str:
        system = self._config.system_prompt or _COMPARISON_SYSTEM_PROMPT
        models: list[str | None] = list(self._config.models) or [None]
        last_error = "no models configured"

        for model in models:
            label = model or self._provider.default_model
            try:
                raw = self._provider.complete(prompt, images, model, system=system)
            except Exception as e:
                logger.warning(
                    "Model '%s' failed on %s: %s", label, self._provider.provider_id, e,
                    exc_info=True,
                )
                last_error = f"{type(e).__name__}: {e}"
                continue
            if raw and raw.strip():
                return raw
            logger.warning("Model '%s' returned an empty response", label)
            last_error = f"model '{label}' returned an empty response"

        msg = f"All vision models failed ({self._provider.provider_id}): {last_error}"
        raise ComparisonFailedError(msg)
