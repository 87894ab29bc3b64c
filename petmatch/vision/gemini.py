"""Google Gemini vision provider (google-genai SDK)."""

import base64
import logging
import os

from petmatch.vision.base import SYSTEM_PROMPT, VisionProvider, is_remote, split_data_url

logger = logging.getLogger(__name__)


class GeminiProvider(VisionProvider):
    """Vision provider using the Google Gemini API (google-genai SDK)."""

    @property
    def provider_id(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return "gemini-2.5-flash"

    @property
    def env_var(self) -> str:
        return "GOOGLE_API_KEY"

    def complete(
        self,
        prompt: str,
        images: list[str],
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        api_key = os.environ.get("GOOGLE_API_KEY")
        if not api_key:
            msg = "GOOGLE_API_KEY environment variable is required"
            raise ValueError(msg)

        try:
            from google import genai
            from google.genai import types as genai_types
        except ImportError:
            msg = (
                "google-genai is required for photo comparison. "
                "Install with: pip install 'pet-match-engine[gemini]'"
            )
            raise ImportError(msg) from None

        use_model = model or self.default_model
        use_system = system if system is not None else SYSTEM_PROMPT

        contents: list[object] = [prompt]
        for photo in images:
            if is_remote(photo):
                contents.append(genai_types.Part.from_uri(file_uri=photo, mime_type="image/jpeg"))
            else:
                mime_type, data = split_data_url(photo)
                contents.append(
                    genai_types.Part.from_bytes(data=base64.b64decode(data), mime_type=mime_type)
                )

        logger.info("Sending %d photo(s) to Gemini API (%s)...", len(images), use_model)
        client = genai.Client(api_key=api_key)
        response = client.models.generate_content(
            model=use_model,
            contents=contents,
            config=genai_types.GenerateContentConfig(
                system_instruction=use_system,
            ),
        )

        return response.text  # type: ignore[no-any-return]
