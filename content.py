from __future__ import annotations
import asyncio
import json
import logging
from typing import Any, Dict, Protocol, Sequence

import requests

from exceptions import ContentFetchError
from models import RoundContent
from openrouter_client import OpenRouterClient
from prompts import build_concept_prompt

logger = logging.getLogger(__name__)


class ContentProvider(Protocol):
    async def fetch(self, excluded_concepts: Sequence[str], style: str) -> RoundContent:
        ...


class OpenRouterContentProvider:
    """
    Two-step round generation:
    1) ask the text model for concept + explanation + image prompt (JSON),
    2) render the image prompt with the image model.
    The exclusion list is best effort; the model may still repeat a title.
    """
    def __init__(self, client: OpenRouterClient, temperature: float = 1.0):
        self.client = client
        self.temperature = temperature

    async def fetch(self, excluded_concepts: Sequence[str], style: str) -> RoundContent:
        # requests is blocking; keep the event loop free
        return await asyncio.to_thread(self._fetch_sync, list(excluded_concepts), style)

    def _fetch_sync(self, excluded: list[str], style: str) -> RoundContent:
        messages = [{"role": "user", "content": build_concept_prompt(style, excluded)}]
        try:
            raw = self.client.chat(messages=messages, temperature=self.temperature, json_mode=True)
        except (RuntimeError, requests.RequestException) as e:
            raise ContentFetchError(f"Could not reach the AI: {e}") from e

        data = _parse_concept_json(raw)
        try:
            image_url = self.client.generate_image(data["imagePrompt"])
        except (RuntimeError, requests.RequestException) as e:
            raise ContentFetchError("The AI failed to generate an image. Please try again.") from e

        content = RoundContent.from_dict({
            "concept": playable_title(data["concept"]),
            "explanation": data["explanation"],
            "imageUrl": image_url,
        })
        logger.info("Generated round content for %r (style=%s)", content.concept, style)
        return content


def playable_title(title: str) -> str:
    """
    Keep only letters, digits and single spaces, so every character of the
    answer can be typed into the guess grid ("Schindler's List" -> "Schindlers List").
    """
    kept = "".join(ch if ch.isalnum() or ch.isspace() else "" for ch in title)
    return " ".join(kept.split())


def _parse_concept_json(raw: str) -> Dict[str, Any]:
    # Some models wrap JSON in a markdown fence even in JSON mode
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
        text = text.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse concept JSON: %r", raw[:500])
        raise ContentFetchError("The AI returned an invalid concept. Please try again.") from e

    if not isinstance(data, dict) or not all(
        isinstance(data.get(k), str) and data[k].strip() for k in ("concept", "explanation", "imagePrompt")
    ):
        logger.warning("Concept JSON is missing fields: %r", raw[:500])
        raise ContentFetchError("The AI returned an invalid concept. Please try again.")
    return data
