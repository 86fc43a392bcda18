from __future__ import annotations
import logging
import os, requests
from typing import List, Optional, Dict, Any
from dotenv import load_dotenv
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://openrouter.ai/api/v1/chat/completions"


class OpenRouterClient:
    """
    Minimal OpenRouter client for chat completions and image generation.
    Docs: https://openrouter.ai/docs/api-reference/chat-completion
    """
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        image_model: Optional[str] = None,
        api_url: Optional[str] = None,
        referer: Optional[str] = None,
        title: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key:
            raise RuntimeError("Missing OPENROUTER_API_KEY")

        self.api_url = api_url or os.getenv("OPENROUTER_URL", DEFAULT_API_URL)

        # Text model for concepts and the chat companion
        self.model = model or os.getenv("OPENROUTER_MODEL", "google/gemini-2.5-flash")
        # Must support the "image" output modality
        self.image_model = image_model or os.getenv("OPENROUTER_IMAGE_MODEL", "google/gemini-2.5-flash-image")

        # Optional attribution headers recommended by OpenRouter
        self.referer = referer or os.getenv("APP_REFERER")
        self.title = title or os.getenv("APP_TITLE", "Image Pictionary")
        self.timeout = timeout

        masked = (self.api_key[:6] + "..." + self.api_key[-4:]) if len(self.api_key) > 10 else "set"
        logger.info(
            "OpenRouter client ready (key=%s, model=%s, image_model=%s, url=%s)",
            masked, self.model, self.image_model, self.api_url,
        )

    def _headers(self) -> Dict[str, str]:
        h = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.referer:
            h["HTTP-Referer"] = self.referer
        if self.title:
            h["X-Title"] = self.title
        return h

    def _complete(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = requests.post(self.api_url, json=payload, headers=self._headers(), timeout=self.timeout)

        # Surface upstream errors with their body
        if resp.status_code != 200:
            raise RuntimeError(f"OpenRouter error {resp.status_code}: {resp.text}")

        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            raise RuntimeError(f"OpenRouter returned no choices: {data.get('error') or data}")
        return choices[0]["message"]

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.2,
        json_mode: bool = False,
        extra: Optional[Dict[str, Any]] = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if extra:
            payload.update(extra)

        message = self._complete(payload)
        return message.get("content") or ""

    def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> str:
        """
        Generate one image and return it as a `data:image/...;base64,` URL.
        """
        payload: Dict[str, Any] = {
            "model": self.image_model,
            "messages": [{"role": "user", "content": prompt}],
            "modalities": ["image", "text"],
            "image_config": {"aspect_ratio": aspect_ratio},
        }
        message = self._complete(payload)
        images = message.get("images") or []
        if not images:
            raise RuntimeError("The AI failed to generate an image. Please try again.")
        return images[0]["image_url"]["url"]
