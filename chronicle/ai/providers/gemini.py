"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Final

from google import genai
from google.genai import types

from chronicle.ai.providers.base import AIModel, GeneratedImage, Provider, StructuredModelResponse

logger = logging.getLogger(__name__)


class GeminiModel(AIModel):
  """Gemini model client with structured and image output using the google-genai SDK.

  Calls are made once; retry policy belongs to the job state machine, so nothing here backs off.
  """

  def __init__(self, name: str, api_key: str | None = None) -> None:
    self.name: str = name
    self.supports_structured_output = True
    self.supports_images = "image" in name

    api_key = api_key or os.getenv("GEMINI_API_KEY")
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")

    self._client = genai.Client(api_key=api_key)

  async def generate_structured(self, prompt: str, schema: dict[str, Any], *, system_instruction: str | None = None) -> StructuredModelResponse:
    """Generate structured JSON output using Gemini's JSON mode."""
    config: dict[str, Any] = {"response_mime_type": "application/json", "response_schema": schema}
    if system_instruction:
      config["system_instruction"] = system_instruction

    # Use the async client to avoid blocking the asyncio event loop.
    response = await self._client.aio.models.generate_content(model=self.name, contents=prompt, config=config)
    logger.debug("Gemini structured response model=%s chars=%s", self.name, len(response.text or ""))

    if not response.text:
      raise RuntimeError("Gemini returned no content")

    usage = None
    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}

    try:
      parsed = json.loads(self.strip_json_fences(response.text))
    except json.JSONDecodeError as e:
      raise RuntimeError(f"Gemini returned invalid JSON: {e}") from e
    return StructuredModelResponse(content=parsed, usage=usage)

  async def generate_image(self, prompt: str) -> GeneratedImage | None:
    """Generate one image with the image response modality."""
    config = types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"])
    response = await self._client.aio.models.generate_content(model=self.name, contents=prompt, config=config)

    candidates = response.candidates or []
    if not candidates or candidates[0].content is None:
      return None

    for part in candidates[0].content.parts or []:
      if part.inline_data and part.inline_data.data:
        return GeneratedImage(data=part.inline_data.data, mime_type=part.inline_data.mime_type or "image/png")
    return None


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"
  _AVAILABLE_MODELS: Final[set[str]] = {"gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash", "gemini-2.5-flash-image", "gemini-2.0-flash-preview-image-generation"}

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")

    return GeminiModel(model_name, api_key=self._api_key)
