"""Base interfaces for AI providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class StructuredModelResponse:
  """Structured model response structure."""

  content: Any
  usage: dict[str, int] | None = None


@dataclass(frozen=True)
class GeneratedImage:
  """Raw image bytes returned by an image-capable model."""

  data: bytes
  mime_type: str = "image/png"


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str
  supports_structured_output: bool = False
  supports_images: bool = False

  @staticmethod
  def strip_json_fences(raw: str) -> str:
    """Remove Markdown code fences some models wrap around JSON."""
    text = raw.strip()
    if text.startswith("```"):
      text = text.split("\n", 1)[1] if "\n" in text else ""
      if text.rstrip().endswith("```"):
        text = text.rstrip()[:-3]
    return text.strip()

  @abstractmethod
  async def generate_structured(self, prompt: str, schema: dict[str, Any], *, system_instruction: str | None = None) -> StructuredModelResponse:
    """Generate structured output that conforms to the provided JSON schema."""

  async def generate_image(self, prompt: str) -> GeneratedImage | None:
    """Generate a single image for the prompt, or None when the model returned no image."""
    raise RuntimeError("Image output is not supported by this model.")


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
