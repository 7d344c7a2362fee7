"""Provider implementations."""

from chronicle.ai.providers.base import AIModel, GeneratedImage, Provider, StructuredModelResponse
from chronicle.ai.providers.gemini import GeminiModel, GeminiProvider

__all__ = ["AIModel", "GeneratedImage", "Provider", "StructuredModelResponse", "GeminiModel", "GeminiProvider"]
