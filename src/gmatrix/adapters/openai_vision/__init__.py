"""OpenAI vision adapter."""

from gmatrix.adapters.openai_vision.adapter import OpenAIVisionClient

__all__ = ["OpenAIVisionClient"]
