"""Specification generation for the agent stages."""

from .generators import GenerationError, OpenAISpecGenerator, SpecGenerator, TemplateSpecGenerator
from .openai_client import OpenAIClient

__all__ = [
    "GenerationError",
    "OpenAIClient",
    "OpenAISpecGenerator",
    "SpecGenerator",
    "TemplateSpecGenerator",
]
