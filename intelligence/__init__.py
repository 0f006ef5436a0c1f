"""
Intelligence Module
LLM providers and the structured text classifier
"""
from .llm import (
    BaseLLM,
    OpenAILLM,
    AnthropicLLM,
    get_llm,
)
from .classifier import LLMTextClassifier, TextClassifier, parse_json_object

__all__ = [
    "BaseLLM",
    "OpenAILLM",
    "AnthropicLLM",
    "get_llm",
    "LLMTextClassifier",
    "TextClassifier",
    "parse_json_object",
]
