"""LLM client infrastructure."""

from .client import LLMClient, LLMError, VertexRestClient, extract_json_object

__all__ = ["LLMClient", "LLMError", "VertexRestClient", "extract_json_object"]
