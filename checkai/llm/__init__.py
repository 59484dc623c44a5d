"""Language-model access shared by every structured call site."""

from checkai.llm.structured_client import StructuredModelClient, parse_json_object

__all__ = ["StructuredModelClient", "parse_json_object"]
