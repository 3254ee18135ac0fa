"""Structured output extraction from model text."""

from .json_extractor import (
    ExtractionResult,
    JsonExtractor,
    extract_array_span,
    extract_fenced_block,
    extract_json,
    extract_multiline_span,
    extract_object_span,
    extract_whole_text,
    looks_like_json,
    parse_direct,
    sanitize_json_string,
    try_parse_json,
)

__all__ = [
    "ExtractionResult",
    "JsonExtractor",
    "extract_json",
    "try_parse_json",
    "sanitize_json_string",
    "looks_like_json",
    "parse_direct",
    "extract_fenced_block",
    "extract_object_span",
    "extract_array_span",
    "extract_multiline_span",
    "extract_whole_text",
]
